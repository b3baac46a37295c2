"""Typed boundary over the string-only sheet cells.

Values going in are normalised to their canonical text; values coming out
are parsed according to the column type. Unknown fields are passed through
on the way in and dropped later by the codec.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Union

from .errors import FieldTypeError
from .schema import Sheet, contract

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _to_text(val: Any, typ: str) -> str:
    if val is None:
        return ""
    if isinstance(val, str) and val == "" and typ != "json":
        return ""
    if typ == "string":
        return str(val)
    if typ == "integer":
        if isinstance(val, bool):
            raise ValueError(val)
        return str(int(str(val).strip()))
    if typ == "decimal":
        try:
            number = Decimal(str(val).strip())
        except InvalidOperation as exc:
            raise ValueError(val) from exc
        if not number.is_finite():
            raise ValueError(val)
        return str(number)
    if typ == "boolean":
        if isinstance(val, bool):
            return "true" if val else "false"
        s = str(val).strip().lower()
        if s in _TRUE:
            return "true"
        if s in _FALSE:
            return "false"
        raise ValueError(val)
    if typ == "timestamp":
        if isinstance(val, datetime):
            return val.isoformat()
        return datetime.fromisoformat(str(val).replace("Z", "+00:00")).isoformat()
    if typ == "date":
        if isinstance(val, (datetime, date)):
            return (val.date() if isinstance(val, datetime) else val).isoformat()
        return date.fromisoformat(str(val)[:10]).isoformat()
    if typ == "json":
        if isinstance(val, str):
            if val == "":
                return ""
            json.loads(val)
            return val
        return json.dumps(val, separators=(",", ":"))
    return str(val)


def _from_text(text: str, typ: str) -> Any:
    if text == "":
        return None
    if typ == "integer":
        return int(text)
    if typ == "decimal":
        return Decimal(text)
    if typ == "boolean":
        return text.strip().lower() in _TRUE
    if typ == "timestamp":
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    if typ == "date":
        return date.fromisoformat(text[:10])
    if typ == "json":
        return json.loads(text)
    return text


def to_cells(sheet: Union[Sheet, str], fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalise caller values into canonical cell text.

    Raises FieldTypeError naming the first field that does not fit its column.
    """

    schema = contract(sheet)
    clean: Dict[str, Any] = {}
    for name, value in fields.items():
        column = schema.column(name)
        if column is None:
            clean[name] = value
            continue
        try:
            clean[name] = _to_text(value, column.type)
        except (TypeError, ValueError) as exc:
            raise FieldTypeError(name, column.type) from exc
    return clean


def to_python(sheet: Union[Sheet, str], record: Mapping[str, str]) -> Dict[str, Any]:
    """Parse a decoded record into typed values; malformed cells stay as text."""

    schema = contract(sheet)
    out: Dict[str, Any] = {}
    for column in schema.columns:
        text = record.get(column.name, "")
        try:
            out[column.name] = _from_text(text, column.type)
        except (TypeError, ValueError):
            out[column.name] = text
    return out
