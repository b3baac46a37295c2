"""Positional mapping between raw sheet rows and named records.

Row 1 of every sheet holds the headers, so the first data row sits at
position 2. Positions are only meaningful against the read that produced
them.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Sequence, Union

from pydantic import BaseModel, ConfigDict

from .schema import Sheet, headers as schema_headers

FIRST_DATA_ROW = 2


class SheetRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int
    data: Dict[str, str]

    def record(self) -> Dict[str, str]:
        return dict(self.data)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def decode_row(headers: Sequence[str], raw: Sequence[Any], position: int) -> SheetRow:
    data = {
        name: _cell(raw[i]) if i < len(raw) else ""
        for i, name in enumerate(headers)
    }
    return SheetRow(position=position, data=data)


def decode_rows(headers: Sequence[str], values: Iterable[Sequence[Any]]) -> List[SheetRow]:
    return [
        decode_row(headers, raw, offset + FIRST_DATA_ROW)
        for offset, raw in enumerate(values)
    ]


def encode_row(headers: Sequence[str], record: Mapping[str, Any]) -> List[str]:
    return [_cell(record.get(name)) for name in headers]


def decode(sheet: Union[Sheet, str], raw: Sequence[Any], position: int) -> SheetRow:
    return decode_row(schema_headers(sheet), raw, position)


def encode(sheet: Union[Sheet, str], record: Mapping[str, Any]) -> List[str]:
    return encode_row(schema_headers(sheet), record)
