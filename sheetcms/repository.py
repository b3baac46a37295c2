"""Generic CRUD over spreadsheet tabs.

Every operation is keyed by a registered sheet name. Reads go through the
injected SheetCache; writes go straight to the store and invalidate the
sheet's cache entry afterwards.

Mutations on one sheet are serialised through a per-sheet lock. Before a
positional write the target row is re-read from the store and its id
compared, so a row that moved because of an external edit is never
overwritten or deleted by mistake.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from . import schema
from .blocking import to_thread
from .cache import SheetCache
from .codec import FIRST_DATA_ROW, SheetRow, decode_rows, encode_row
from .errors import ConflictError, InvalidQueryError, RemoteStoreUnavailable
from .schema import Sheet
from .sheets import TabularStore
from .validate import to_cells

log = logging.getLogger(__name__)

SheetName = Union[Sheet, str]
IMMUTABLE_FIELDS = ("id", "created_at")
SORT_DIRECTIONS = ("asc", "desc")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocatedRow(NamedTuple):
    record: Dict[str, str]
    position: int


class Page(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


def paginate(items: Sequence[Dict[str, Any]], page: int, limit: int) -> Page:
    if page < 1:
        raise InvalidQueryError("page must be >= 1")
    if limit < 1:
        raise InvalidQueryError("limit must be >= 1")
    total = len(items)
    total_pages = math.ceil(total / limit)
    start = (page - 1) * limit
    return Page(
        items=list(items[start : start + limit]),
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _find(rows: Iterable[SheetRow], row_id: str) -> Optional[LocatedRow]:
    for row in rows:
        if row.data.get("id") == row_id:
            return LocatedRow(row.record(), row.position)
    return None


class SheetRepository:
    def __init__(
        self,
        store: TabularStore,
        cache: SheetCache,
        *,
        timeout_seconds: Optional[float] = 30.0,
        verify_writes: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.cache = cache
        self.timeout_seconds = timeout_seconds
        self.verify_writes = verify_writes
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}

    # -- plumbing ---------------------------------------------------------

    def _now(self) -> str:
        return self._clock().isoformat()

    def _lock(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    async def _call(self, op: str, fn, *args):
        try:
            return await to_thread(fn, *args, timeout=self.timeout_seconds)
        except TimeoutError as exc:
            log.error("sheet %s timed out after %ss", op, self.timeout_seconds)
            raise RemoteStoreUnavailable(
                op, f"timed out after {self.timeout_seconds}s"
            ) from exc

    async def _rows(self, name: str, fresh: bool = False) -> Tuple[SheetRow, ...]:
        if not fresh:
            cached = self.cache.get(name)
            if cached is not None:
                return cached
        generation = self.cache.generation(name)
        data_range = f"A{FIRST_DATA_ROW}:{schema.last_column(name)}"
        values = await self._call("read", self.store.read_range, name, data_range)
        return self.cache.set(name, decode_rows(schema.headers(name), values), generation)

    async def _id_at(self, name: str, position: int) -> str:
        col = schema.column_letter(schema.headers(name).index("id") + 1)
        values = await self._call(
            "read", self.store.read_range, name, f"{col}{position}:{col}{position}"
        )
        if values and values[0]:
            return str(values[0][0])
        return ""

    async def _locate_for_write(self, name: str, row_id: str) -> Optional[LocatedRow]:
        located = _find(await self._rows(name), row_id)
        if located is None:
            located = _find(await self._rows(name, fresh=True), row_id)
            if located is None:
                return None
        if not self.verify_writes:
            return located
        if await self._id_at(name, located.position) == row_id:
            return located

        log.warning(
            "%s row %s no longer at position %d; re-reading",
            name, row_id, located.position,
        )
        self.cache.invalidate(name)
        located = _find(await self._rows(name, fresh=True), row_id)
        if located is None:
            return None
        if await self._id_at(name, located.position) == row_id:
            return located
        log.warning("%s row %s keeps moving; giving up", name, row_id)
        raise ConflictError(f"{name} row {row_id} changed while being written")

    # -- reads ------------------------------------------------------------

    async def list_all(self, sheet: SheetName) -> List[Dict[str, str]]:
        name = schema.resolve(sheet).value
        return [row.record() for row in await self._rows(name)]

    async def refresh(self, sheet: SheetName) -> int:
        name = schema.resolve(sheet).value
        self.cache.invalidate(name)
        return len(await self._rows(name, fresh=True))

    async def query(
        self,
        sheet: SheetName,
        page: int = 1,
        limit: int = 10,
        sort_field: Optional[str] = "created_at",
        sort_direction: str = "desc",
        filters: Optional[Mapping[str, Any]] = None,
        exact: Optional[Mapping[str, Any]] = None,
        text: Optional[str] = None,
        text_fields: Sequence[str] = (),
    ) -> Page:
        """Filter, sort and slice one sheet.

        ``filters`` are case-insensitive substring matches, ``exact`` are
        equality constraints and ``text`` must occur in any of
        ``text_fields``; all of them are ANDed before pagination.
        """

        name = schema.resolve(sheet).value
        contract = schema.contract(name)
        if page < 1 or limit < 1:
            raise InvalidQueryError("page and limit must be >= 1")
        if sort_direction not in SORT_DIRECTIONS:
            raise InvalidQueryError(f"sort direction must be one of {SORT_DIRECTIONS}")
        if sort_field is not None and contract.column(sort_field) is None:
            raise InvalidQueryError(f"cannot sort {name} by {sort_field!r}")
        active = {
            field: str(value).casefold()
            for field, value in (filters or {}).items()
            if _present(value)
        }
        equal = {k: str(v) for k, v in (exact or {}).items() if _present(v)}
        for field in (*active, *equal, *text_fields):
            if contract.column(field) is None:
                raise InvalidQueryError(f"cannot filter {name} by {field!r}")
        needle = text.casefold() if text else None

        records = [
            row.record()
            for row in await self._rows(name)
            if all(
                sub in row.data.get(field, "").casefold()
                for field, sub in active.items()
            )
            and all(row.data.get(field) == value for field, value in equal.items())
            and (
                needle is None
                or any(needle in row.data.get(f, "").casefold() for f in text_fields)
            )
        ]
        if sort_field is not None:
            records.sort(
                key=lambda rec: rec.get(sort_field, ""),
                reverse=sort_direction == "desc",
            )
        return paginate(records, page, limit)

    async def get_by_id(self, sheet: SheetName, row_id: str) -> Optional[LocatedRow]:
        name = schema.resolve(sheet).value
        return _find(await self._rows(name), row_id)

    async def get_by_field(
        self, sheet: SheetName, field: str, value: str
    ) -> List[Dict[str, str]]:
        name = schema.resolve(sheet).value
        return [
            row.record() for row in await self._rows(name) if row.data.get(field) == value
        ]

    async def exists_by_field(
        self,
        sheet: SheetName,
        field: str,
        value: str,
        exclude_id: Optional[str] = None,
    ) -> bool:
        name = schema.resolve(sheet).value
        for row in await self._rows(name):
            if exclude_id and row.data.get("id") == exclude_id:
                continue
            if row.data.get(field) == value:
                return True
        return False

    async def count(
        self, sheet: SheetName, filters: Optional[Mapping[str, Any]] = None
    ) -> int:
        name = schema.resolve(sheet).value
        active = {k: str(v) for k, v in (filters or {}).items() if _present(v)}
        return sum(
            1
            for row in await self._rows(name)
            if all(row.data.get(k) == v for k, v in active.items())
        )

    async def distinct(self, sheet: SheetName, field: str) -> List[str]:
        name = schema.resolve(sheet).value
        seen = dict.fromkeys(
            row.data.get(field, "") for row in await self._rows(name)
        )
        return [value for value in seen if value]

    async def search(
        self, sheet: SheetName, text: str, fields: Sequence[str]
    ) -> List[Dict[str, str]]:
        name = schema.resolve(sheet).value
        needle = text.casefold()
        return [
            row.record()
            for row in await self._rows(name)
            if any(needle in row.data.get(field, "").casefold() for field in fields)
        ]

    # -- writes -----------------------------------------------------------

    async def create(self, sheet: SheetName, fields: Mapping[str, Any]) -> Dict[str, str]:
        name = schema.resolve(sheet).value
        if not _present(fields.get("id")):
            raise InvalidQueryError("id is required")
        payload = {k: v for k, v in fields.items() if k not in ("created_at", "updated_at")}
        record = to_cells(name, payload)
        now = self._now()
        record["created_at"] = now
        record["updated_at"] = now
        headers = schema.headers(name)
        row = encode_row(headers, record)

        async with self._lock(name):
            try:
                await self._call("append", self.store.append_row, name, row)
            finally:
                self.cache.invalidate(name)
        log.info("created %s row %s", name, record["id"])
        return dict(zip(headers, row))

    async def update(
        self, sheet: SheetName, row_id: str, fields: Mapping[str, Any]
    ) -> Optional[Dict[str, str]]:
        name = schema.resolve(sheet).value
        changes = to_cells(
            name,
            {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS + ("updated_at",)},
        )
        return await self._rewrite(name, row_id, lambda current: changes)

    async def increment(
        self, sheet: SheetName, row_id: str, field: str, by: int = 1
    ) -> Optional[Dict[str, str]]:
        """Add ``by`` to an integer cell, reading and writing under the sheet lock.

        A blank or non-numeric cell counts as 0.
        """

        name = schema.resolve(sheet).value
        if field in IMMUTABLE_FIELDS + ("updated_at",):
            raise InvalidQueryError(f"{field} cannot be incremented")

        def bump(current: Dict[str, str]) -> Dict[str, str]:
            try:
                value = int(current.get(field) or 0)
            except ValueError:
                value = 0
            return to_cells(name, {field: value + by})

        return await self._rewrite(name, row_id, bump)

    async def _rewrite(
        self,
        name: str,
        row_id: str,
        changes_for: Callable[[Dict[str, str]], Mapping[str, str]],
    ) -> Optional[Dict[str, str]]:
        headers = schema.headers(name)

        async with self._lock(name):
            located = await self._locate_for_write(name, row_id)
            if located is None:
                return None
            current = located.record
            merged = {**current, **changes_for(current)}
            for key in IMMUTABLE_FIELDS:
                merged[key] = current.get(key, "")
            merged["updated_at"] = self._now()
            row = encode_row(headers, merged)
            pos = located.position
            try:
                await self._call(
                    "update",
                    self.store.update_range,
                    name,
                    f"A{pos}:{schema.last_column(name)}{pos}",
                    [row],
                )
            finally:
                self.cache.invalidate(name)
        log.info("updated %s row %s at position %d", name, row_id, pos)
        return dict(zip(headers, row))

    async def remove(self, sheet: SheetName, row_id: str) -> bool:
        name = schema.resolve(sheet).value
        async with self._lock(name):
            located = await self._locate_for_write(name, row_id)
            if located is None:
                return False
            pos = located.position
            try:
                await self._call("delete", self.store.delete_rows, name, pos - 1, pos)
            finally:
                self.cache.invalidate(name)
        log.info("deleted %s row %s at position %d", name, row_id, pos)
        return True

    async def bulk_update(
        self, sheet: SheetName, updates: Iterable[Tuple[str, Mapping[str, Any]]]
    ) -> List[Dict[str, str]]:
        results = []
        for row_id, fields in updates:
            updated = await self.update(sheet, row_id, fields)
            if updated is not None:
                results.append(updated)
        return results

    async def ensure_headers(self) -> List[str]:
        """Write the header row of every registered sheet that lacks one."""

        initialised = []
        for sheet in Sheet:
            if await self._call(
                "init", self.store.ensure_header, sheet.value, schema.headers(sheet)
            ):
                initialised.append(sheet.value)
        return initialised
