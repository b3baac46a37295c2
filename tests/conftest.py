import os
import re
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

os.environ.setdefault("GOOGLE_SHEET_ID", "test-sheet")

from fastapi.testclient import TestClient

from sheetcms import schema
from sheetcms.auth import create_access_token, hash_password
from sheetcms.cache import SheetCache
from sheetcms.config import settings
from sheetcms.main import create_app
from sheetcms.repository import SheetRepository

_CELL = re.compile(r"^([A-Z]+)(\d*)$")


def _col_index(letters: str) -> int:
    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index


def _parse(a1: str):
    start, _, end = a1.partition(":")
    m1, m2 = _CELL.match(start), _CELL.match(end or start)
    c1, r1 = _col_index(m1.group(1)), int(m1.group(2) or 1)
    c2, r2 = _col_index(m2.group(1)), int(m2.group(2)) if m2.group(2) else None
    return c1, r1, c2, r2


class MemoryStore:
    """TabularStore over plain lists; row 1 of each sheet is the header."""

    def __init__(self, with_headers: bool = True) -> None:
        self.sheets: Dict[str, List[List[str]]] = {}
        self.calls: List[tuple] = []
        self.fail: Optional[Exception] = None
        self._lock = threading.Lock()
        if with_headers:
            for sheet in schema.Sheet:
                self.sheets[sheet.value] = [list(schema.headers(sheet))]

    def _check(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if self.fail is not None:
            raise self.fail

    def rows(self, sheet: str) -> List[List[str]]:
        return self.sheets.setdefault(str(sheet), [])

    def read_range(self, sheet: str, a1_range: str) -> List[List[str]]:
        self._check("read", sheet, a1_range)
        c1, r1, c2, r2 = _parse(a1_range)
        with self._lock:
            data = self.rows(sheet)
            last = len(data) if r2 is None else min(r2, len(data))
            out = []
            for row in data[r1 - 1 : last]:
                cells = list(row[c1 - 1 : c2])
                while cells and cells[-1] == "":
                    cells.pop()
                out.append(cells)
            while out and not out[-1]:
                out.pop()
            return out

    def update_range(self, sheet: str, a1_range: str, values: List[List[str]]) -> None:
        self._check("update", sheet, a1_range)
        c1, r1, _, _ = _parse(a1_range)
        with self._lock:
            data = self.rows(sheet)
            for offset, new in enumerate(values):
                idx = r1 - 1 + offset
                while len(data) <= idx:
                    data.append([])
                row = data[idx]
                while len(row) < c1 - 1 + len(new):
                    row.append("")
                row[c1 - 1 : c1 - 1 + len(new)] = [str(v) for v in new]

    def append_row(self, sheet: str, row: List[str]) -> None:
        self._check("append", sheet)
        with self._lock:
            self.rows(sheet).append([str(v) for v in row])

    def delete_rows(self, sheet: str, start: int, end: int) -> None:
        self._check("delete", sheet, start, end)
        with self._lock:
            del self.rows(sheet)[start:end]

    def ensure_header(self, sheet: str, headers: Sequence[str]) -> bool:
        self._check("ensure_header", sheet)
        with self._lock:
            data = self.rows(sheet)
            if data and any(data[0]):
                return False
            if data:
                data[0] = list(headers)
            else:
                data.append(list(headers))
            return True

    def insert_raw(self, sheet: str, position: int, row: Sequence[str]) -> None:
        """Simulate an edit made directly in the spreadsheet."""
        with self._lock:
            self.rows(sheet).insert(position - 1, list(row))

    def reads(self) -> int:
        return sum(1 for call in self.calls if call[0] == "read")


class Clock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class Ticker:
    """Monotonic stand-in for cache TTL tests."""

    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def repo(store: MemoryStore, clock: Clock) -> SheetRepository:
    return SheetRepository(store, SheetCache(ttl_seconds=300), timeout_seconds=5, clock=clock)


@pytest.fixture
def app(store: MemoryStore, tmp_path: Path, monkeypatch):
    db_path = tmp_path / "idem.db"
    monkeypatch.setenv("IDEMPOTENCY_DB_PATH", str(db_path))
    monkeypatch.setattr(settings, "IDEMPOTENCY_DB_PATH", str(db_path))
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    return create_app(store=store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def bearer(user_id: str = "usr_admin", role: str = "admin", username: str = "admin") -> Dict[str, str]:
    token = create_access_token(user_id, f"{username}@example.com", role, username)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return bearer()


@pytest.fixture
def editor_headers() -> Dict[str, str]:
    return bearer("usr_editor", "editor", "ed")


@pytest.fixture
def viewer_headers() -> Dict[str, str]:
    return bearer("usr_viewer", "viewer", "vi")


def seed_user(
    store: MemoryStore,
    user_id: str = "usr_1",
    username: str = "alice",
    email: str = "alice@example.com",
    password: str = "correct-horse",
    role: str = "admin",
    status: str = "active",
) -> None:
    record = {
        "id": user_id,
        "username": username,
        "email": email,
        "password_hash": hash_password(password),
        "role": role,
        "status": status,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    headers = schema.headers(schema.Sheet.ADMIN_USERS)
    store.append_row("admin_users", [record.get(h, "") for h in headers])
