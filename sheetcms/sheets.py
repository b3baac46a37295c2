from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import Error as GoogleApiError

from .errors import RemoteStoreUnavailable
from .metrics import SHEET_CALLS, SHEET_LAT

log = logging.getLogger(__name__)


class TabularStore(Protocol):
    """The four primitives the data access layer needs from a spreadsheet.

    Ranges use A1 notation without the sheet prefix. Row indices for
    ``delete_rows`` are zero-based and end-exclusive over the whole sheet,
    header row included.
    """

    def read_range(self, sheet: str, a1_range: str) -> List[List[str]]: ...

    def update_range(self, sheet: str, a1_range: str, values: List[List[str]]) -> None: ...

    def append_row(self, sheet: str, row: List[str]) -> None: ...

    def delete_rows(self, sheet: str, start: int, end: int) -> None: ...

    def ensure_header(self, sheet: str, headers: Sequence[str]) -> bool: ...


class SheetsStore:
    """TabularStore backed by the Google Sheets v4 API."""

    def __init__(
        self,
        spreadsheet_id: str,
        credentials: Callable[[], Optional[Credentials]],
        timeout_seconds: float = 30.0,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._credentials = credentials
        self._creds: Optional[Credentials] = None
        self._timeout = timeout_seconds
        self._sheet_ids: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _service(self):
        with self._lock:
            if self._creds is None:
                self._creds = self._credentials()
            creds = self._creds
        if creds is None:
            raise RemoteStoreUnavailable("auth", "Google credentials not configured")
        http = AuthorizedHttp(creds, http=httplib2.Http(timeout=self._timeout))
        return build("sheets", "v4", http=http, cache_discovery=False)

    def _execute(self, op: str, make_request: Callable[[Any], Any]) -> Any:
        start = time.perf_counter()
        outcome = "error"
        try:
            result = make_request(self._service()).execute()
            outcome = "ok"
            return result
        except RemoteStoreUnavailable:
            raise
        except (GoogleApiError, GoogleAuthError, httplib2.HttpLib2Error, OSError) as exc:
            log.error("sheets %s failed: %s", op, exc)
            raise RemoteStoreUnavailable(op, str(exc)) from exc
        finally:
            SHEET_CALLS.labels(op, outcome).inc()
            SHEET_LAT.labels(op).observe(time.perf_counter() - start)

    def read_range(self, sheet: str, a1_range: str) -> List[List[str]]:
        res = self._execute(
            "read",
            lambda svc: svc.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=f"{sheet}!{a1_range}")
        )
        return res.get("values", [])

    def update_range(self, sheet: str, a1_range: str, values: List[List[str]]) -> None:
        self._execute(
            "update",
            lambda svc: svc.spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet}!{a1_range}",
                valueInputOption="RAW",
                body={"values": values},
            ),
        )

    def append_row(self, sheet: str, row: List[str]) -> None:
        self._execute(
            "append",
            lambda svc: svc.spreadsheets()
            .values()
            .append(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet}!A:A",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [row]},
            ),
        )

    def _sheet_id(self, sheet: str) -> int:
        if sheet in self._sheet_ids:
            return self._sheet_ids[sheet]
        meta = self._execute(
            "metadata",
            lambda svc: svc.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties(sheetId,title)",
            ),
        )
        for entry in meta.get("sheets", []):
            props = entry.get("properties", {})
            self._sheet_ids[props.get("title")] = props.get("sheetId")
        if sheet not in self._sheet_ids:
            raise RemoteStoreUnavailable("metadata", f"sheet tab {sheet!r} not found")
        return self._sheet_ids[sheet]

    def delete_rows(self, sheet: str, start: int, end: int) -> None:
        sheet_id = self._sheet_id(sheet)
        request = {
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_id,
                    "dimension": "ROWS",
                    "startIndex": start,
                    "endIndex": end,
                }
            }
        }
        self._execute(
            "delete",
            lambda svc: svc.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={"requests": [request]},
            ),
        )

    def ensure_header(self, sheet: str, headers: Sequence[str]) -> bool:
        existing = self.read_range(sheet, "1:1")
        if existing and any(cell for cell in existing[0]):
            return False
        self.update_range(sheet, "1:1", [list(headers)])
        log.info("initialised header row for %s", sheet)
        return True
