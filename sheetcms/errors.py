"""Error taxonomy shared by the data access layer and the HTTP surface."""

from __future__ import annotations


class SheetCMSError(Exception):
    """Base class for every error raised by sheetcms."""


class UnknownSchemaError(SheetCMSError, LookupError):
    def __init__(self, sheet: object) -> None:
        super().__init__(f"unknown sheet: {sheet}")
        self.sheet = sheet


class RemoteStoreUnavailable(SheetCMSError):
    """The spreadsheet service could not be reached or refused the call.

    Callers may retry; the data access layer itself never does.
    """

    retryable = True

    def __init__(self, op: str, message: str) -> None:
        super().__init__(f"{op}: {message}")
        self.op = op


class ConflictError(SheetCMSError):
    pass


class InvalidQueryError(SheetCMSError, ValueError):
    pass


class FieldTypeError(InvalidQueryError):
    def __init__(self, field: str, type_: str) -> None:
        super().__init__(f"type_error:{field}:{type_}")
        self.field = field
        self.type = type_
