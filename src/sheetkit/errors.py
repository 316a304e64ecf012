"""Error taxonomy shared by the row store, folder provisioner and app layer."""

from __future__ import annotations


class SheetStoreError(RuntimeError):
    code = "SHEET_STORE_ERROR"
    retryable = False

    def __init__(self, message: str, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class BackendUnavailable(SheetStoreError):
    """Remote backend is unconfigured or a call to it failed."""

    code = "BACKEND_UNAVAILABLE"


class SchemaUndetermined(SheetStoreError):
    """Table has neither a stored header row nor a configured default."""

    code = "SCHEMA_UNDETERMINED"


class LockTimeout(SheetStoreError):
    code = "LOCK_TIMEOUT"
    retryable = True


class UpstreamError(SheetStoreError):
    """Object store call failed."""

    code = "UPSTREAM_ERROR"


class DuplicateEmail(SheetStoreError):
    code = "DUPLICATE_EMAIL"
