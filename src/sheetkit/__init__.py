"""Sheet-backed store kernel utilities."""

from .errors import (
    BackendUnavailable,
    DuplicateEmail,
    LockTimeout,
    SchemaUndetermined,
    SheetStoreError,
    UpstreamError,
)
from .records import Record, Predicate, field_equals, join_list, project_record, split_list, zip_row

__all__ = [
    "BackendUnavailable",
    "DuplicateEmail",
    "LockTimeout",
    "Predicate",
    "Record",
    "SchemaUndetermined",
    "SheetStoreError",
    "UpstreamError",
    "field_equals",
    "join_list",
    "project_record",
    "split_list",
    "zip_row",
]
