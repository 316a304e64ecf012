"""Header-driven CRUD over a remote grid backend (one header row per table)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from key_locks import KeyedLocks
from sheetkit.errors import BackendUnavailable, SchemaUndetermined, SheetStoreError
from sheetkit.records import Predicate, Record, merge_record, project_record, zip_row


USERS = "Users"
PROJECTS = "Projects"
APPLICATIONS = "Applications"

DEFAULT_HEADERS: Dict[str, List[str]] = {
    USERS: [
        "id",
        "name",
        "email",
        "password_hash",
        "role",
        "status",
        "tagline",
        "bio",
        "tech_stack",
        "profile_image_url",
        "banner_image_url",
        "availability",
        "rate",
        "experience",
        "github",
        "linkedin",
        "portfolio",
        "created_at",
        "updated_at",
    ],
    PROJECTS: ["id", "user_id", "title", "link", "description", "image_url", "created_at"],
    APPLICATIONS: ["id", "user_id", "status", "submitted_at", "reviewed_at"],
}

# Grid row index of data position 0 (the header occupies index 0).
HEADER_OFFSET = 1

_logger = logging.getLogger("sheetbase.rows")


def table_key(table: str) -> str:
    return f"table:{table}"


class HeaderResolver:
    def __init__(self, backend, defaults: Dict[str, List[str]] | None = None) -> None:
        self._backend = backend
        self._defaults = DEFAULT_HEADERS if defaults is None else defaults

    def default_for(self, table: str) -> List[str]:
        return list(self._defaults.get(table) or [])

    def headers_for(self, table: str) -> List[str]:
        stored = self._backend.read_header(table)
        if stored:
            return list(stored)
        headers = self.default_for(table)
        if not headers:
            raise SchemaUndetermined(
                f"Could not determine headers for table {table}",
                detail={"table": table},
            )
        _logger.warning("header_missing table=%s using_defaults=1 columns=%s", table, len(headers))
        try:
            self._backend.write_header(table, headers)
        except BackendUnavailable as exc:
            # The caller proceeds with the in-memory header for this call.
            _logger.warning("header_provision_failed table=%s error=%s", table, exc)
        return headers


class RowStore:
    """get/find/append/update/delete of whole rows keyed by column name.

    Reads are lock-free. Mutations on one table run inside that table's lock
    scope, and a row position found by a locate step is only used inside
    the same scope.
    """

    def __init__(self, backend, locks: KeyedLocks | None = None, defaults: Dict[str, List[str]] | None = None) -> None:
        self._backend = backend
        self._locks = locks or KeyedLocks()
        self.headers = HeaderResolver(backend, defaults)

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    @contextmanager
    def mutation_scope(self, table: str) -> Iterator[None]:
        with self._locks.hold(table_key(table)):
            yield

    def get_all(self, table: str) -> List[Record]:
        rows = self._backend.read_rows(table)
        if not rows:
            return []
        headers = rows[0]
        return [zip_row(headers, row) for row in rows[1:]]

    def find_rows(self, table: str, predicate: Predicate) -> List[Record]:
        return [record for record in self.get_all(table) if predicate(record)]

    def find_one(self, table: str, predicate: Predicate) -> Record | None:
        for record in self.get_all(table):
            if predicate(record):
                return record
        return None

    def append_row(self, table: str, record: dict) -> None:
        with self.mutation_scope(table):
            headers = self.headers.headers_for(table)
            values = project_record(headers, record)
            self._backend.append_row(table, values)
        _logger.info("row_appended table=%s id=%s", table, record.get("id"))

    def _locate(self, table: str, predicate: Predicate) -> Tuple[List[str], int, Record] | None:
        rows = self._backend.read_rows(table)
        if not rows:
            return None
        headers = rows[0]
        for position, row in enumerate(rows[1:]):
            record = zip_row(headers, row)
            if predicate(record):
                return headers, position, record
        return None

    def update_row(self, table: str, predicate: Predicate, patch: dict) -> bool:
        with self.mutation_scope(table):
            found = self._locate(table, predicate)
            if found is None:
                return False
            headers, position, record = found
            values = project_record(headers, merge_record(record, patch))
            self._backend.write_row(table, position + HEADER_OFFSET, values)
        _logger.info("row_updated table=%s position=%s fields=%s", table, position, sorted(patch.keys()))
        return True

    def delete_row(self, table: str, predicate: Predicate) -> bool:
        with self.mutation_scope(table):
            found = self._locate(table, predicate)
            if found is None:
                return False
            _, position, record = found
            self._backend.delete_row(table, position + HEADER_OFFSET)
        _logger.info("row_deleted table=%s position=%s id=%s", table, position, record.get("id"))
        return True

    def initialize_tables(self, tables: List[str] | None = None) -> List[str]:
        """Create missing tables with their default header rows.

        Best-effort: failures are logged and the list of tables created so far
        is returned.
        """
        wanted = list(tables) if tables is not None else list(DEFAULT_HEADERS)
        created: List[str] = []
        try:
            existing = set(self._backend.list_tables())
            for table in wanted:
                if table in existing:
                    continue
                headers = self.headers.default_for(table)
                with self.mutation_scope(table):
                    self._backend.add_table(table)
                    if headers:
                        self._backend.write_header(table, headers)
                created.append(table)
                _logger.info("table_created table=%s columns=%s", table, len(headers))
        except SheetStoreError as exc:
            _logger.warning("table_init_failed error=%s created=%s", exc, created)
        return created
