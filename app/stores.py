"""In-memory backends for local development and tests.

Each method behaves like one remote call: it is atomic on its own, but two
calls from the same caller are not.
"""

from __future__ import annotations

import copy
import threading
import time
import uuid
from typing import Dict, List

from sheetkit.errors import BackendUnavailable, UpstreamError


class MemoryGridBackend:
    def __init__(self, tables: Dict[str, List[List[str]]] | None = None, latency: float = 0.0) -> None:
        self._tables: Dict[str, List[List[str]]] = copy.deepcopy(tables) if tables else {}
        self._lock = threading.Lock()
        self.latency = latency
        self.fail_on: set[str] = set()
        self.calls: List[str] = []

    def _call(self, name: str) -> None:
        if self.latency:
            time.sleep(self.latency)
        if name in self.fail_on:
            raise BackendUnavailable(f"memory backend failure: {name}", detail={"call": name})
        self.calls.append(name)

    def snapshot(self, table: str) -> List[List[str]]:
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def read_rows(self, table: str) -> List[List[str]]:
        self._call("read_rows")
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def read_header(self, table: str) -> List[str]:
        self._call("read_header")
        with self._lock:
            rows = self._tables.get(table) or []
            return list(rows[0]) if rows else []

    def write_header(self, table: str, headers: List[str]) -> None:
        self.write_row(table, 0, headers)

    def append_row(self, table: str, values: List[str]) -> None:
        self._call("append_row")
        with self._lock:
            self._tables.setdefault(table, []).append(list(values))

    def write_row(self, table: str, index: int, values: List[str]) -> None:
        self._call("write_row")
        with self._lock:
            rows = self._tables.setdefault(table, [])
            while len(rows) <= index:
                rows.append([])
            current = rows[index]
            # Cells past the written range keep their value, like a ranged update.
            rows[index] = list(values) + current[len(values):]

    def delete_row(self, table: str, index: int) -> None:
        self._call("delete_row")
        with self._lock:
            rows = self._tables.get(table)
            if rows is None:
                raise BackendUnavailable(f"Sheet {table} not found", detail={"table": table})
            if 0 <= index < len(rows):
                del rows[index]

    def list_tables(self) -> List[str]:
        self._call("list_tables")
        with self._lock:
            return list(self._tables)

    def add_table(self, table: str) -> None:
        self._call("add_table")
        with self._lock:
            self._tables.setdefault(table, [])


class MemoryObjectStore:
    def __init__(self, latency: float = 0.0) -> None:
        self._lock = threading.Lock()
        self.latency = latency
        self.fail_on: set[str] = set()
        self.folders: Dict[str, dict] = {}
        self.files: Dict[str, dict] = {}

    def _call(self, name: str) -> None:
        if self.latency:
            time.sleep(self.latency)
        if name in self.fail_on:
            raise UpstreamError(f"memory object store failure: {name}", detail={"call": name})

    def find_folder(self, name: str, parent_id: str) -> str | None:
        self._call("find_folder")
        with self._lock:
            for folder_id, folder in self.folders.items():
                if folder["name"] == name and folder["parent"] == parent_id and not folder["trashed"]:
                    return folder_id
        return None

    def create_folder(self, name: str, parent_id: str) -> str:
        self._call("create_folder")
        folder_id = uuid.uuid4().hex
        with self._lock:
            self.folders[folder_id] = {"name": name, "parent": parent_id, "trashed": False}
        return folder_id

    def trash_folder(self, folder_id: str) -> None:
        with self._lock:
            self.folders[folder_id]["trashed"] = True

    def folders_named(self, name: str, parent_id: str) -> List[str]:
        with self._lock:
            return [fid for fid, f in self.folders.items() if f["name"] == name and f["parent"] == parent_id]

    def create_file(self, data: bytes, name: str, mime_type: str, parent_id: str) -> str:
        self._call("create_file")
        file_id = uuid.uuid4().hex
        with self._lock:
            self.files[file_id] = {
                "name": name,
                "parent": parent_id,
                "mime_type": mime_type,
                "data": bytes(data),
                "public": False,
            }
        return file_id

    def make_public(self, file_id: str) -> None:
        self._call("make_public")
        with self._lock:
            if file_id not in self.files:
                raise UpstreamError("File not found", detail={"file_id": file_id})
            self.files[file_id]["public"] = True

    def delete_file(self, file_id: str) -> None:
        self._call("delete_file")
        with self._lock:
            self.files.pop(file_id, None)
