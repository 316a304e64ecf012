"""Google Sheets v4 grid backend: one sheet per table, first row is the header."""

from __future__ import annotations

import logging
import threading
import time
from urllib.parse import quote

import httpx

from app.google_auth import GoogleAuthError, ServiceAccountTokens
from app.remote_stats import record_remote_call
from sheetkit.a1 import first_column, header_range, row_range, whole_sheet
from sheetkit.errors import BackendUnavailable


SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"

_logger = logging.getLogger("sheetbase.sheets")


def _as_rows(values) -> list[list[str]]:
    if not isinstance(values, list):
        return []
    rows: list[list[str]] = []
    for row in values:
        if not isinstance(row, list):
            rows.append([])
            continue
        rows.append(["" if cell is None else str(cell) for cell in row])
    return rows


class SheetsGridBackend:
    def __init__(
        self,
        spreadsheet_id: str,
        tokens: ServiceAccountTokens | None,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._spreadsheet_id = (spreadsheet_id or "").strip()
        self._tokens = tokens
        self._client = client or httpx.Client(timeout=timeout)
        self._sheet_ids: dict[str, int] = {}
        self._meta_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self._tokens is not None and self._spreadsheet_id)

    def _request(self, method: str, path: str, name: str, params: dict | None = None, body: dict | None = None) -> dict:
        if not self.configured:
            raise BackendUnavailable("Google Sheets not configured")
        url = f"{SHEETS_API}/{quote(self._spreadsheet_id, safe='')}{path}"
        try:
            headers = self._tokens.headers()
        except GoogleAuthError as exc:
            raise BackendUnavailable(f"Google auth failed: {exc}", detail={"call": name}) from exc
        start = time.perf_counter()
        try:
            res = self._client.request(method, url, params=params, json=body, headers=headers)
        except httpx.HTTPError as exc:
            record_remote_call(name, (time.perf_counter() - start) * 1000)
            raise BackendUnavailable(f"Sheets request failed: {exc}", detail={"call": name}) from exc
        record_remote_call(name, (time.perf_counter() - start) * 1000, res.status_code)
        if res.status_code >= 400:
            _logger.warning("sheets_error call=%s status=%s body=%s", name, res.status_code, res.text[:300])
            raise BackendUnavailable(
                f"sheets_request_failed:{res.status_code}",
                detail={"call": name, "status": res.status_code},
            )
        if not res.content:
            return {}
        try:
            return res.json()
        except ValueError as exc:
            raise BackendUnavailable("Sheets returned a malformed body", detail={"call": name}) from exc

    def _values_path(self, a1: str, suffix: str = "") -> str:
        return f"/values/{quote(a1, safe='')}{suffix}"

    def read_rows(self, table: str) -> list[list[str]]:
        body = self._request("GET", self._values_path(whole_sheet(table)), "sheets.values.get_all")
        return _as_rows(body.get("values"))

    def read_header(self, table: str) -> list[str]:
        body = self._request("GET", self._values_path(header_range(table)), "sheets.values.get_header")
        rows = _as_rows(body.get("values"))
        return rows[0] if rows else []

    def write_header(self, table: str, headers: list[str]) -> None:
        self.write_row(table, 0, headers)

    def append_row(self, table: str, values: list[str]) -> None:
        self._request(
            "POST",
            self._values_path(first_column(table), ":append"),
            "sheets.values.append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            body={"values": [values]},
        )

    def write_row(self, table: str, index: int, values: list[str]) -> None:
        a1 = row_range(table, index + 1, len(values))
        self._request(
            "PUT",
            self._values_path(a1),
            "sheets.values.update",
            params={"valueInputOption": "RAW"},
            body={"range": a1, "majorDimension": "ROWS", "values": [values]},
        )

    def delete_row(self, table: str, index: int) -> None:
        sheet_id = self._sheet_id(table)
        request = {
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_id,
                    "dimension": "ROWS",
                    "startIndex": index,
                    "endIndex": index + 1,
                }
            }
        }
        self._request("POST", ":batchUpdate", "sheets.batch_update.delete_row", body={"requests": [request]})

    def _load_sheet_ids(self) -> dict[str, int]:
        body = self._request(
            "GET",
            "",
            "sheets.get_metadata",
            params={"fields": "sheets.properties(sheetId,title)"},
        )
        ids: dict[str, int] = {}
        for sheet in body.get("sheets") or []:
            props = sheet.get("properties") or {}
            title = props.get("title")
            if isinstance(title, str) and props.get("sheetId") is not None:
                ids[title] = int(props["sheetId"])
        with self._meta_lock:
            self._sheet_ids = ids
        return ids

    def _sheet_id(self, table: str) -> int:
        with self._meta_lock:
            cached = self._sheet_ids.get(table)
        if cached is not None:
            return cached
        ids = self._load_sheet_ids()
        if table not in ids:
            raise BackendUnavailable(f"Sheet {table} not found", detail={"table": table})
        return ids[table]

    def list_tables(self) -> list[str]:
        return list(self._load_sheet_ids())

    def add_table(self, table: str) -> None:
        body = self._request(
            "POST",
            ":batchUpdate",
            "sheets.batch_update.add_sheet",
            body={"requests": [{"addSheet": {"properties": {"title": table}}}]},
        )
        replies = body.get("replies") or []
        props = (replies[0].get("addSheet") or {}).get("properties") if replies else None
        if isinstance(props, dict) and props.get("sheetId") is not None:
            with self._meta_lock:
                self._sheet_ids[table] = int(props["sheetId"])
