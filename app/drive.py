"""Google Drive v3 object store: folders, multipart uploads, public permissions."""

from __future__ import annotations

import json
import logging
import time
import uuid
from urllib.parse import quote

import httpx

from app.google_auth import GoogleAuthError, ServiceAccountTokens
from app.remote_stats import record_remote_call
from sheetkit.errors import BackendUnavailable, UpstreamError


DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
FOLDER_MIME = "application/vnd.google-apps.folder"

_logger = logging.getLogger("sheetbase.drive")


def _q_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _multipart_related(metadata: dict, data: bytes, mime_type: str) -> tuple[bytes, str]:
    boundary = f"sheetbase-{uuid.uuid4().hex}"
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + data + tail, f"multipart/related; boundary={boundary}"


class DriveObjectStore:
    def __init__(self, tokens: ServiceAccountTokens | None, client: httpx.Client | None = None, timeout: float = 30.0) -> None:
        self._tokens = tokens
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def configured(self) -> bool:
        return self._tokens is not None

    def _request(
        self,
        method: str,
        url: str,
        name: str,
        params: dict | None = None,
        body: dict | None = None,
        content: bytes | None = None,
        content_type: str | None = None,
        allow_404: bool = False,
    ) -> dict:
        if not self.configured:
            raise BackendUnavailable("Google Drive not configured")
        try:
            headers = self._tokens.headers()
        except GoogleAuthError as exc:
            raise BackendUnavailable(f"Google auth failed: {exc}", detail={"call": name}) from exc
        if content_type:
            headers["Content-Type"] = content_type
        start = time.perf_counter()
        try:
            res = self._client.request(method, url, params=params, json=body, content=content, headers=headers)
        except httpx.HTTPError as exc:
            record_remote_call(name, (time.perf_counter() - start) * 1000)
            raise UpstreamError(f"Drive request failed: {exc}", detail={"call": name}) from exc
        record_remote_call(name, (time.perf_counter() - start) * 1000, res.status_code)
        if allow_404 and res.status_code == 404:
            _logger.info("drive_not_found call=%s", name)
            return {}
        if res.status_code >= 400:
            _logger.warning("drive_error call=%s status=%s body=%s", name, res.status_code, res.text[:300])
            raise UpstreamError(
                f"drive_request_failed:{res.status_code}",
                detail={"call": name, "status": res.status_code},
            )
        if not res.content:
            return {}
        try:
            return res.json()
        except ValueError as exc:
            raise UpstreamError("Drive returned a malformed body", detail={"call": name}) from exc

    def find_folder(self, name: str, parent_id: str) -> str | None:
        query = (
            f"name='{_q_literal(name)}' and '{_q_literal(parent_id)}' in parents "
            f"and mimeType='{FOLDER_MIME}' and trashed=false"
        )
        body = self._request(
            "GET",
            f"{DRIVE_API}/files",
            "drive.files.list_folder",
            params={"q": query, "fields": "files(id, name)", "spaces": "drive", "pageSize": 10},
        )
        files = body.get("files") or []
        if not files:
            return None
        return files[0].get("id")

    def create_folder(self, name: str, parent_id: str) -> str:
        body = self._request(
            "POST",
            f"{DRIVE_API}/files",
            "drive.files.create_folder",
            params={"fields": "id"},
            body={"name": name, "mimeType": FOLDER_MIME, "parents": [parent_id]},
        )
        folder_id = body.get("id")
        if not folder_id:
            raise UpstreamError("Folder create returned no id", detail={"name": name})
        return folder_id

    def create_file(self, data: bytes, name: str, mime_type: str, parent_id: str) -> str:
        payload, content_type = _multipart_related({"name": name, "parents": [parent_id]}, data, mime_type)
        body = self._request(
            "POST",
            f"{DRIVE_UPLOAD_API}/files",
            "drive.files.upload",
            params={"uploadType": "multipart", "fields": "id"},
            content=payload,
            content_type=content_type,
        )
        file_id = body.get("id")
        if not file_id:
            raise UpstreamError("Upload returned no id", detail={"name": name})
        return file_id

    def make_public(self, file_id: str) -> None:
        self._request(
            "POST",
            f"{DRIVE_API}/files/{quote(file_id, safe='')}/permissions",
            "drive.permissions.create",
            body={"role": "reader", "type": "anyone"},
        )

    def delete_file(self, file_id: str) -> None:
        # Already-removed objects are fine during cleanup.
        self._request("DELETE", f"{DRIVE_API}/files/{quote(file_id, safe='')}", "drive.files.delete", allow_404=True)
