"""Per-owner asset folders and public uploads in a remote object store."""

from __future__ import annotations

import logging
import re

from key_locks import KeyedLocks
from sheetkit.errors import BackendUnavailable, UpstreamError


PUBLIC_URL_TEMPLATE = "https://drive.google.com/uc?export=view&id={file_id}"
_FILE_ID_RE = re.compile(r"[?&]id=([^&#]+)")

_logger = logging.getLogger("sheetbase.folders")


def folder_name(owner_id: str, owner_name: str) -> str:
    return f"{owner_name}_{owner_id}"


def folder_key(owner_id: str, owner_name: str) -> str:
    return f"folder:{folder_name(owner_id, owner_name)}"


def public_url(file_id: str) -> str:
    return PUBLIC_URL_TEMPLATE.format(file_id=file_id)


def file_id_from_url(url: str) -> str | None:
    match = _FILE_ID_RE.search(url or "")
    return match.group(1) if match else None


class FolderProvisioner:
    def __init__(self, store, root_folder_id: str | None, locks: KeyedLocks | None = None) -> None:
        self._store = store
        self._root_id = (root_folder_id or "").strip()
        self._locks = locks or KeyedLocks()

    def _require_root(self) -> str:
        if not self._root_id:
            raise BackendUnavailable("Object store root folder is not configured")
        return self._root_id

    def ensure_folder(self, owner_id: str, owner_name: str) -> str:
        root_id = self._require_root()
        name = folder_name(owner_id, owner_name)
        with self._locks.hold(folder_key(owner_id, owner_name)):
            existing = self._store.find_folder(name, root_id)
            if existing:
                return existing
            created = self._store.create_folder(name, root_id)
        _logger.info("folder_created name=%s folder_id=%s", name, created)
        return created

    def upload_file(self, data: bytes, name: str, mime_type: str, folder_id: str | None = None) -> str:
        parent_id = folder_id or self._require_root()
        file_id = self._store.create_file(data, name, mime_type, parent_id)
        if not file_id:
            raise UpstreamError("Upload returned no object id", detail={"name": name})
        self._store.make_public(file_id)
        _logger.info("file_uploaded name=%s size=%s file_id=%s", name, len(data), file_id)
        return public_url(file_id)

    def delete_file(self, url: str) -> None:
        file_id = file_id_from_url(url)
        if not file_id:
            raise ValueError(f"Invalid object URL: {url}")
        self._store.delete_file(file_id)
        _logger.info("file_deleted file_id=%s", file_id)
