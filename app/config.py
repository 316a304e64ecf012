"""Environment configuration for the Google backends."""

from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path


_logger = logging.getLogger("sheetbase.config")

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]


def load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning("config_invalid_float name=%s value=%s default=%s", name, raw, default)
        return default


def load_service_account() -> dict | None:
    raw = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY", "").strip()
    if not raw:
        encoded = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY_BASE64", "").strip()
        if encoded:
            try:
                raw = base64.b64decode(encoded).decode("utf-8")
            except ValueError as exc:
                _logger.warning("service_account_base64_invalid error=%s", exc)
                return None
    if not raw:
        _logger.warning("service_account_missing; Google calls will fail until configured")
        return None
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        _logger.warning("service_account_json_invalid error=%s", exc)
        return None
    if not isinstance(info, dict) or not info.get("client_email") or not info.get("private_key"):
        _logger.warning("service_account_incomplete keys=%s", sorted(info) if isinstance(info, dict) else None)
        return None
    return info


@dataclass
class Settings:
    service_account: dict | None = None
    spreadsheet_id: str = ""
    drive_folder_id: str = ""
    use_memory_backend: bool = False
    lock_timeout_s: float | None = 30.0
    http_timeout_s: float = 30.0
    jwt_secret: str = ""
    jwt_ttl_s: int = 7 * 24 * 3600
    cors_origins: list[str] = field(default_factory=list)
    api_prefix: str = "/api"

    @property
    def sheets_configured(self) -> bool:
        return bool(self.service_account and self.spreadsheet_id)

    @property
    def drive_configured(self) -> bool:
        return bool(self.service_account and self.drive_folder_id)


def _api_prefix(raw: str) -> str:
    prefix = raw.strip().strip("/")
    return f"/{prefix}" if prefix else ""


def load_settings() -> Settings:
    lock_timeout = _env_float("SHEETBASE_LOCK_TIMEOUT_S", 30.0)
    use_memory = _env_flag("USE_MEMORY_BACKEND")
    return Settings(
        service_account=None if use_memory else load_service_account(),
        spreadsheet_id=os.getenv("GOOGLE_SHEETS_ID", "").strip(),
        drive_folder_id=os.getenv("GOOGLE_DRIVE_FOLDER_ID", "").strip(),
        use_memory_backend=use_memory,
        lock_timeout_s=lock_timeout if lock_timeout > 0 else None,
        http_timeout_s=_env_float("SHEETBASE_HTTP_TIMEOUT_S", 30.0),
        jwt_secret=os.getenv("SHEETBASE_JWT_SECRET", "").strip(),
        jwt_ttl_s=int(_env_float("SHEETBASE_JWT_TTL_S", 7 * 24 * 3600)),
        cors_origins=[
            origin.strip().rstrip("/")
            for origin in os.getenv("SHEETBASE_CORS_ORIGINS", "").split(",")
            if origin.strip()
        ],
        api_prefix=_api_prefix(os.getenv("SHEETBASE_API_PREFIX", "/api")),
    )
