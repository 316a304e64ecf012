"""FastAPI app for the sheet-backed member directory."""

from __future__ import annotations

import functools
import logging
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path

import anyio
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.auth import AuthError, admin_actor, current_actor, hash_password, issue_token, same_actor, verify_password
from app.config import SCOPES, Settings, load_env_file, load_settings
from app.drive import DriveObjectStore
from app.google_auth import ServiceAccountTokens
from app.members import MemberService, member_view
from app.remote_stats import get_remote_stats, reset_remote_stats
from app.sheets import SheetsGridBackend
from app.stores import MemoryGridBackend, MemoryObjectStore
from folder_provisioner import FolderProvisioner
from key_locks import KeyedLocks
from row_store import RowStore
from sheetkit.errors import BackendUnavailable, DuplicateEmail, LockTimeout, SchemaUndetermined, SheetStoreError, UpstreamError


logger = logging.getLogger("sheetbase")
logging.basicConfig(level=logging.INFO)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
_LOCAL_CORS_REGEX = r"^http://(localhost|127\.0\.0\.1):\d+$"
_ERROR_STATUS = {
    BackendUnavailable: 503,
    LockTimeout: 503,
    SchemaUndetermined: 500,
    UpstreamError: 502,
    DuplicateEmail: 400,
}


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def _run(fn, *args, **kwargs):
    return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))


def build_backends(settings: Settings):
    """Return (grid backend, object store, root folder id) for the settings."""
    if settings.use_memory_backend:
        logger.info("backend=memory")
        return MemoryGridBackend(), MemoryObjectStore(), settings.drive_folder_id or "memory-root"
    tokens = ServiceAccountTokens(settings.service_account, SCOPES) if settings.service_account else None
    if not settings.sheets_configured:
        logger.warning("sheets_not_configured; row store calls will fail with BACKEND_UNAVAILABLE")
    if not settings.drive_configured:
        logger.warning("drive_not_configured; uploads will fail with BACKEND_UNAVAILABLE")
    grid = SheetsGridBackend(settings.spreadsheet_id, tokens if settings.spreadsheet_id else None, timeout=settings.http_timeout_s)
    objects = DriveObjectStore(tokens, timeout=settings.http_timeout_s)
    return grid, objects, settings.drive_folder_id


def create_app(settings: Settings | None = None, grid=None, objects=None, root_folder_id: str | None = None) -> FastAPI:
    if settings is None:
        load_env_file(ROOT / "app" / ".env")
        settings = load_settings()
    if grid is None or objects is None:
        built_grid, built_objects, built_root = build_backends(settings)
        grid = grid or built_grid
        objects = objects or built_objects
        root_folder_id = root_folder_id or built_root
    locks = KeyedLocks(timeout=settings.lock_timeout_s)
    rows = RowStore(grid, locks=locks)
    folders = FolderProvisioner(objects, root_folder_id or settings.drive_folder_id, locks=locks)
    members = MemberService(rows, folders)
    api = settings.api_prefix

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        created = await _run(rows.initialize_tables)
        logger.info("tables_initialized created=%s", created)
        yield

    app = FastAPI(title="Sheetbase", lifespan=lifespan)
    app.state.settings = settings
    app.state.rows = rows
    app.state.folders = folders
    app.state.members = members
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=_LOCAL_CORS_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def timing_middleware(request: Request, call_next):
        reset_remote_stats()
        start = time.perf_counter()
        response = await call_next(request)
        total_ms = (time.perf_counter() - start) * 1000
        stats = get_remote_stats()
        logger.info(
            "%s %s %s total_ms=%.1f remote_ms=%.1f remote_calls=%s",
            request.method,
            request.url.path,
            response.status_code,
            total_ms,
            stats.get("ms", 0.0),
            stats.get("calls", 0),
        )
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-Remote-Calls"] = str(stats.get("calls", 0))
        return response

    @app.exception_handler(SheetStoreError)
    async def store_error_handler(request: Request, exc: SheetStoreError):
        status = 500
        for cls, mapped in _ERROR_STATUS.items():
            if isinstance(exc, cls):
                status = mapped
                break
        if status >= 500:
            logger.warning("store_error path=%s code=%s error=%s", request.url.path, exc.code, exc)
        response = _error_response(exc.code, exc.message, detail=exc.detail or None, status=status)
        if exc.retryable:
            response.headers["Retry-After"] = "1"
        return response

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return _error_response(exc.code, exc.message, path="Authorization", status=exc.status)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s", request.url.path)
        return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    # ---- Auth ----

    @app.post(f"{api}/auth/signup")
    async def signup(request: Request):
        body = await _safe_json(request)
        name = (body.get("name") or "").strip()
        email = (body.get("email") or "").strip()
        password = body.get("password") or ""
        if not (name and email and password):
            return _error_response("VALIDATION_ERROR", "Name, email, and password are required")
        if not settings.jwt_secret:
            # No Users row is written without a token to hand back.
            return _error_response("AUTH_NOT_CONFIGURED", "Token secret is not configured", status=503)
        password_hash = await _run(hash_password, password)
        user = await _run(members.register, name, email, password_hash)
        token = issue_token(user, settings.jwt_secret, settings.jwt_ttl_s)
        public = {key: user.get(key, "") for key in ("id", "name", "email", "role", "status")}
        return _ok_response({"token": token, "user": public}, status=201)

    @app.post(f"{api}/auth/login")
    async def login(request: Request):
        body = await _safe_json(request)
        email = (body.get("email") or "").strip()
        password = body.get("password") or ""
        if not (email and password):
            return _error_response("VALIDATION_ERROR", "Email and password are required")
        user = await _run(members.find_by_email, email)
        if user is None or not await _run(verify_password, password, user.get("password_hash", "")):
            return _error_response("INVALID_CREDENTIALS", "Invalid credentials", status=401)
        token = issue_token(user, settings.jwt_secret, settings.jwt_ttl_s)
        return _ok_response({"token": token, "user": member_view(user)})

    @app.post(f"{api}/auth/logout")
    async def logout():
        return _ok_response({"message": "Logout successful"})

    @app.get(f"{api}/auth/me")
    async def me(request: Request):
        actor = current_actor(request)
        user = await _run(members.get_user, actor["id"])
        if user is None:
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"user": member_view(user)})

    # ---- Members ----

    @app.get(f"{api}/users")
    async def list_users():
        return _ok_response({"users": await _run(members.list_members)})

    @app.get(f"{api}/users/projects/all")
    async def list_projects():
        return _ok_response({"projects": await _run(members.list_projects)})

    @app.get(f"{api}/users/projects/{{project_id}}")
    async def get_project(project_id: str):
        project = await _run(members.get_project, project_id)
        if project is None:
            return _error_response("NOT_FOUND", "Project not found", status=404)
        return _ok_response({"project": project})

    @app.get(f"{api}/users/{{user_id}}")
    async def get_user(user_id: str):
        member = await _run(members.get_member, user_id)
        if member is None:
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"user": member})

    @app.put(f"{api}/users/{{user_id}}")
    async def update_user(user_id: str, request: Request):
        actor = current_actor(request)
        if not same_actor(actor, user_id) and actor.get("role") != "admin":
            return _error_response("FORBIDDEN", "Unauthorized", status=403)
        body = await _safe_json(request)
        if not await _run(members.update_profile, user_id, body):
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"message": "Profile updated successfully"})

    @app.post(f"{api}/users/{{user_id}}/complete-onboarding")
    async def complete_onboarding(user_id: str, request: Request):
        actor = current_actor(request)
        if not same_actor(actor, user_id):
            return _error_response("FORBIDDEN", "Unauthorized", status=403)
        body = await _safe_json(request)
        if not await _run(members.complete_onboarding, user_id, body):
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"message": "Onboarding completed successfully"})

    # ---- Admin ----

    @app.get(f"{api}/admin/pending-users")
    async def pending_users(request: Request):
        admin_actor(request)
        return _ok_response({"users": await _run(members.list_pending)})

    @app.post(f"{api}/admin/approve/{{user_id}}")
    async def approve_user(user_id: str, request: Request):
        admin_actor(request)
        if not await _run(members.approve, user_id):
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"message": "User approved successfully"})

    @app.post(f"{api}/admin/reject/{{user_id}}")
    async def reject_user(user_id: str, request: Request):
        admin_actor(request)
        if not await _run(members.reject, user_id):
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"message": "User rejected successfully"})

    # ---- Uploads ----

    async def _upload(kind: str, request: Request, image: UploadFile):
        actor = current_actor(request)
        mime_type = image.content_type or "application/octet-stream"
        if not mime_type.startswith("image/"):
            return _error_response("VALIDATION_ERROR", "Only image files are allowed", path="image")
        data = await image.read(MAX_IMAGE_BYTES + 1)
        if len(data) > MAX_IMAGE_BYTES:
            return _error_response("VALIDATION_ERROR", "Image exceeds 5MB limit", path="image", status=413)
        url = await _run(members.upload_image, actor["id"], kind, data, image.filename or "upload", mime_type)
        if url is None:
            return _error_response("NOT_FOUND", "User not found", status=404)
        return _ok_response({"url": url})

    @app.post(f"{api}/upload/profile-image")
    async def upload_profile_image(request: Request, image: UploadFile = File(...)):
        return await _upload("profile", request, image)

    @app.post(f"{api}/upload/banner-image")
    async def upload_banner_image(request: Request, image: UploadFile = File(...)):
        return await _upload("banner", request, image)

    @app.post(f"{api}/upload/project-image")
    async def upload_project_image(request: Request, image: UploadFile = File(...)):
        return await _upload("project", request, image)

    return app


app = create_app()
