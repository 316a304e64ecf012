"""Member workflows on top of the row store and folder provisioner."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List

from folder_provisioner import FolderProvisioner
from row_store import PROJECTS, USERS, RowStore
from sheetkit.errors import DuplicateEmail
from sheetkit.records import Record, field_equals, join_list, split_list


STATUS_INCOMPLETE = "incomplete"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
IMAGE_KINDS = ("profile", "banner", "project")

_logger = logging.getLogger("sheetbase.members")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def email_matches(email: str) -> Callable[[Record], bool]:
    wanted = _normalize_email(email)
    return lambda row: _normalize_email(row.get("email")) == wanted


def project_view(project: Record) -> dict:
    return {
        "id": project.get("id", ""),
        "title": project.get("title", ""),
        "link": project.get("link", ""),
        "description": project.get("description", ""),
        "image": project.get("image_url", ""),
    }


def member_view(user: Record, projects: List[Record] | None = None) -> dict:
    view = {
        "id": user.get("id", ""),
        "name": user.get("name", ""),
        "email": user.get("email", ""),
        "role": user.get("role", ""),
        "status": user.get("status", ""),
        "tagline": user.get("tagline", ""),
        "bio": user.get("bio", ""),
        "techStack": split_list(user.get("tech_stack")),
        "profileImage": user.get("profile_image_url", ""),
        "bannerImage": user.get("banner_image_url", ""),
        "availability": user.get("availability", ""),
        "rate": user.get("rate", ""),
        "experience": user.get("experience", ""),
        "socials": {
            "github": user.get("github", ""),
            "linkedin": user.get("linkedin", ""),
            "portfolio": user.get("portfolio", ""),
        },
    }
    if projects is not None:
        view["projects"] = [project_view(p) for p in projects]
    return view


def _category(description: str) -> str:
    words = (description or "").split()
    return words[0] if words else "Project"


def profile_patch(changes: dict) -> dict:
    """Map profile payload keys onto Users columns."""
    patch = dict(changes)
    if "techStack" in patch:
        stack = patch.pop("techStack")
        if isinstance(stack, list):
            patch["tech_stack"] = join_list(stack)
    socials = patch.pop("socials", None)
    if isinstance(socials, dict):
        for key in ("github", "linkedin", "portfolio"):
            patch[key] = socials.get(key) or ""
    if "profileImage" in patch:
        patch["profile_image_url"] = patch.pop("profileImage")
    if "bannerImage" in patch:
        patch["banner_image_url"] = patch.pop("bannerImage")
    # Identity and credentials never change through a profile edit.
    for key in ("id", "email", "password_hash", "role", "status", "created_at"):
        patch.pop(key, None)
    return patch


class MemberService:
    def __init__(self, rows: RowStore, folders: FolderProvisioner, clock: Callable[[], datetime] = _now) -> None:
        self._rows = rows
        self._folders = folders
        self._clock = clock

    def _stamp(self) -> str:
        return _iso(self._clock())

    def register(self, name: str, email: str, password_hash: str, role: str = "user") -> Record:
        now = self._stamp()
        user = {
            "id": str(uuid.uuid4()),
            "name": name,
            "email": email.strip(),
            "password_hash": password_hash,
            "role": role,
            "status": STATUS_INCOMPLETE,
            "created_at": now,
            "updated_at": now,
        }
        # Unique-email check and append share one Users critical section.
        with self._rows.mutation_scope(USERS):
            if self._rows.find_one(USERS, email_matches(email)) is not None:
                raise DuplicateEmail("User with this email already exists", detail={"email": email})
            self._rows.append_row(USERS, user)
        _logger.info("member_registered user_id=%s", user["id"])
        return user

    def find_by_email(self, email: str) -> Record | None:
        return self._rows.find_one(USERS, email_matches(email))

    def get_user(self, user_id: str) -> Record | None:
        return self._rows.find_one(USERS, field_equals(id=user_id))

    def get_member(self, user_id: str) -> dict | None:
        user = self.get_user(user_id)
        if user is None:
            return None
        projects = self._rows.find_rows(PROJECTS, field_equals(user_id=user_id))
        return member_view(user, projects)

    def list_members(self, status: str = STATUS_APPROVED) -> List[dict]:
        users = self._rows.find_rows(USERS, field_equals(status=status))
        if not users:
            return []
        by_owner: dict[str, List[Record]] = {}
        for project in self._rows.get_all(PROJECTS):
            by_owner.setdefault(project.get("user_id", ""), []).append(project)
        return [member_view(user, by_owner.get(user.get("id", ""), [])) for user in users]

    def list_pending(self) -> List[dict]:
        return self.list_members(status=STATUS_PENDING)

    def update_profile(self, user_id: str, changes: dict) -> bool:
        patch = profile_patch(changes)
        patch["updated_at"] = self._stamp()
        return self._rows.update_row(USERS, field_equals(id=user_id), patch)

    def complete_onboarding(self, user_id: str, payload: dict) -> bool:
        now = self._stamp()
        socials = payload.get("socials") or {}
        stack = payload.get("techStack")
        updated = self._rows.update_row(
            USERS,
            field_equals(id=user_id),
            {
                "tagline": payload.get("tagline") or "",
                "bio": payload.get("bio") or "",
                "tech_stack": join_list(stack) if isinstance(stack, list) else "",
                "banner_image_url": payload.get("bannerImage") or "",
                "profile_image_url": payload.get("profileImage") or "",
                "availability": payload.get("availability") or "",
                "rate": payload.get("rate") or "",
                "experience": payload.get("experience") or "",
                "github": socials.get("github") or "",
                "linkedin": socials.get("linkedin") or "",
                "portfolio": socials.get("portfolio") or "",
                "status": STATUS_PENDING,
                "updated_at": now,
            },
        )
        if not updated:
            return False
        for project in payload.get("projects") or []:
            if not isinstance(project, dict) or not (project.get("title") and project.get("description")):
                continue
            self._rows.append_row(
                PROJECTS,
                {
                    "id": str(uuid.uuid4()),
                    "user_id": user_id,
                    "title": project.get("title"),
                    "link": project.get("link") or "",
                    "description": project.get("description"),
                    "image_url": project.get("image") or "",
                    "created_at": now,
                },
            )
        _logger.info("member_onboarded user_id=%s", user_id)
        return True

    def approve(self, user_id: str) -> bool:
        return self._rows.update_row(
            USERS,
            field_equals(id=user_id),
            {"status": STATUS_APPROVED, "updated_at": self._stamp()},
        )

    def reject(self, user_id: str) -> bool:
        """Delete the user, then each of their projects.

        Not atomic: every delete is its own critical section, and a failure
        part-way leaves the remaining projects in place.
        """
        if not self._rows.delete_row(USERS, field_equals(id=user_id)):
            return False
        projects = self._rows.find_rows(PROJECTS, field_equals(user_id=user_id))
        for project in projects:
            self._rows.delete_row(PROJECTS, field_equals(id=project.get("id", "")))
        _logger.info("member_rejected user_id=%s projects_removed=%s", user_id, len(projects))
        return True

    def list_projects(self) -> List[dict]:
        approved = {u.get("id", ""): u for u in self._rows.find_rows(USERS, field_equals(status=STATUS_APPROVED))}
        items = []
        for project in self._rows.get_all(PROJECTS):
            owner = approved.get(project.get("user_id", ""))
            if owner is None:
                continue
            items.append(
                {
                    **project_view(project),
                    "user_id": project.get("user_id", ""),
                    "member": owner.get("name") or "Unknown",
                    "category": _category(project.get("description", "")),
                }
            )
        return items

    def get_project(self, project_id: str) -> dict | None:
        project = self._rows.find_one(PROJECTS, field_equals(id=project_id))
        if project is None:
            return None
        owner = self._rows.find_one(USERS, field_equals(id=project.get("user_id", "")))
        return {
            **project_view(project),
            "user_id": project.get("user_id", ""),
            "member": (owner or {}).get("name") or "Unknown",
            "memberId": (owner or {}).get("id"),
            "category": _category(project.get("description", "")),
            "user": {
                "name": owner.get("name", ""),
                "tagline": owner.get("tagline", ""),
                "profileImage": owner.get("profile_image_url", ""),
            }
            if owner
            else None,
        }

    def upload_image(self, user_id: str, kind: str, data: bytes, filename: str, mime_type: str) -> str | None:
        if kind not in IMAGE_KINDS:
            raise ValueError(f"Unknown image kind: {kind}")
        user = self.get_user(user_id)
        if user is None:
            return None
        folder_id = self._folders.ensure_folder(user.get("id", ""), user.get("name", ""))
        stamp = int(self._clock().timestamp() * 1000)
        return self._folders.upload_file(data, f"{kind}-{stamp}-{filename}", mime_type, folder_id)
