from __future__ import annotations

import os
import sqlite3

from checklist_tracking.data.repositories import ProfileRepository
from checklist_tracking.domain.constants import ROLE_ADMIN
from checklist_tracking.domain.errors import Forbidden


def is_admin(role: str | None) -> bool:
    return (role or "").strip().lower() == ROLE_ADMIN


def require_admin(role: str | None) -> None:
    if not is_admin(role):
        raise Forbidden("Administrator role required.")


def resolve_role(con: sqlite3.Connection) -> str:
    """Role of the configured user profile, else ``CHECKLIST_TRACKING_ROLE``."""
    role = ProfileRepository(con).get_role(os.getenv("CHECKLIST_TRACKING_USER_EMAIL"))
    return role or os.getenv("CHECKLIST_TRACKING_ROLE", ROLE_ADMIN)
