# blueprints/auth/services.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from flask_login import UserMixin

from extensions import identity
from identity import ProviderError
from models import Role

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """Who is calling a mutation. Threaded explicitly into every service call."""
    user_id: Optional[str] = None
    role: Optional[Role] = None
    timeout: Optional[float] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_role(self, *roles: Role) -> bool:
        return self.role is not None and self.role in roles


ANONYMOUS = CallerContext()


class SessionUser(UserMixin):
    """Flask-Login user backed by the identity provider (no local users table)."""

    def __init__(self, user_id: str, username: str, role: Optional[str]):
        self.id = user_id
        self.username = username
        self.role = role

    def to_session(self) -> dict:
        return {"id": self.id, "username": self.username, "role": self.role}

    @classmethod
    def from_session(cls, data: dict) -> "SessionUser":
        return cls(data["id"], data.get("username", ""), data.get("role"))


def parse_role(raw: Optional[str]) -> Optional[Role]:
    try:
        return Role(raw) if raw else None
    except ValueError:
        return None


def caller_context(user, timeout: Optional[float] = None) -> CallerContext:
    if user is None or not getattr(user, "is_authenticated", False):
        return CallerContext(timeout=timeout)
    return CallerContext(user_id=str(user.get_id()), role=parse_role(getattr(user, "role", None)), timeout=timeout)


def authenticate(username: str, password: str) -> Optional[SessionUser]:
    """Verify credentials at the provider. Returns None on bad credentials."""
    try:
        found = identity.find_by_username(username)
        if not found or not identity.verify_password(found.id, password):
            return None
    except ProviderError as pe:
        log.warning("login failed at identity provider: %s", pe)
        raise
    return SessionUser(found.id, found.username, found.role)
