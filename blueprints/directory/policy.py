from __future__ import annotations
from typing import Dict, FrozenSet, Optional, Tuple

from models import Role
from blueprints.auth.services import CallerContext
from .errors import PermissionDenied
from .schemas import EntityKind

CREATE, UPDATE, DELETE = "create", "update", "delete"

ADMIN = frozenset({Role.ADMIN})
STAFF = frozenset({Role.ADMIN, Role.TEACHER})

# None = not checked by the service (create of directory records is gated at the route)
_RULES: Dict[Tuple[EntityKind, str], Optional[FrozenSet[Role]]] = {}

for _kind in (EntityKind.SUBJECT, EntityKind.CLASS, EntityKind.TEACHER,
              EntityKind.STUDENT, EntityKind.PARENT, EntityKind.LESSON):
    _RULES[(_kind, CREATE)] = None
    _RULES[(_kind, UPDATE)] = ADMIN
    _RULES[(_kind, DELETE)] = ADMIN

# урок может удалить и его преподаватель (владение проверяет сервис)
_RULES[(EntityKind.LESSON, DELETE)] = STAFF

for _kind in (EntityKind.EXAM, EntityKind.ASSIGNMENT, EntityKind.RESULT,
              EntityKind.ATTENDANCE, EntityKind.EVENT, EntityKind.ANNOUNCEMENT):
    for _op in (CREATE, UPDATE, DELETE):
        _RULES[(_kind, _op)] = STAFF


def allowed_roles(kind: EntityKind, op: str) -> Optional[FrozenSet[Role]]:
    return _RULES[(kind, op)]


def authorize(ctx: CallerContext, kind: EntityKind, op: str) -> None:
    roles = allowed_roles(kind, op)
    if roles is None:
        return
    if not ctx.is_authenticated or ctx.role not in roles:
        if kind == EntityKind.PARENT and op == DELETE:
            raise PermissionDenied("Only admins can delete parents")
        raise PermissionDenied(f"You are not allowed to {op} this {kind.value}.")


def ensure_lesson_owner(ctx: CallerContext, teacher_id: str, what: Optional[str] = None) -> None:
    """Teachers may only act on their own lessons; admins on any."""
    if ctx.role == Role.TEACHER and teacher_id != ctx.user_id:
        if what:
            raise PermissionDenied(f"You can only manage the {what} of your own lessons.")
        raise PermissionDenied("You can only manage your own lessons.")
