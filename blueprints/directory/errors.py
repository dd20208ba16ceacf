from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class MutationError(Exception):
    """Base for failures normalized into the result contract."""

    status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationFailed(MutationError):
    status = 422

    def __init__(self, violations: List[Dict[str, str]]):
        self.violations = violations
        super().__init__("; ".join(f"{v['field']}: {v['message']}" for v in violations) or "Invalid input")


class PermissionDenied(MutationError):
    status = 403


class NotFound(MutationError):
    status = 404


class IntegrityViolation(MutationError):
    """Blocking dependents prevent a delete; ``relation`` names them."""

    status = 409

    def __init__(self, relation: str, message: str):
        self.relation = relation
        super().__init__(message)


class CapacityExceeded(MutationError):
    status = 409


class PersistenceKind(str, Enum):
    HAS_DEPENDENTS = "has_dependents"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    OTHER = "other"


class PersistenceError(MutationError):
    status = 409

    def __init__(self, kind: PersistenceKind, message: str, detail: Optional[str] = None):
        self.kind = kind
        self.detail = detail
        super().__init__(message)


class CompensationFailure(Exception):
    """Secondary cleanup failed; logged, never the reported failure."""

    def __init__(self, identity_id: str, cause: BaseException):
        self.identity_id = identity_id
        self.cause = cause
        super().__init__(f"compensation failed for identity {identity_id}: {cause}")


@dataclass
class MutationResult:
    success: bool
    error: bool
    message: Optional[str] = None
    status: int = 200

    @classmethod
    def ok(cls) -> "MutationResult":
        return cls(success=True, error=False)

    @classmethod
    def fail(cls, message: str, status: int = 400) -> "MutationResult":
        return cls(success=False, error=True, message=message, status=status)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "error": self.error}
        if not self.success and self.message:
            out["message"] = self.message
        return out
