"""Pre-delete dependency checks for person records.

Each dependent collection of the record being deleted is classified as
blocking (abort, nothing written), detachable (drop the association row) or
cascadable (delete the dependent rows first).  The plan is computed from the
loaded record and applied inside the caller's transaction.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from sqlalchemy.orm import selectinload

from extensions import db
from models import Parent, Student, Teacher
from .errors import IntegrityViolation, NotFound
from .schemas import EntityKind

log = logging.getLogger(__name__)


class Disposition(str, Enum):
    BLOCKING = "blocking"
    DETACHABLE = "detachable"
    CASCADABLE = "cascadable"


GUARDED: Dict[EntityKind, Dict[str, Disposition]] = {
    EntityKind.TEACHER: {
        "classes": Disposition.BLOCKING,
        "lessons": Disposition.BLOCKING,
        "subjects": Disposition.DETACHABLE,
    },
    EntityKind.STUDENT: {
        "results": Disposition.CASCADABLE,
        "attendances": Disposition.CASCADABLE,
    },
    EntityKind.PARENT: {
        "students": Disposition.BLOCKING,
    },
}

_MODELS = {EntityKind.TEACHER: Teacher, EntityKind.STUDENT: Student, EntityKind.PARENT: Parent}

BLOCKED_MESSAGES = {
    (EntityKind.TEACHER, "classes"):
        "Cannot delete teacher who is supervising classes. Please reassign classes first.",
    (EntityKind.TEACHER, "lessons"):
        "Cannot delete teacher who is assigned to lessons. Please reassign or delete these lessons first.",
    (EntityKind.PARENT, "students"):
        "Cannot delete parent with linked students. Please unlink or reassign students first.",
}


@dataclass
class Dependents:
    relation: str
    records: List[Any]

    def __bool__(self) -> bool:
        return bool(self.records)


@dataclass
class DeletePlan:
    kind: EntityKind
    root: Any
    blocking: List[Dependents] = field(default_factory=list)
    detachable: List[Dependents] = field(default_factory=list)
    cascadable: List[Dependents] = field(default_factory=list)

    @property
    def blockers(self) -> List[Dependents]:
        return [d for d in self.blocking if d]


def load_target(kind: EntityKind, record_id: str):
    """Fetch the record together with the collections the guard looks at."""
    model = _MODELS[kind]
    options = [selectinload(getattr(model, rel)) for rel in GUARDED[kind]]
    record = db.session.query(model).options(*options).filter(model.id == record_id).one_or_none()
    if record is None:
        raise NotFound(f"{kind.label} not found")
    return record


def plan_delete(kind: EntityKind, record) -> DeletePlan:
    plan = DeletePlan(kind=kind, root=record)
    for relation, disposition in GUARDED.get(kind, {}).items():
        deps = Dependents(relation, list(getattr(record, relation)))
        if disposition is Disposition.BLOCKING:
            plan.blocking.append(deps)
        elif disposition is Disposition.DETACHABLE:
            plan.detachable.append(deps)
        else:
            plan.cascadable.append(deps)
    return plan


def enforce(plan: DeletePlan) -> None:
    blockers = plan.blockers
    if not blockers:
        return
    first = blockers[0]
    log.info("delete of %s %s blocked by %d %s",
             plan.kind.value, plan.root.id, len(first.records), first.relation)
    message = BLOCKED_MESSAGES.get(
        (plan.kind, first.relation),
        f"Cannot delete {plan.kind.value} with linked {first.relation}.",
    )
    raise IntegrityViolation(first.relation, message)


def apply(plan: DeletePlan) -> None:
    """Detach, cascade, then delete the root. Caller owns the transaction."""
    for deps in plan.detachable:
        if deps:
            log.info("detaching %s %s from %d %s", plan.kind.value, plan.root.id, len(deps.records), deps.relation)
            getattr(plan.root, deps.relation).clear()
    for deps in plan.cascadable:
        if deps:
            log.info("deleting %d %s of %s %s", len(deps.records), deps.relation, plan.kind.value, plan.root.id)
            for row in deps.records:
                db.session.delete(row)
    db.session.flush()
    db.session.delete(plan.root)
    db.session.flush()
