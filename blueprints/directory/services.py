# blueprints/directory/services.py
"""Create/update/delete for every entity kind.

Flow per call: authorize -> validate -> (identity provider, person kinds only)
-> persist in one transaction -> (delete: integrity guard first) ->
compensate on partial failure.  Every failure is normalized into a
``MutationResult``; nothing is raised to the HTTP layer.
"""
from __future__ import annotations
import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError

from extensions import db, identity
from identity import IdentityProfile, ProviderError, ProviderErrorKind
from models import (
    Announcement, Assignment, Attendance, Event, Exam, Grade, Lesson, Parent, Result,
    Role, SchoolClass, Student, Subject, Teacher,
)
from blueprints.auth.services import CallerContext
from . import integrity
from .errors import (
    CapacityExceeded, CompensationFailure, MutationError, MutationResult, NotFound,
    PersistenceError, PersistenceKind, ValidationFailed,
)
from .policy import CREATE, DELETE, UPDATE, authorize, ensure_lesson_owner
from .schemas import EntityKind, validate_payload

log = logging.getLogger(__name__)

MODELS: Dict[EntityKind, Any] = {
    EntityKind.TEACHER: Teacher,
    EntityKind.STUDENT: Student,
    EntityKind.PARENT: Parent,
    EntityKind.CLASS: SchoolClass,
    EntityKind.SUBJECT: Subject,
    EntityKind.LESSON: Lesson,
    EntityKind.EXAM: Exam,
    EntityKind.ASSIGNMENT: Assignment,
    EntityKind.RESULT: Result,
    EntityKind.ATTENDANCE: Attendance,
    EntityKind.EVENT: Event,
    EntityKind.ANNOUNCEMENT: Announcement,
}

_PROVIDER_STATUS = {
    ProviderErrorKind.DUPLICATE_IDENTIFIER: 409,
    ProviderErrorKind.BREACHED_CREDENTIAL: 422,
    ProviderErrorKind.WEAK_CREDENTIAL: 422,
    ProviderErrorKind.NOT_FOUND: 404,
    ProviderErrorKind.TRANSIENT: 503,
    ProviderErrorKind.UNKNOWN: 502,
}


# ----------------------- Error translation -----------------------
def provider_message(kind: EntityKind, op: str, pe: ProviderError) -> str:
    who = "parent" if kind == EntityKind.PARENT else "user"
    if pe.kind is ProviderErrorKind.DUPLICATE_IDENTIFIER:
        return f"A {who} with this username or email already exists."
    if pe.kind is ProviderErrorKind.BREACHED_CREDENTIAL:
        return "This password has been compromised in a data breach. Please choose a stronger password."
    if pe.kind is ProviderErrorKind.WEAK_CREDENTIAL:
        return "Password is too short. Please use at least 8 characters."
    if pe.kind is ProviderErrorKind.NOT_FOUND:
        return "User with this identifier not found."
    if pe.kind is ProviderErrorKind.TRANSIENT:
        return "The identity service is not responding. Please try again in a moment."
    if op == CREATE:
        return f"Something went wrong while creating the {who} account."
    return f"Something went wrong while updating the {who} account."


_UNIQUE_FIELD_RES = (
    re.compile(r"unique constraint failed: \w+\.(\w+)"),   # sqlite
    re.compile(r"key \((\w+)\)=\("),                         # postgres
)

def _unique_field(text: str) -> str:
    for rx in _UNIQUE_FIELD_RES:
        m = rx.search(text)
        if m:
            return m.group(1)
    return "value"

def classify_store_error(kind: EntityKind, op: str, ex: SQLAlchemyError) -> PersistenceError:
    text = str(getattr(ex, "orig", None) or ex).lower()
    noun = kind.value
    if isinstance(ex, NoResultFound):
        return PersistenceError(PersistenceKind.NOT_FOUND, f"{kind.label} record not found.", text)
    if isinstance(ex, IntegrityError):
        if "unique" in text or "duplicate" in text:
            field = _unique_field(text)
            return PersistenceError(
                PersistenceKind.DUPLICATE,
                f"A {noun} with this {field} already exists. Please use a different {field}.", text)
        if "foreign key" in text:
            if op == DELETE:
                return PersistenceError(
                    PersistenceKind.HAS_DEPENDENTS,
                    f"This {noun} has related records that prevent deletion.", text)
            return PersistenceError(PersistenceKind.NOT_FOUND, "Required related record not found.", text)
    return PersistenceError(
        PersistenceKind.OTHER, f"Error saving {noun} details to database. Please try again later.", text)


# ----------------------- Boundary -----------------------
def _run(kind: EntityKind, op: str, ctx: CallerContext, fn: Callable[[], None]) -> MutationResult:
    try:
        authorize(ctx, kind, op)
        fn()
    except MutationError as me:
        db.session.rollback()
        log.info("%s %s rejected: %s", op, kind.value, me.message)
        return MutationResult.fail(me.message, me.status)
    except ProviderError as pe:
        db.session.rollback()
        log.warning("%s %s failed at identity provider: %s", op, kind.value, pe)
        return MutationResult.fail(provider_message(kind, op, pe), _PROVIDER_STATUS[pe.kind])
    except SQLAlchemyError as ex:
        db.session.rollback()
        err = classify_store_error(kind, op, ex)
        log.warning("%s %s failed in store (%s): %s", op, kind.value, err.kind.value, err.detail)
        return MutationResult.fail(err.message, 404 if err.kind is PersistenceKind.NOT_FOUND else err.status)
    except Exception:
        db.session.rollback()
        log.exception("%s %s failed unexpectedly", op, kind.value)
        return MutationResult.fail("An unexpected error occurred. Please try again.", 500)
    log.info("%s %s ok", op, kind.value)
    return MutationResult.ok()


def _commit(kind: EntityKind, op: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as ex:
        db.session.rollback()
        raise classify_store_error(kind, op, ex) from ex


def _get_or_404(kind: EntityKind, record_id: Any):
    row = db.session.get(MODELS[kind], record_id)
    if row is None:
        raise NotFound(f"{kind.label} not found")
    return row


def _assign(obj, data: BaseModel, *, exclude: Iterable[str] = ()) -> None:
    for key, value in data.model_dump(exclude={"id", *exclude}).items():
        setattr(obj, key, value)


# ----------------------- Identity pairing -----------------------
def _profile(data: BaseModel, role: Role) -> IdentityProfile:
    return IdentityProfile(
        username=data.username,
        password=data.password,
        first_name=data.name,
        last_name=data.surname,
        email=data.email,
        role=role.value,
    )


def _deprovision_quietly(identity_id: str, ctx: CallerContext) -> None:
    try:
        identity.deprovision_identity(identity_id, timeout=ctx.timeout)
    except Exception as ex:
        log.error("%s", CompensationFailure(identity_id, ex))


def _compensate_lost_provision(profile: IdentityProfile, started_ms: int, ctx: CallerContext) -> None:
    """Provisioning timed out: the user may exist anyway. Remove it if it was created by this call."""
    try:
        found = identity.find_by_username(profile.username, timeout=ctx.timeout)
    except Exception as ex:
        log.error("could not look up %r after provisioning timeout: %s", profile.username, ex)
        return
    if found is None:
        return
    if found.created_at is None or found.created_at < started_ms:
        log.warning("identity %s for %r predates this call; leaving it", found.id, profile.username)
        return
    log.warning("removing identity %s created by a timed out call", found.id)
    _deprovision_quietly(found.id, ctx)


@contextmanager
def paired_identity(ctx: CallerContext, profile: IdentityProfile):
    """Provision the identity, yield its id, undo it if the body fails."""
    started_ms = int(time.time() * 1000)
    try:
        new_id = identity.provision_identity(profile, timeout=ctx.timeout)
    except ProviderError as pe:
        if pe.kind is ProviderErrorKind.TRANSIENT:
            _compensate_lost_provision(profile, started_ms, ctx)
        raise
    try:
        yield new_id
    except Exception:
        db.session.rollback()
        log.warning("persisting %s %s failed; deprovisioning identity", profile.role, new_id)
        _deprovision_quietly(new_id, ctx)
        raise


def _update_paired(ctx: CallerContext, record, previous: IdentityProfile, profile: IdentityProfile,
                   persist: Callable[[], None]) -> None:
    identity.update_identity(record.id, profile, timeout=ctx.timeout)
    try:
        persist()
    except Exception:
        db.session.rollback()
        try:
            identity.update_identity(record.id, previous, timeout=ctx.timeout)
        except Exception as ex:
            log.error("%s", CompensationFailure(record.id, ex))
        raise


def _delete_person(kind: EntityKind, ctx: CallerContext, record_id: str) -> None:
    record = integrity.load_target(kind, record_id)
    plan = integrity.plan_delete(kind, record)
    integrity.enforce(plan)
    integrity.apply(plan)
    _commit(kind, DELETE)
    try:
        identity.deprovision_identity(record_id, timeout=ctx.timeout)
    except Exception as ex:
        # строка в БД уже удалена: считаем операцию успешной
        log.error("orphaned identity %s after deleting %s: %s", record_id, kind.value, ex)


# ----------------------- Lookups -----------------------
def _load_subjects(ids: List[int]) -> List[Subject]:
    if not ids:
        return []
    rows = db.session.query(Subject).filter(Subject.id.in_(ids)).all()
    missing = sorted(set(ids) - {s.id for s in rows})
    if missing:
        raise NotFound(f"Subject not found: {', '.join(map(str, missing))}")
    return rows


def _load_teachers(ids: List[str]) -> List[Teacher]:
    if not ids:
        return []
    rows = db.session.query(Teacher).filter(Teacher.id.in_(ids)).all()
    missing = sorted(set(ids) - {t.id for t in rows})
    if missing:
        raise NotFound(f"Teacher not found: {', '.join(missing)}")
    return rows


def _enrolled(class_id: int) -> int:
    return db.session.query(func.count(Student.id)).filter(Student.class_id == class_id).scalar() or 0


def check_enrollment(class_id: int, grade_id: Optional[int] = None, *, lock: bool = False) -> SchoolClass:
    """Class must exist and have a free seat; grade (when given) must exist."""
    q = db.session.query(SchoolClass).filter(SchoolClass.id == class_id)
    if lock:
        q = q.with_for_update()
    klass = q.one_or_none()
    if klass is None:
        raise NotFound("The selected class does not exist. Please select a valid class.")
    if klass.capacity <= _enrolled(class_id):
        raise CapacityExceeded("Class capacity has been reached. Please select a different class.")
    if grade_id is not None and db.session.get(Grade, grade_id) is None:
        raise NotFound("The selected grade does not exist. Please select a valid grade.")
    return klass


def _lesson_for(ctx: CallerContext, lesson_id: int, what: str) -> Lesson:
    lesson = db.session.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFound("Lesson not found")
    ensure_lesson_owner(ctx, lesson.teacher_id, what)
    return lesson


# ======================= Teacher =======================
def create_teacher(ctx: CallerContext, data) -> None:
    subjects = _load_subjects(data.subjects)
    with paired_identity(ctx, _profile(data, Role.TEACHER)) as new_id:
        t = Teacher(id=new_id, subjects=subjects)
        _assign(t, data, exclude=("password", "subjects"))
        db.session.add(t)
        _commit(EntityKind.TEACHER, CREATE)


def update_teacher(ctx: CallerContext, data) -> None:
    t = _get_or_404(EntityKind.TEACHER, data.id)
    subjects = _load_subjects(data.subjects)
    previous = IdentityProfile(username=t.username, first_name=t.name, last_name=t.surname,
                               role=Role.TEACHER.value)

    def persist():
        _assign(t, data, exclude=("password", "subjects"))
        t.subjects = subjects
        _commit(EntityKind.TEACHER, UPDATE)

    _update_paired(ctx, t, previous, _profile(data, Role.TEACHER), persist)


def delete_teacher(ctx: CallerContext, record_id: str) -> None:
    _delete_person(EntityKind.TEACHER, ctx, record_id)


# ======================= Student =======================
def create_student(ctx: CallerContext, data) -> None:
    check_enrollment(data.class_id, data.grade_id)
    if data.parent_id and db.session.get(Parent, data.parent_id) is None:
        raise NotFound("Parent not found")
    with paired_identity(ctx, _profile(data, Role.STUDENT)) as new_id:
        # повторная проверка под блокировкой строки класса
        check_enrollment(data.class_id, lock=True)
        s = Student(id=new_id)
        _assign(s, data, exclude=("password",))
        db.session.add(s)
        _commit(EntityKind.STUDENT, CREATE)


def update_student(ctx: CallerContext, data) -> None:
    s = _get_or_404(EntityKind.STUDENT, data.id)
    moving = s.class_id != data.class_id
    if moving:
        check_enrollment(data.class_id, data.grade_id)
    previous = IdentityProfile(username=s.username, first_name=s.name, last_name=s.surname,
                               role=Role.STUDENT.value)

    def persist():
        if moving:
            check_enrollment(data.class_id, lock=True)
        _assign(s, data, exclude=("password",))
        _commit(EntityKind.STUDENT, UPDATE)

    _update_paired(ctx, s, previous, _profile(data, Role.STUDENT), persist)


def delete_student(ctx: CallerContext, record_id: str) -> None:
    _delete_person(EntityKind.STUDENT, ctx, record_id)


# ======================= Parent =======================
def create_parent(ctx: CallerContext, data) -> None:
    with paired_identity(ctx, _profile(data, Role.PARENT)) as new_id:
        p = Parent(id=new_id)
        _assign(p, data, exclude=("password",))
        db.session.add(p)
        _commit(EntityKind.PARENT, CREATE)


def update_parent(ctx: CallerContext, data) -> None:
    p = _get_or_404(EntityKind.PARENT, data.id)
    previous = IdentityProfile(username=p.username, first_name=p.name, last_name=p.surname,
                               role=Role.PARENT.value)

    def persist():
        _assign(p, data, exclude=("password",))
        _commit(EntityKind.PARENT, UPDATE)

    _update_paired(ctx, p, previous, _profile(data, Role.PARENT), persist)


def delete_parent(ctx: CallerContext, record_id: str) -> None:
    _delete_person(EntityKind.PARENT, ctx, record_id)


# ======================= Class =======================
def create_class(ctx: CallerContext, data) -> None:
    db.session.add(SchoolClass(name=data.name, capacity=data.capacity, grade_id=data.grade_id,
                               supervisor_id=data.supervisor_id))
    _commit(EntityKind.CLASS, CREATE)


def update_class(ctx: CallerContext, data) -> None:
    c = _get_or_404(EntityKind.CLASS, data.id)
    enrolled = _enrolled(c.id)
    if data.capacity < enrolled:
        raise CapacityExceeded(
            f"Class capacity cannot be lower than the {enrolled} students already enrolled.")
    _assign(c, data)
    _commit(EntityKind.CLASS, UPDATE)


def delete_class(ctx: CallerContext, record_id: int) -> None:
    db.session.delete(_get_or_404(EntityKind.CLASS, record_id))
    _commit(EntityKind.CLASS, DELETE)


# ======================= Subject =======================
def create_subject(ctx: CallerContext, data) -> None:
    db.session.add(Subject(name=data.name, teachers=_load_teachers(data.teachers)))
    _commit(EntityKind.SUBJECT, CREATE)


def update_subject(ctx: CallerContext, data) -> None:
    s = _get_or_404(EntityKind.SUBJECT, data.id)
    s.name = data.name
    s.teachers = _load_teachers(data.teachers)
    _commit(EntityKind.SUBJECT, UPDATE)


def delete_subject(ctx: CallerContext, record_id: int) -> None:
    db.session.delete(_get_or_404(EntityKind.SUBJECT, record_id))
    _commit(EntityKind.SUBJECT, DELETE)


# ======================= Lesson =======================
def create_lesson(ctx: CallerContext, data) -> None:
    lesson = Lesson()
    _assign(lesson, data)
    db.session.add(lesson)
    _commit(EntityKind.LESSON, CREATE)


def update_lesson(ctx: CallerContext, data) -> None:
    lesson = _get_or_404(EntityKind.LESSON, data.id)
    _assign(lesson, data)
    _commit(EntityKind.LESSON, UPDATE)


def delete_lesson(ctx: CallerContext, record_id: int) -> None:
    lesson = _get_or_404(EntityKind.LESSON, record_id)
    ensure_lesson_owner(ctx, lesson.teacher_id)
    db.session.delete(lesson)
    _commit(EntityKind.LESSON, DELETE)


# ======================= Exam / Assignment =======================
def create_exam(ctx: CallerContext, data) -> None:
    _lesson_for(ctx, data.lesson_id, "exams")
    exam = Exam()
    _assign(exam, data)
    db.session.add(exam)
    _commit(EntityKind.EXAM, CREATE)


def update_exam(ctx: CallerContext, data) -> None:
    exam = _get_or_404(EntityKind.EXAM, data.id)
    ensure_lesson_owner(ctx, exam.lesson.teacher_id, "exams")
    _lesson_for(ctx, data.lesson_id, "exams")
    _assign(exam, data)
    _commit(EntityKind.EXAM, UPDATE)


def delete_exam(ctx: CallerContext, record_id: int) -> None:
    exam = _get_or_404(EntityKind.EXAM, record_id)
    ensure_lesson_owner(ctx, exam.lesson.teacher_id, "exams")
    db.session.delete(exam)
    _commit(EntityKind.EXAM, DELETE)


def create_assignment(ctx: CallerContext, data) -> None:
    _lesson_for(ctx, data.lesson_id, "assignments")
    a = Assignment()
    _assign(a, data)
    db.session.add(a)
    _commit(EntityKind.ASSIGNMENT, CREATE)


def update_assignment(ctx: CallerContext, data) -> None:
    a = _get_or_404(EntityKind.ASSIGNMENT, data.id)
    ensure_lesson_owner(ctx, a.lesson.teacher_id, "assignments")
    _lesson_for(ctx, data.lesson_id, "assignments")
    _assign(a, data)
    _commit(EntityKind.ASSIGNMENT, UPDATE)


def delete_assignment(ctx: CallerContext, record_id: int) -> None:
    a = _get_or_404(EntityKind.ASSIGNMENT, record_id)
    ensure_lesson_owner(ctx, a.lesson.teacher_id, "assignments")
    db.session.delete(a)
    _commit(EntityKind.ASSIGNMENT, DELETE)


# ======================= Simple records =======================
def _create_simple(kind: EntityKind):
    def handler(ctx: CallerContext, data) -> None:
        row = MODELS[kind]()
        _assign(row, data)
        db.session.add(row)
        _commit(kind, CREATE)
    handler.__name__ = f"create_{kind.value}"
    return handler


_KEEP_WHEN_MISSING = ("date",)


def _update_simple(kind: EntityKind):
    def handler(ctx: CallerContext, data) -> None:
        row = _get_or_404(kind, data.id)
        # необязательные FK, не пришедшие в форме (exam_id/assignment_id/class_id), обнуляются;
        # обязательные колонки без значения остаются как есть
        keep = [f for f in _KEEP_WHEN_MISSING if getattr(data, f, None) is None]
        _assign(row, data, exclude=keep)
        _commit(kind, UPDATE)
    handler.__name__ = f"update_{kind.value}"
    return handler


def _delete_simple(kind: EntityKind):
    def handler(ctx: CallerContext, record_id: int) -> None:
        db.session.delete(_get_or_404(kind, record_id))
        _commit(kind, DELETE)
    handler.__name__ = f"delete_{kind.value}"
    return handler


Handlers = Tuple[Callable, Callable, Callable]

HANDLERS: Dict[EntityKind, Handlers] = {
    EntityKind.TEACHER: (create_teacher, update_teacher, delete_teacher),
    EntityKind.STUDENT: (create_student, update_student, delete_student),
    EntityKind.PARENT: (create_parent, update_parent, delete_parent),
    EntityKind.CLASS: (create_class, update_class, delete_class),
    EntityKind.SUBJECT: (create_subject, update_subject, delete_subject),
    EntityKind.LESSON: (create_lesson, update_lesson, delete_lesson),
    EntityKind.EXAM: (create_exam, update_exam, delete_exam),
    EntityKind.ASSIGNMENT: (create_assignment, update_assignment, delete_assignment),
}
for _kind in (EntityKind.RESULT, EntityKind.ATTENDANCE, EntityKind.EVENT, EntityKind.ANNOUNCEMENT):
    HANDLERS[_kind] = (_create_simple(_kind), _update_simple(_kind), _delete_simple(_kind))


def _coerce_id(kind: EntityKind, raw: Any):
    if kind.is_person:
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
    else:
        try:
            return int(raw)
        except (TypeError, ValueError):
            pass
    raise ValidationFailed([{"field": "id", "message": f"Invalid {kind.value} ID provided"}])


# ----------------------- Public API -----------------------
def create(kind: EntityKind, ctx: CallerContext, payload: Dict[str, Any]) -> MutationResult:
    handler = HANDLERS[kind][0]
    return _run(kind, CREATE, ctx, lambda: handler(ctx, validate_payload(kind, payload)))


def update(kind: EntityKind, ctx: CallerContext, payload: Dict[str, Any]) -> MutationResult:
    handler = HANDLERS[kind][1]
    return _run(kind, UPDATE, ctx, lambda: handler(ctx, validate_payload(kind, payload, update=True)))


def delete(kind: EntityKind, ctx: CallerContext, record_id: Any) -> MutationResult:
    handler = HANDLERS[kind][2]
    return _run(kind, DELETE, ctx, lambda: handler(ctx, _coerce_id(kind, record_id)))
