from __future__ import annotations
import logging
from typing import Any, Dict, List

from flask import abort, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_
from sqlalchemy.orm import Query

from . import bp
from . import services
from .policy import ADMIN
from .schemas import EntityKind, OUTPUT_SCHEMAS
from blueprints.auth.routes import staff_required
from blueprints.auth.services import caller_context
from extensions import db
from models import (
    Announcement, Assignment, Attendance, Event, Exam, Lesson, Parent, Result,
    SchoolClass, Student, Subject, Teacher,
)

log = logging.getLogger(__name__)

# URL-сегмент -> сущность
RESOURCES: Dict[str, EntityKind] = {
    "teachers": EntityKind.TEACHER,
    "students": EntityKind.STUDENT,
    "parents": EntityKind.PARENT,
    "classes": EntityKind.CLASS,
    "subjects": EntityKind.SUBJECT,
    "lessons": EntityKind.LESSON,
    "exams": EntityKind.EXAM,
    "assignments": EntityKind.ASSIGNMENT,
    "results": EntityKind.RESULT,
    "attendances": EntityKind.ATTENDANCE,
    "events": EntityKind.EVENT,
    "announcements": EntityKind.ANNOUNCEMENT,
}

# создание справочников и людей: только админ
_ADMIN_CREATE = {
    EntityKind.TEACHER, EntityKind.STUDENT, EntityKind.PARENT,
    EntityKind.CLASS, EntityKind.SUBJECT, EntityKind.LESSON,
}

_ORDERING = {
    Teacher: Teacher.surname, Student: Student.surname, Parent: Parent.surname,
    SchoolClass: SchoolClass.name, Subject: Subject.name, Lesson: Lesson.start_time,
    Exam: Exam.start_time, Assignment: Assignment.due_date, Result: Result.id,
    Attendance: Attendance.date, Event: Event.start_time, Announcement: Announcement.date,
}


# ----------------------- Helpers -----------------------
def _kind_or_404(resource: str) -> EntityKind:
    kind = RESOURCES.get(resource)
    if kind is None:
        abort(404)
    return kind


def _ctx():
    return caller_context(current_user, timeout=current_app.config.get("IDENTITY_TIMEOUT"))


def _result_response(result):
    return jsonify(result.as_dict()), result.status


def _paginate(query: Query, serializer, *, page: int, per_page: int):
    total = query.count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    items = [serializer.model_validate(r).model_dump(mode="json") for r in rows]
    return {"items": items, "meta": {"page": page, "per_page": per_page, "total": total}}


def _search_filter(model, q: str):
    fields_map = {
        Teacher: [Teacher.name, Teacher.surname, Teacher.username],
        Student: [Student.name, Student.surname, Student.username],
        Parent: [Parent.name, Parent.surname, Parent.username],
        SchoolClass: [SchoolClass.name],
        Subject: [Subject.name],
        Lesson: [Lesson.name],
        Exam: [Exam.title],
        Assignment: [Assignment.title],
        Event: [Event.title],
        Announcement: [Announcement.title],
    }
    cols: List[Any] = fields_map.get(model, [])
    term = str(q).strip()
    conds = [col.like(f"%{term}%") for col in cols]
    return or_(*conds) if conds else None


def _page_args():
    try:
        page = max(1, int(request.args.get("page", 1)))
        per_page = int(request.args.get("per_page", current_app.config.get("PER_PAGE_DEFAULT", 10)))
    except ValueError:
        abort(400)
    return page, max(1, min(current_app.config.get("PER_PAGE_MAX", 100), per_page))


# ----------------------- Read -----------------------
@bp.get("/<resource>")
@login_required
def api_list(resource: str):
    kind = _kind_or_404(resource)
    model = services.MODELS[kind]
    s = db.session.query(model)
    q = request.args.get("q", "")
    if q:
        cond = _search_filter(model, q)
        if cond is not None:
            s = s.filter(cond)
    s = s.order_by(_ORDERING[model].asc(), model.id.asc())
    page, per_page = _page_args()
    return jsonify(_paginate(s, OUTPUT_SCHEMAS[kind], page=page, per_page=per_page))


@bp.get("/<resource>/<record_id>")
@login_required
def api_get(resource: str, record_id: str):
    kind = _kind_or_404(resource)
    key: Any = record_id
    if not kind.is_person:
        try:
            key = int(record_id)
        except ValueError:
            abort(404)
    row = db.session.get(services.MODELS[kind], key) or abort(404)
    return jsonify(OUTPUT_SCHEMAS[kind].model_validate(row).model_dump(mode="json"))


# ----------------------- Mutations -----------------------
@bp.post("/<resource>")
@staff_required
def api_create(resource: str):
    kind = _kind_or_404(resource)
    ctx = _ctx()
    if kind in _ADMIN_CREATE and ctx.role not in ADMIN:
        abort(403)
    payload = request.get_json(silent=True) or {}
    return _result_response(services.create(kind, ctx, payload))


@bp.put("/<resource>/<record_id>")
@login_required
def api_update(resource: str, record_id: str):
    kind = _kind_or_404(resource)
    payload = dict(request.get_json(silent=True) or {})
    payload["id"] = record_id
    return _result_response(services.update(kind, _ctx(), payload))


@bp.delete("/<resource>/<record_id>")
@login_required
def api_delete(resource: str, record_id: str):
    kind = _kind_or_404(resource)
    return _result_response(services.delete(kind, _ctx(), record_id))
