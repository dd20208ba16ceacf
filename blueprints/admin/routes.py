from __future__ import annotations
from flask import Blueprint, jsonify
from sqlalchemy import func

from extensions import db
from models import (
    Announcement, Event, Lesson, Parent, SchoolClass, Sex, Student, Subject, Teacher,
)
from blueprints.auth.routes import admin_required

api_bp = Blueprint("admin_api", __name__)


# ---------- API (summary для дашборда) ----------
@api_bp.get("/admin/dashboard/summary")
@admin_required
def dashboard_summary():
    counters = {
        "teachers": db.session.query(Teacher).count(),
        "students": db.session.query(Student).count(),
        "parents": db.session.query(Parent).count(),
        "classes": db.session.query(SchoolClass).count(),
        "subjects": db.session.query(Subject).count(),
        "lessons": db.session.query(Lesson).count(),
        "events": db.session.query(Event).count(),
        "announcements": db.session.query(Announcement).count(),
    }
    by_sex = dict(
        db.session.query(Student.sex, func.count(Student.id)).group_by(Student.sex).all()
    )
    return jsonify({
        "ok": True,
        "counters": counters,
        "students_by_sex": {
            "boys": by_sex.get(Sex.MALE, 0),
            "girls": by_sex.get(Sex.FEMALE, 0),
        },
    })
