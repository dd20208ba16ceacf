"""
Idempotent seed-скрипт.
Запуск:
  python seed.py --reset   # дропнуть и пересоздать БД + справочники
  python seed.py           # мягкое наполнение недостающих данных (idempotent)

Людей (учителя, ученики, родители) здесь не создаём: им нужна учётка
у провайдера идентичности, их заводят через API.
"""
from datetime import datetime, timedelta
import argparse

from app import create_app
from extensions import db
from models import Announcement, Event, Grade, SchoolClass, Subject

GRADE_LEVELS = range(1, 7)
CLASS_CAPACITY = 30
SUBJECTS = ["Mathematics", "English", "Physics", "Chemistry", "Biology",
            "History", "Geography", "Art", "Music", "Literature"]


def get_or_create(model, defaults=None, **by):
    """Идемпотентное создание по уникальным ключам."""
    inst = db.session.query(model).filter_by(**by).first()
    if inst:
        return inst, False
    data = dict(defaults or {})
    data.update(by)
    inst = model(**data)
    db.session.add(inst)
    db.session.flush()
    return inst, True


def seed_structure():
    created = 0
    for level in GRADE_LEVELS:
        grade, new = get_or_create(Grade, level=level)
        created += new
        # по одному классу на параллель: 1A, 2A, ...
        _, new = get_or_create(SchoolClass, defaults={"capacity": CLASS_CAPACITY, "grade_id": grade.id},
                               name=f"{level}A")
        created += new
    for name in SUBJECTS:
        _, new = get_or_create(Subject, name=name)
        created += new
    return created


def seed_calendar():
    if db.session.query(Event).first() or db.session.query(Announcement).first():
        return 0
    now = datetime.utcnow().replace(minute=0, second=0, microsecond=0)
    first_class = db.session.query(SchoolClass).order_by(SchoolClass.name).first()
    db.session.add_all([
        Event(title="School assembly", description="Whole-school assembly in the main hall.",
              start_time=now + timedelta(days=1), end_time=now + timedelta(days=1, hours=1)),
        Event(title="Class trip", description="Museum visit.",
              start_time=now + timedelta(days=7), end_time=now + timedelta(days=7, hours=4),
              class_id=first_class.id if first_class else None),
        Announcement(title="Welcome", description="The new term starts on Monday.", date=now),
    ])
    return 3


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="drop + create + seed")
    parser.add_argument("--no-calendar", action="store_true", help="skip demo events/announcements")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
        db.create_all()
        created = seed_structure()
        if not args.no_calendar:
            created += seed_calendar()
        db.session.commit()
        print(f"[seed] {'reset+' if args.reset else ''}seed complete, {created} rows created")


if __name__ == "__main__":
    main()
