from __future__ import annotations
import time
from datetime import date

import pytest

from app import create_app
from extensions import db, identity
from identity import IdentityUser, ProviderError, ProviderErrorKind
from models import Grade, Role, SchoolClass, Sex, Student, Subject, Teacher
from blueprints.auth.services import CallerContext

ADMIN = CallerContext(user_id="user_admin", role=Role.ADMIN)


class FakeIdentityBackend:
    """In-memory stand-in for the provider's REST API.

    ``fail[method] = exc`` makes that method raise ``exc`` (any exception).
    ``create_then_timeout`` stores the user and then raises TRANSIENT.
    """

    def __init__(self):
        self.users: dict[str, IdentityUser] = {}
        self.passwords: dict[str, str] = {}
        self.fail: dict[str, Exception] = {}
        self.create_then_timeout = False
        self.calls: list[tuple[str, str]] = []
        self._seq = 0

    def _maybe_fail(self, method: str):
        err = self.fail.get(method)
        if err is not None:
            raise err

    def add(self, username: str, password: str, role: str) -> IdentityUser:
        self._seq += 1
        user = IdentityUser(id=f"user_{self._seq}", username=username, role=role,
                            created_at=int(time.time() * 1000))
        self.users[user.id] = user
        self.passwords[user.id] = password
        return user

    def create_user(self, profile, *, timeout=None):
        self.calls.append(("create_user", profile.username))
        self._maybe_fail("create_user")
        if any(u.username == profile.username for u in self.users.values()):
            raise ProviderError(ProviderErrorKind.DUPLICATE_IDENTIFIER, ["form_identifier_exists"], 422)
        if not profile.password or len(profile.password) < 8:
            raise ProviderError(ProviderErrorKind.WEAK_CREDENTIAL, ["form_password_length_too_short"], 422)
        user = self.add(profile.username, profile.password, profile.role)
        user.first_name, user.last_name, user.email = profile.first_name, profile.last_name, profile.email
        if self.create_then_timeout:
            raise ProviderError(ProviderErrorKind.TRANSIENT)
        return user

    def get_user(self, user_id, *, timeout=None):
        self.calls.append(("get_user", user_id))
        if user_id not in self.users:
            raise ProviderError(ProviderErrorKind.NOT_FOUND, ["resource_not_found"], 404)
        return self.users[user_id]

    def find_by_username(self, username, *, timeout=None):
        self.calls.append(("find_by_username", username))
        self._maybe_fail("find_by_username")
        return next((u for u in self.users.values() if u.username == username), None)

    def update_user(self, user_id, profile, *, timeout=None):
        self.calls.append(("update_user", user_id))
        self._maybe_fail("update_user")
        user = self.get_user(user_id)
        user.username, user.first_name, user.last_name = profile.username, profile.first_name, profile.last_name
        if profile.password:
            self.passwords[user_id] = profile.password
        return user

    def delete_user(self, user_id, *, timeout=None):
        self.calls.append(("delete_user", user_id))
        self._maybe_fail("delete_user")
        if self.users.pop(user_id, None) is None:
            raise ProviderError(ProviderErrorKind.NOT_FOUND, ["resource_not_found"], 404)
        self.passwords.pop(user_id, None)

    def verify_password(self, user_id, password, *, timeout=None):
        self.calls.append(("verify_password", user_id))
        return self.passwords.get(user_id) == password


@pytest.fixture()
def app():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def fake_identity(app, monkeypatch):
    fake = FakeIdentityBackend()
    monkeypatch.setattr(identity, "backend", fake)
    return fake


@pytest.fixture()
def client(app, fake_identity):
    with app.test_client() as c:
        yield c


@pytest.fixture()
def school(app):
    """Grade 1, class 1A (capacity 30), two subjects."""
    grade = Grade(level=1)
    db.session.add(grade)
    db.session.flush()
    klass = SchoolClass(name="1A", capacity=30, grade_id=grade.id)
    math, art = Subject(name="Mathematics"), Subject(name="Art")
    db.session.add_all([klass, math, art])
    db.session.commit()
    return {"grade": grade.id, "class": klass.id, "math": math.id, "art": art.id}


def login_as(client, user_id: str, role: str, username: str = "someone"):
    with client.session_transaction() as sess:
        sess["auth_user"] = {"id": user_id, "username": username, "role": role}
        sess["_user_id"] = user_id
        sess["_fresh"] = True


def person_payload(username: str, **extra):
    data = {
        "username": username,
        "password": "correct-horse-1",
        "name": "Ann",
        "surname": "Lee",
        "address": "1 Main St",
        "blood_type": "A+",
        "sex": "FEMALE",
        "birthday": "2012-05-01",
    }
    data.update(extra)
    return data


def add_teacher(teacher_id: str = "t_1", username: str = "teach1", **extra) -> Teacher:
    t = Teacher(id=teacher_id, username=username, name="Tom", surname="Hart", address="2 Oak Rd",
                blood_type="0+", sex=Sex.MALE, birthday=date(1980, 1, 1), **extra)
    db.session.add(t)
    db.session.commit()
    return t


def add_student(student_id: str, class_id: int, grade_id: int, **extra) -> Student:
    s = Student(id=student_id, username=extra.pop("username", f"u_{student_id}"), name="Kid",
                surname="Doe", address="3 Elm St", blood_type="B+", sex=Sex.MALE,
                birthday=date(2013, 2, 2), class_id=class_id, grade_id=grade_id, **extra)
    db.session.add(s)
    db.session.commit()
    return s
