from __future__ import annotations
from extensions import db
from models import Sex, Student
from conftest import add_student, add_teacher, login_as, person_payload


def test_requires_login(client, school):
    assert client.get("/api/v1/classes").status_code == 401
    assert client.post("/api/v1/classes", json={}).status_code == 401


def test_unknown_resource_404(client):
    login_as(client, "user_admin", "admin")
    assert client.get("/api/v1/spaceships").status_code == 404


def test_class_crud(client, school):
    login_as(client, "user_admin", "admin")
    r = client.post("/api/v1/classes", json={"name": "2B", "capacity": 25, "grade_id": school["grade"]})
    assert r.status_code == 200
    assert r.get_json() == {"success": True, "error": False}

    r = client.get("/api/v1/classes?q=2B")
    data = r.get_json()
    assert data["meta"]["total"] == 1
    item = data["items"][0]
    assert item["name"] == "2B" and item["enrolled"] == 0

    r = client.put(f"/api/v1/classes/{item['id']}", json={"name": "2C", "capacity": 20, "grade_id": school["grade"]})
    assert r.get_json()["success"] is True
    assert client.get(f"/api/v1/classes/{item['id']}").get_json()["name"] == "2C"

    # дубликат имени
    r = client.post("/api/v1/classes", json={"name": "2C", "capacity": 20, "grade_id": school["grade"]})
    assert r.status_code == 409
    assert r.get_json()["message"] == "A class with this name already exists. Please use a different name."

    r = client.delete(f"/api/v1/classes/{item['id']}")
    assert r.get_json() == {"success": True, "error": False}
    assert client.get(f"/api/v1/classes/{item['id']}").status_code == 404


def test_validation_error_shape(client, school):
    login_as(client, "user_admin", "admin")
    r = client.post("/api/v1/classes", json={"name": "", "capacity": 0, "grade_id": school["grade"]})
    assert r.status_code == 422
    js = r.get_json()
    assert js["success"] is False and js["error"] is True
    assert "capacity" in js["message"]


def test_teacher_cannot_create_students(client, school, fake_identity):
    login_as(client, "t_1", "teacher")
    r = client.post("/api/v1/students",
                    json=person_payload("stud1", class_id=school["class"], grade_id=school["grade"]))
    assert r.status_code == 403
    assert fake_identity.calls == []


def test_student_create_and_read_over_http(client, school, fake_identity):
    login_as(client, "user_admin", "admin")
    r = client.post("/api/v1/students",
                    json=person_payload("stud1", class_id=school["class"], grade_id=school["grade"]))
    assert r.get_json() == {"success": True, "error": False}

    (user,) = fake_identity.users.values()
    js = client.get(f"/api/v1/students/{user.id}").get_json()
    assert js["username"] == "stud1" and js["sex"] == Sex.FEMALE.value
    assert "password" not in js


def test_delete_blocked_over_http(client, school, fake_identity):
    login_as(client, "user_admin", "admin")
    add_teacher("t_1", "teach1")
    from models import SchoolClass
    db.session.get(SchoolClass, school["class"]).supervisor_id = "t_1"
    db.session.commit()

    r = client.delete("/api/v1/teachers/t_1")
    assert r.status_code == 409
    assert r.get_json()["message"].startswith("Cannot delete teacher who is supervising classes")


def test_pagination(client, school):
    login_as(client, "user_admin", "admin")
    for i in range(12):
        add_student(f"s{i:02d}", school["class"], school["grade"])
    r = client.get("/api/v1/students?page=2&per_page=5")
    data = r.get_json()
    assert data["meta"] == {"page": 2, "per_page": 5, "total": 12}
    assert len(data["items"]) == 5
    assert db.session.query(Student).count() == 12

    r = client.get("/api/v1/students?per_page=1000")
    assert r.get_json()["meta"]["per_page"] == 100


def test_teacher_records_attendance(client, school):
    login_as(client, "t_1", "teacher")
    add_teacher("t_1", "teach1")
    add_student("kid1", school["class"], school["grade"])
    from datetime import datetime
    from models import Day, Lesson
    lesson = Lesson(name="Art", day=Day.TUESDAY, start_time=datetime(2026, 1, 6, 9),
                    end_time=datetime(2026, 1, 6, 10), subject_id=school["art"],
                    class_id=school["class"], teacher_id="t_1")
    db.session.add(lesson)
    db.session.commit()

    r = client.post("/api/v1/attendances", json={"date": "2026-01-06T09:00:00", "present": False,
                                                  "student_id": "kid1", "lesson_id": lesson.id})
    assert r.get_json() == {"success": True, "error": False}
    items = client.get("/api/v1/attendances").get_json()["items"]
    assert items[0]["present"] is False


def test_admin_summary(client, school):
    login_as(client, "user_admin", "admin")
    add_student("kid1", school["class"], school["grade"])
    r = client.get("/api/v1/admin/dashboard/summary")
    assert r.status_code == 200
    js = r.get_json()
    assert js["counters"]["students"] == 1 and js["counters"]["classes"] == 1
    assert js["students_by_sex"] == {"boys": 1, "girls": 0}


def test_announcement_update_keeps_date_when_not_resent(client, school):
    login_as(client, "user_admin", "admin")
    r = client.post("/api/v1/announcements", json={"title": "Trip", "description": "Museum",
                                                    "date": "2025-01-01T00:00:00"})
    assert r.get_json() == {"success": True, "error": False}
    (item,) = client.get("/api/v1/announcements").get_json()["items"]

    r = client.put(f"/api/v1/announcements/{item['id']}", json={"title": "Trip moved", "description": "Zoo"})
    assert r.get_json() == {"success": True, "error": False}
    js = client.get(f"/api/v1/announcements/{item['id']}").get_json()
    assert js["title"] == "Trip moved"
    assert js["date"].startswith("2025-01-01T00:00:00")


def test_announcement_created_without_date_is_stamped(client, school):
    login_as(client, "user_admin", "admin")
    client.post("/api/v1/announcements", json={"title": "Now", "description": "d"})
    (item,) = client.get("/api/v1/announcements").get_json()["items"]
    assert item["date"]
