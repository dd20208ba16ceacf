from datetime import datetime, date
from enum import Enum as PyEnum

from sqlalchemy import (
    Enum, ForeignKey, UniqueConstraint, CheckConstraint, Index, Boolean, Date, DateTime,
    Integer, String, Text, Float
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from extensions import db

# ---------- Enums ----------
class Sex(PyEnum):
    MALE = "MALE"
    FEMALE = "FEMALE"

class Day(PyEnum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"

class Role(str, PyEnum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


# ---------- Association Tables ----------
teacher_subject = db.Table(
    "teacher_subject",
    db.Column("teacher_id", db.String(64), db.ForeignKey("teacher.id", ondelete="CASCADE"), primary_key=True),
    db.Column("subject_id", db.Integer, db.ForeignKey("subject.id", ondelete="CASCADE"), primary_key=True),
    db.UniqueConstraint("teacher_id", "subject_id", name="uq_teacher_subject"),
)


# ---------- People (id = identity provider user id) ----------
class Teacher(db.Model):
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    img: Mapped[str | None] = mapped_column(String(500))
    blood_type: Mapped[str] = mapped_column(String(8), nullable=False)
    sex: Mapped[Sex] = mapped_column(Enum(Sex), nullable=False)
    birthday: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    subjects = relationship("Subject", secondary=teacher_subject, back_populates="teachers")
    lessons = relationship("Lesson", back_populates="teacher", passive_deletes="all")
    classes = relationship("SchoolClass", back_populates="supervisor", passive_deletes="all")

    @property
    def subject_ids(self) -> list[int]:
        return sorted(s.id for s in self.subjects)

    def __repr__(self):
        return f"<Teacher {self.username}>"


class Parent(db.Model):
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    phone: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    students = relationship("Student", back_populates="parent", passive_deletes="all")

    @property
    def student_ids(self) -> list[str]:
        return [s.id for s in self.students]

    def __repr__(self):
        return f"<Parent {self.username}>"


class Student(db.Model):
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    surname: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True)
    phone: Mapped[str | None] = mapped_column(String(32), unique=True)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    img: Mapped[str | None] = mapped_column(String(500))
    blood_type: Mapped[str] = mapped_column(String(8), nullable=False)
    sex: Mapped[Sex] = mapped_column(Enum(Sex), nullable=False)
    birthday: Mapped[date] = mapped_column(Date, nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("class.id"), nullable=False, index=True)
    grade_id: Mapped[int] = mapped_column(ForeignKey("grade.id"), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(ForeignKey("parent.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", back_populates="students")
    grade = relationship("Grade", back_populates="students")
    parent = relationship("Parent", back_populates="students")
    results = relationship("Result", back_populates="student", passive_deletes="all")
    attendances = relationship("Attendance", back_populates="student", passive_deletes="all")

    def __repr__(self):
        return f"<Student {self.username}>"


# ---------- School structure ----------
class Grade(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    level: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    classes = relationship("SchoolClass", back_populates="grade", passive_deletes="all")
    students = relationship("Student", back_populates="grade", passive_deletes="all")


class SchoolClass(db.Model):
    __tablename__ = "class"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_id: Mapped[int] = mapped_column(ForeignKey("grade.id"), nullable=False)
    supervisor_id: Mapped[str | None] = mapped_column(ForeignKey("teacher.id"))

    grade = relationship("Grade", back_populates="classes")
    supervisor = relationship("Teacher", back_populates="classes")
    students = relationship("Student", back_populates="school_class", passive_deletes="all")
    lessons = relationship("Lesson", back_populates="school_class", passive_deletes="all")
    events = relationship("Event", back_populates="school_class", passive_deletes=True)
    announcements = relationship("Announcement", back_populates="school_class", passive_deletes=True)

    @property
    def enrolled(self) -> int:
        return len(self.students)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_class_capacity_positive"),
    )

    def __repr__(self):
        return f"<SchoolClass {self.name}>"


class Subject(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    teachers = relationship("Teacher", secondary=teacher_subject, back_populates="subjects")
    lessons = relationship("Lesson", back_populates="subject", passive_deletes="all")

    @property
    def teacher_ids(self) -> list[str]:
        return sorted(t.id for t in self.teachers)


class Lesson(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    day: Mapped[Day] = mapped_column(Enum(Day), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    subject_id: Mapped[int] = mapped_column(ForeignKey("subject.id"), nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("class.id"), nullable=False)
    teacher_id: Mapped[str] = mapped_column(ForeignKey("teacher.id"), nullable=False, index=True)

    subject = relationship("Subject", back_populates="lessons")
    school_class = relationship("SchoolClass", back_populates="lessons")
    teacher = relationship("Teacher", back_populates="lessons")
    exams = relationship("Exam", back_populates="lesson", passive_deletes="all")
    assignments = relationship("Assignment", back_populates="lesson", passive_deletes="all")
    attendances = relationship("Attendance", back_populates="lesson", passive_deletes="all")

    __table_args__ = (
        Index("ix_lesson_class_day", "class_id", "day"),
    )


# ---------- Assessment ----------
class Exam(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lesson.id"), nullable=False, index=True)

    lesson = relationship("Lesson", back_populates="exams")
    results = relationship("Result", back_populates="exam", passive_deletes="all")


class Assignment(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lesson.id"), nullable=False, index=True)

    lesson = relationship("Lesson", back_populates="assignments")
    results = relationship("Result", back_populates="assignment", passive_deletes="all")


class Result(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    student_id: Mapped[str] = mapped_column(ForeignKey("student.id"), nullable=False, index=True)
    exam_id: Mapped[int | None] = mapped_column(ForeignKey("exam.id"))
    assignment_id: Mapped[int | None] = mapped_column(ForeignKey("assignment.id"))

    student = relationship("Student", back_populates="results")
    exam = relationship("Exam", back_populates="results")
    assignment = relationship("Assignment", back_populates="results")

    __table_args__ = (
        CheckConstraint("NOT (exam_id IS NOT NULL AND assignment_id IS NOT NULL)",
                        name="ck_result_exam_xor_assignment"),
    )


class Attendance(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    student_id: Mapped[str] = mapped_column(ForeignKey("student.id"), nullable=False, index=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lesson.id"), nullable=False)

    student = relationship("Student", back_populates="attendances")
    lesson = relationship("Lesson", back_populates="attendances")

    __table_args__ = (
        UniqueConstraint("student_id", "lesson_id", "date", name="uq_attendance_student_lesson_date"),
    )


# ---------- Calendar ----------
class Event(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # NULL = событие для всей школы
    class_id: Mapped[int | None] = mapped_column(ForeignKey("class.id", ondelete="SET NULL"))

    school_class = relationship("SchoolClass", back_populates="events")


class Announcement(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    class_id: Mapped[int | None] = mapped_column(ForeignKey("class.id", ondelete="SET NULL"))

    school_class = relationship("SchoolClass", back_populates="announcements")
