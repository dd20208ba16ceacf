from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import (
    BaseModel, ConfigDict, Field, ValidationError, ValidationInfo,
    field_validator, model_validator,
)

from models import Day, Sex
from .errors import ValidationFailed
from .validators import blank_to_none, ensure_email, ensure_exclusive, ensure_range, violations_from


class EntityKind(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"
    CLASS = "class"
    SUBJECT = "subject"
    LESSON = "lesson"
    EXAM = "exam"
    ASSIGNMENT = "assignment"
    RESULT = "result"
    ATTENDANCE = "attendance"
    EVENT = "event"
    ANNOUNCEMENT = "announcement"

    @property
    def is_person(self) -> bool:
        return self in PERSON_KINDS

    @property
    def label(self) -> str:
        return self.value.capitalize()


PERSON_KINDS = frozenset({EntityKind.TEACHER, EntityKind.STUDENT, EntityKind.PARENT})


def _is_update(info: ValidationInfo) -> bool:
    return bool((info.context or {}).get("update"))


# ---------- People ----------
class PersonIn(BaseModel):
    id: Optional[str] = None
    username: str = Field(min_length=3, max_length=20)
    password: Optional[str] = Field(None, max_length=128)
    name: str = Field(min_length=1, max_length=100)
    surname: str = Field(min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    address: str = Field(min_length=1, max_length=255)

    @field_validator("id", "password", "email", "phone", mode="before")
    @classmethod
    def _blank(cls, v):
        return blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return ensure_email(v)

    @field_validator("username", "name", "surname", "address")
    @classmethod
    def _strip(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("required")
        return v

    @model_validator(mode="after")
    def _create_vs_update(self, info: ValidationInfo):
        if _is_update(info):
            if not self.id:
                raise ValueError("id is required for update")
        elif not self.password:
            raise ValueError("password is required")
        return self


class ProfileIn(PersonIn):
    img: Optional[str] = Field(None, max_length=500)
    blood_type: str = Field(min_length=1, max_length=8)
    sex: Sex
    birthday: date

    @field_validator("img", mode="before")
    @classmethod
    def _blank_img(cls, v):
        return blank_to_none(v)


class TeacherIn(ProfileIn):
    subjects: List[int] = Field(default_factory=list)


class StudentIn(ProfileIn):
    class_id: int = Field(ge=1)
    grade_id: int = Field(ge=1)
    parent_id: Optional[str] = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def _blank_parent(cls, v):
        return blank_to_none(v)


class ParentIn(PersonIn):
    phone: str = Field(min_length=1, max_length=32)


# ---------- Structure ----------
class _WithIntId(BaseModel):
    id: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, v):
        return blank_to_none(v)

    @model_validator(mode="after")
    def _id_for_update(self, info: ValidationInfo):
        if _is_update(info) and self.id is None:
            raise ValueError("id is required for update")
        return self


class ClassIn(_WithIntId):
    name: str = Field(min_length=1, max_length=50)
    capacity: int = Field(ge=1, le=1000)
    grade_id: int = Field(ge=1)
    supervisor_id: Optional[str] = None

    @field_validator("supervisor_id", mode="before")
    @classmethod
    def _blank_supervisor(cls, v):
        return blank_to_none(v)


class SubjectIn(_WithIntId):
    name: str = Field(min_length=1, max_length=100)
    teachers: List[str] = Field(default_factory=list)


class LessonIn(_WithIntId):
    name: str = Field(min_length=1, max_length=100)
    day: Day
    start_time: datetime
    end_time: datetime
    subject_id: int = Field(ge=1)
    class_id: int = Field(ge=1)
    teacher_id: str = Field(min_length=1)

    @model_validator(mode="after")
    def check_range(self):
        ensure_range(self.start_time, self.end_time)
        return self


class ExamIn(_WithIntId):
    title: str = Field(min_length=1, max_length=200)
    start_time: datetime
    end_time: datetime
    lesson_id: int = Field(ge=1)

    @model_validator(mode="after")
    def check_range(self):
        ensure_range(self.start_time, self.end_time)
        return self


class AssignmentIn(_WithIntId):
    title: str = Field(min_length=1, max_length=200)
    start_date: datetime
    due_date: datetime
    lesson_id: int = Field(ge=1)

    @model_validator(mode="after")
    def check_range(self):
        ensure_range(self.start_date, self.due_date, start_field="start_date",
                     end_field="due_date", allow_equal=True)
        return self


class ResultIn(_WithIntId):
    score: float = Field(ge=0, le=100)
    student_id: str = Field(min_length=1)
    exam_id: Optional[int] = None
    assignment_id: Optional[int] = None

    @field_validator("exam_id", "assignment_id", mode="before")
    @classmethod
    def _blank_refs(cls, v):
        return blank_to_none(v)

    @model_validator(mode="after")
    def check_exclusive(self):
        ensure_exclusive(exam_id=self.exam_id, assignment_id=self.assignment_id)
        return self


class AttendanceIn(_WithIntId):
    date: datetime
    present: bool = True
    student_id: str = Field(min_length=1)
    lesson_id: int = Field(ge=1)


class EventIn(_WithIntId):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    class_id: Optional[int] = None

    @field_validator("class_id", mode="before")
    @classmethod
    def _blank_class(cls, v):
        return blank_to_none(v)

    @model_validator(mode="after")
    def check_range(self):
        ensure_range(self.start_time, self.end_time)
        return self


class AnnouncementIn(_WithIntId):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    date: Optional[datetime] = None
    class_id: Optional[int] = None

    @field_validator("class_id", mode="before")
    @classmethod
    def _blank_class(cls, v):
        return blank_to_none(v)

    @model_validator(mode="after")
    def stamp_date(self, info: ValidationInfo):
        # при обновлении пустая дата означает "не менять"
        if self.date is None and not _is_update(info):
            self.date = datetime.utcnow()
        return self


INPUT_SCHEMAS: Dict[EntityKind, Type[BaseModel]] = {
    EntityKind.TEACHER: TeacherIn,
    EntityKind.STUDENT: StudentIn,
    EntityKind.PARENT: ParentIn,
    EntityKind.CLASS: ClassIn,
    EntityKind.SUBJECT: SubjectIn,
    EntityKind.LESSON: LessonIn,
    EntityKind.EXAM: ExamIn,
    EntityKind.ASSIGNMENT: AssignmentIn,
    EntityKind.RESULT: ResultIn,
    EntityKind.ATTENDANCE: AttendanceIn,
    EntityKind.EVENT: EventIn,
    EntityKind.ANNOUNCEMENT: AnnouncementIn,
}


def validate_payload(kind: EntityKind, payload: Dict[str, Any], *, update: bool = False) -> BaseModel:
    """Normalize ``payload`` into the kind's typed record or raise ValidationFailed."""
    schema = INPUT_SCHEMAS[kind]
    try:
        return schema.model_validate(payload, context={"update": update})
    except ValidationError as ve:
        raise ValidationFailed(violations_from(ve)) from ve


# ---------- OUT (list / detail) ----------
class _Out(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TeacherOut(_Out):
    id: str
    username: str
    name: str
    surname: str
    email: Optional[str]
    phone: Optional[str]
    address: str
    img: Optional[str]
    blood_type: str
    sex: Sex
    birthday: date
    subject_ids: List[int]


class StudentOut(_Out):
    id: str
    username: str
    name: str
    surname: str
    email: Optional[str]
    phone: Optional[str]
    address: str
    img: Optional[str]
    blood_type: str
    sex: Sex
    birthday: date
    class_id: int
    grade_id: int
    parent_id: Optional[str]


class ParentOut(_Out):
    id: str
    username: str
    name: str
    surname: str
    email: Optional[str]
    phone: str
    address: str
    student_ids: List[str]


class ClassOut(_Out):
    id: int
    name: str
    capacity: int
    grade_id: int
    supervisor_id: Optional[str]
    enrolled: int


class SubjectOut(_Out):
    id: int
    name: str
    teacher_ids: List[str]


class LessonOut(_Out):
    id: int
    name: str
    day: Day
    start_time: datetime
    end_time: datetime
    subject_id: int
    class_id: int
    teacher_id: str


class ExamOut(_Out):
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    lesson_id: int


class AssignmentOut(_Out):
    id: int
    title: str
    start_date: datetime
    due_date: datetime
    lesson_id: int


class ResultOut(_Out):
    id: int
    score: float
    student_id: str
    exam_id: Optional[int]
    assignment_id: Optional[int]


class AttendanceOut(_Out):
    id: int
    date: datetime
    present: bool
    student_id: str
    lesson_id: int


class EventOut(_Out):
    id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    class_id: Optional[int]


class AnnouncementOut(_Out):
    id: int
    title: str
    description: str
    date: datetime
    class_id: Optional[int]


OUTPUT_SCHEMAS: Dict[EntityKind, Type[BaseModel]] = {
    EntityKind.TEACHER: TeacherOut,
    EntityKind.STUDENT: StudentOut,
    EntityKind.PARENT: ParentOut,
    EntityKind.CLASS: ClassOut,
    EntityKind.SUBJECT: SubjectOut,
    EntityKind.LESSON: LessonOut,
    EntityKind.EXAM: ExamOut,
    EntityKind.ASSIGNMENT: AssignmentOut,
    EntityKind.RESULT: ResultOut,
    EntityKind.ATTENDANCE: AttendanceOut,
    EntityKind.EVENT: EventOut,
    EntityKind.ANNOUNCEMENT: AnnouncementOut,
}
