"""initial school schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

SEX = sa.Enum('MALE', 'FEMALE', name='sex')
DAY = sa.Enum('MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', name='day')


def _person_columns(phone_nullable=True):
    return [
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('username', sa.String(64), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('surname', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('phone', sa.String(32), nullable=phone_nullable, unique=True),
        sa.Column('address', sa.String(255), nullable=False),
    ]


def upgrade():
    op.create_table('grade',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('level', sa.Integer(), nullable=False, unique=True),
    )

    op.create_table('teacher',
        *_person_columns(),
        sa.Column('img', sa.String(500), nullable=True),
        sa.Column('blood_type', sa.String(8), nullable=False),
        sa.Column('sex', SEX, nullable=False),
        sa.Column('birthday', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_teacher_username', 'teacher', ['username'], unique=True)

    op.create_table('parent',
        *_person_columns(phone_nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_parent_username', 'parent', ['username'], unique=True)

    op.create_table('class',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('grade_id', sa.Integer(), sa.ForeignKey('grade.id'), nullable=False),
        sa.Column('supervisor_id', sa.String(64), sa.ForeignKey('teacher.id'), nullable=True),
        sa.CheckConstraint('capacity > 0', name='ck_class_capacity_positive'),
    )

    op.create_table('student',
        *_person_columns(),
        sa.Column('img', sa.String(500), nullable=True),
        sa.Column('blood_type', sa.String(8), nullable=False),
        sa.Column('sex', SEX, nullable=False),
        sa.Column('birthday', sa.Date(), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('class.id'), nullable=False),
        sa.Column('grade_id', sa.Integer(), sa.ForeignKey('grade.id'), nullable=False),
        sa.Column('parent_id', sa.String(64), sa.ForeignKey('parent.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_student_username', 'student', ['username'], unique=True)
    op.create_index('ix_student_class_id', 'student', ['class_id'])
    op.create_index('ix_student_parent_id', 'student', ['parent_id'])

    op.create_table('subject',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
    )

    op.create_table('teacher_subject',
        sa.Column('teacher_id', sa.String(64), sa.ForeignKey('teacher.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subject.id', ondelete='CASCADE'), primary_key=True),
        sa.UniqueConstraint('teacher_id', 'subject_id', name='uq_teacher_subject'),
    )

    op.create_table('lesson',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('day', DAY, nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subject.id'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('class.id'), nullable=False),
        sa.Column('teacher_id', sa.String(64), sa.ForeignKey('teacher.id'), nullable=False),
    )
    op.create_index('ix_lesson_teacher_id', 'lesson', ['teacher_id'])
    op.create_index('ix_lesson_class_day', 'lesson', ['class_id', 'day'])

    op.create_table('exam',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('lesson_id', sa.Integer(), sa.ForeignKey('lesson.id'), nullable=False),
    )
    op.create_index('ix_exam_lesson_id', 'exam', ['lesson_id'])

    op.create_table('assignment',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('lesson_id', sa.Integer(), sa.ForeignKey('lesson.id'), nullable=False),
    )
    op.create_index('ix_assignment_lesson_id', 'assignment', ['lesson_id'])

    op.create_table('result',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('student_id', sa.String(64), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exam.id'), nullable=True),
        sa.Column('assignment_id', sa.Integer(), sa.ForeignKey('assignment.id'), nullable=True),
        sa.CheckConstraint('NOT (exam_id IS NOT NULL AND assignment_id IS NOT NULL)',
                           name='ck_result_exam_xor_assignment'),
    )
    op.create_index('ix_result_student_id', 'result', ['student_id'])

    op.create_table('attendance',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('present', sa.Boolean(), nullable=False),
        sa.Column('student_id', sa.String(64), sa.ForeignKey('student.id'), nullable=False),
        sa.Column('lesson_id', sa.Integer(), sa.ForeignKey('lesson.id'), nullable=False),
        sa.UniqueConstraint('student_id', 'lesson_id', 'date', name='uq_attendance_student_lesson_date'),
    )
    op.create_index('ix_attendance_student_id', 'attendance', ['student_id'])

    op.create_table('event',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('class.id', ondelete='SET NULL'), nullable=True),
    )

    op.create_table('announcement',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('class.id', ondelete='SET NULL'), nullable=True),
    )


def downgrade():
    for table in ('announcement', 'event', 'attendance', 'result', 'assignment', 'exam',
                  'lesson', 'teacher_subject', 'subject', 'student', 'class', 'parent',
                  'teacher', 'grade'):
        op.drop_table(table)
    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        DAY.drop(bind, checkfirst=True)
        SEX.drop(bind, checkfirst=True)
