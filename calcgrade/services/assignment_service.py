# calcgrade/services/assignment_service.py
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from calcgrade.models.assignment import Assignment
from calcgrade.models.classroom import Classroom, ClassroomMember
from calcgrade.models.submission import Submission
from calcgrade.models.user import User, UserRole
from calcgrade.schemas.assignment import AssignmentCreate
from calcgrade.services.classroom_service import is_active_member
from calcgrade.services.exceptions import NotFoundError, PermissionDeniedError
from calcgrade.services.file_service import get_owned_file

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _base_fields(a: Assignment) -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "description": a.description,
        "classroom_id": a.classroom_id,
        "teacher_id": a.teacher_id,
        "file_upload_id": a.file_upload_id,
        "start_date": a.start_date,
        "due_date": a.due_date,
        "is_active": a.is_active,
        "created_at": a.created_at,
        "classroom_name": a.classroom.name if a.classroom else None,
    }


def create_assignment(db: Session, *, teacher: User, obj_in: AssignmentCreate) -> Assignment:
    classroom = (
        db.query(Classroom)
        .filter(
            Classroom.id == obj_in.classroom_id,
            Classroom.teacher_id == teacher.id,
            Classroom.is_active.is_(True),
        )
        .first()
    )
    if classroom is None:
        raise NotFoundError("Classroom not found")

    if obj_in.file_upload_id is not None:
        get_owned_file(db, user=teacher, file_id=obj_in.file_upload_id)

    assignment = Assignment(
        title=obj_in.title.strip(),
        description=obj_in.description,
        classroom_id=classroom.id,
        teacher_id=teacher.id,
        file_upload_id=obj_in.file_upload_id,
        start_date=obj_in.start_date,
        due_date=obj_in.due_date,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info(f"Teacher {teacher.id} created assignment {assignment.id} in classroom {classroom.id}")
    return assignment


def list_teacher_assignments(db: Session, *, teacher: User) -> List[dict]:
    assignments = (
        db.query(Assignment)
        .filter(Assignment.teacher_id == teacher.id, Assignment.is_active.is_(True))
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .all()
    )
    ids = [a.id for a in assignments]
    counts = {}
    if ids:
        counts = dict(
            db.query(Submission.assignment_id, func.count(Submission.id))
            .filter(Submission.assignment_id.in_(ids))
            .group_by(Submission.assignment_id)
            .all()
        )
    return [{**_base_fields(a), "submission_count": counts.get(a.id, 0)} for a in assignments]


def _student_view(db: Session, student: User, assignments: List[Assignment]) -> List[dict]:
    now = datetime.now(timezone.utc)
    ids = [a.id for a in assignments]

    submitted = {}
    if ids:
        rows = (
            db.query(Submission.assignment_id, func.max(Submission.id))
            .filter(Submission.user_id == student.id, Submission.assignment_id.in_(ids))
            .group_by(Submission.assignment_id)
            .all()
        )
        submitted = dict(rows)

    return [
        {
            **_base_fields(a),
            "is_submitted": a.id in submitted,
            "submission_id": submitted.get(a.id),
            "is_overdue": now > _as_utc(a.due_date),
        }
        for a in assignments
    ]


def list_student_assignments(db: Session, *, student: User) -> List[dict]:
    """已加入班级中已开始的作业"""
    now = datetime.now(timezone.utc)
    assignments = (
        db.query(Assignment)
        .join(ClassroomMember, ClassroomMember.classroom_id == Assignment.classroom_id)
        .filter(
            ClassroomMember.student_id == student.id,
            ClassroomMember.is_active.is_(True),
            Assignment.is_active.is_(True),
        )
        .order_by(Assignment.due_date.asc(), Assignment.id.asc())
        .all()
    )
    started = [a for a in assignments if _as_utc(a.start_date) <= now]
    return _student_view(db, student, started)


def list_classroom_assignments(db: Session, *, user: User, classroom_id: int) -> List[dict]:
    classroom = db.get(Classroom, classroom_id)
    if classroom is None or not classroom.is_active:
        raise NotFoundError("Classroom not found")

    is_owner = user.role == UserRole.TEACHER and classroom.teacher_id == user.id
    if not is_owner and not is_active_member(db, classroom_id=classroom.id, student_id=user.id):
        raise PermissionDeniedError("Not allowed to view this classroom")

    assignments = (
        db.query(Assignment)
        .filter(Assignment.classroom_id == classroom.id, Assignment.is_active.is_(True))
        .order_by(Assignment.due_date.asc(), Assignment.id.asc())
        .all()
    )
    if is_owner:
        return [_base_fields(a) for a in assignments]
    return _student_view(db, user, assignments)
