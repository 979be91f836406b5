# calcgrade/services/classroom_service.py
import logging
import secrets
import string
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from calcgrade.models.assignment import Assignment
from calcgrade.models.classroom import Classroom, ClassroomMember
from calcgrade.models.user import User
from calcgrade.schemas.classroom import ClassroomCreate
from calcgrade.services.exceptions import NotFoundError, ServiceError

logger = logging.getLogger(__name__)

INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def _unique_invite_code(db: Session) -> str:
    while True:
        code = generate_invite_code()
        if db.query(Classroom).filter(Classroom.invite_code == code).first() is None:
            return code


def create_classroom(db: Session, *, teacher: User, obj_in: ClassroomCreate) -> Classroom:
    classroom = Classroom(
        name=obj_in.name.strip(),
        description=obj_in.description,
        invite_code=_unique_invite_code(db),
        teacher_id=teacher.id,
    )
    db.add(classroom)
    db.commit()
    db.refresh(classroom)
    logger.info(f"Teacher {teacher.id} created classroom {classroom.id} ({classroom.invite_code})")
    return classroom


def get_owned_classroom(db: Session, *, teacher: User, classroom_id: int) -> Classroom:
    classroom = (
        db.query(Classroom)
        .filter(Classroom.id == classroom_id, Classroom.teacher_id == teacher.id)
        .first()
    )
    if classroom is None:
        raise NotFoundError("Classroom not found")
    return classroom


def is_active_member(db: Session, *, classroom_id: int, student_id: int) -> bool:
    return (
        db.query(ClassroomMember)
        .filter(
            ClassroomMember.classroom_id == classroom_id,
            ClassroomMember.student_id == student_id,
            ClassroomMember.is_active.is_(True),
        )
        .first()
        is not None
    )


def _summaries(db: Session, classrooms: List[Classroom]) -> List[dict]:
    ids = [c.id for c in classrooms]
    if not ids:
        return []

    member_counts = dict(
        db.query(ClassroomMember.classroom_id, func.count(ClassroomMember.id))
        .filter(ClassroomMember.classroom_id.in_(ids), ClassroomMember.is_active.is_(True))
        .group_by(ClassroomMember.classroom_id)
        .all()
    )
    assignment_counts = dict(
        db.query(Assignment.classroom_id, func.count(Assignment.id))
        .filter(Assignment.classroom_id.in_(ids), Assignment.is_active.is_(True))
        .group_by(Assignment.classroom_id)
        .all()
    )
    return [
        {
            "id": c.id,
            "name": c.name,
            "description": c.description,
            "invite_code": c.invite_code,
            "teacher_id": c.teacher_id,
            "is_active": c.is_active,
            "created_at": c.created_at,
            "member_count": member_counts.get(c.id, 0),
            "assignment_count": assignment_counts.get(c.id, 0),
            "teacher_name": c.teacher.username if c.teacher else None,
        }
        for c in classrooms
    ]


def list_teacher_classrooms(db: Session, *, teacher: User) -> List[dict]:
    classrooms = (
        db.query(Classroom)
        .filter(Classroom.teacher_id == teacher.id, Classroom.is_active.is_(True))
        .order_by(Classroom.created_at.desc(), Classroom.id.desc())
        .all()
    )
    return _summaries(db, classrooms)


def list_student_classrooms(db: Session, *, student: User) -> List[dict]:
    classrooms = (
        db.query(Classroom)
        .join(ClassroomMember, ClassroomMember.classroom_id == Classroom.id)
        .filter(
            ClassroomMember.student_id == student.id,
            ClassroomMember.is_active.is_(True),
            Classroom.is_active.is_(True),
        )
        .order_by(ClassroomMember.joined_at.desc(), Classroom.id.desc())
        .all()
    )
    return _summaries(db, classrooms)


def join_classroom(db: Session, *, student: User, invite_code: str) -> Classroom:
    code = (invite_code or "").strip().upper()
    if not code:
        raise ServiceError("Invite code must not be empty")

    classroom = db.query(Classroom).filter(Classroom.invite_code == code).first()
    if classroom is None or not classroom.is_active:
        raise NotFoundError("Invalid invite code")

    membership = (
        db.query(ClassroomMember)
        .filter(
            ClassroomMember.classroom_id == classroom.id,
            ClassroomMember.student_id == student.id,
        )
        .first()
    )
    if membership is not None:
        if membership.is_active:
            raise ServiceError("You have already joined this classroom")
        # 重新激活成员资格
        membership.is_active = True
    else:
        db.add(ClassroomMember(classroom_id=classroom.id, student_id=student.id))

    db.commit()
    db.refresh(classroom)
    logger.info(f"Student {student.id} joined classroom {classroom.id}")
    return classroom


def list_members(db: Session, *, teacher: User, classroom_id: int) -> List[dict]:
    classroom = get_owned_classroom(db, teacher=teacher, classroom_id=classroom_id)
    members = (
        db.query(ClassroomMember)
        .filter(ClassroomMember.classroom_id == classroom.id, ClassroomMember.is_active.is_(True))
        .order_by(ClassroomMember.joined_at.asc(), ClassroomMember.id.asc())
        .all()
    )
    return [
        {
            "student_id": m.student.id,
            "username": m.student.username,
            "email": m.student.email,
            "joined_at": m.joined_at,
        }
        for m in members
    ]
