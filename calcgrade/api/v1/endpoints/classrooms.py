# calcgrade/api/v1/endpoints/classrooms.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_student, get_current_teacher, get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.assignment import ClassroomAssignment
from calcgrade.schemas.classroom import (
    ClassroomCreate,
    ClassroomMembers,
    ClassroomPublic,
    ClassroomSummary,
    JoinClassroomRequest,
)
from calcgrade.services import assignment_service, classroom_service

router = APIRouter(prefix="/classrooms", tags=["classrooms"])


@router.post("", response_model=ClassroomPublic, status_code=status.HTTP_201_CREATED)
def create_classroom(
    obj_in: ClassroomCreate,
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return classroom_service.create_classroom(db, teacher=current_teacher, obj_in=obj_in)


@router.get("/teacher", response_model=List[ClassroomSummary])
def list_teacher_classrooms(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return classroom_service.list_teacher_classrooms(db, teacher=current_teacher)


@router.get("/student", response_model=List[ClassroomSummary])
def list_student_classrooms(
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    return classroom_service.list_student_classrooms(db, student=current_student)


@router.post("/join", response_model=ClassroomPublic)
def join_classroom(
    obj_in: JoinClassroomRequest,
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    """
    学生通过邀请码加入班级（不区分大小写）。
    """
    return classroom_service.join_classroom(
        db, student=current_student, invite_code=obj_in.invite_code
    )


@router.get("/{classroom_id}/members", response_model=ClassroomMembers)
def list_members(
    classroom_id: int,
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    members = classroom_service.list_members(
        db, teacher=current_teacher, classroom_id=classroom_id
    )
    return ClassroomMembers(classroom_id=classroom_id, members=members)


@router.get(
    "/{classroom_id}/assignments",
    response_model=List[ClassroomAssignment],
)
def list_classroom_assignments(
    classroom_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return assignment_service.list_classroom_assignments(
        db, user=current_user, classroom_id=classroom_id
    )
