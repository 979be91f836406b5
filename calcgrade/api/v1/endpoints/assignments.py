# calcgrade/api/v1/endpoints/assignments.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_student, get_current_teacher
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.assignment import (
    AssignmentCreate,
    AssignmentPublic,
    StudentAssignment,
    TeacherAssignment,
)
from calcgrade.services import assignment_service

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("", response_model=AssignmentPublic, status_code=status.HTTP_201_CREATED)
def create_assignment(
    obj_in: AssignmentCreate,
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return assignment_service.create_assignment(db, teacher=current_teacher, obj_in=obj_in)


@router.get("/teacher", response_model=List[TeacherAssignment])
def list_teacher_assignments(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return assignment_service.list_teacher_assignments(db, teacher=current_teacher)


@router.get("/student", response_model=List[StudentAssignment])
def list_student_assignments(
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    """
    学生查看已加入班级中已经开始的作业，带提交/逾期标记。
    """
    return assignment_service.list_student_assignments(db, student=current_student)
