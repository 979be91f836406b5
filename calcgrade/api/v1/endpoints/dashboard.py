# calcgrade/api/v1/endpoints/dashboard.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_teacher, get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.dashboard import ClassAnalytics, StudentStats, TeacherStats
from calcgrade.services import dashboard_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/student/stats", response_model=StudentStats)
def student_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return dashboard_service.student_stats(db, user=current_user)


@router.get("/teacher/stats", response_model=TeacherStats)
def teacher_stats(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return dashboard_service.teacher_stats(db, teacher=current_teacher)


@router.get("/teacher/class-analytics", response_model=ClassAnalytics)
def class_analytics(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return dashboard_service.class_analytics(db, teacher=current_teacher)
