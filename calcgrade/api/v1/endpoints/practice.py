# calcgrade/api/v1/endpoints/practice.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.submission import WorkMode
from calcgrade.models.user import User
from calcgrade.schemas.submission import (
    PracticeCreate,
    PracticeHistoryItem,
    SubmissionCreate,
    SubmissionPublic,
    SubmissionStatusPublic,
)
from calcgrade.services import submission_service
from calcgrade.workers.queue import TaskDispatcher, get_task_dispatcher

router = APIRouter(prefix="/practice", tags=["practice"])


@router.post("", response_model=SubmissionPublic, status_code=status.HTTP_201_CREATED)
def create_practice(
    obj_in: PracticeCreate,
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
    current_user: User = Depends(get_current_user),
):
    """自主练习：不需要班级和作业"""
    return submission_service.create_submission_and_dispatch(
        db,
        dispatcher,
        student=current_user,
        obj_in=SubmissionCreate(file_upload_id=obj_in.file_upload_id, work_mode=WorkMode.PRACTICE),
    )


@router.get("/history", response_model=List[PracticeHistoryItem])
def practice_history(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return submission_service.practice_history(db, user=current_user)


@router.get("/{submission_id}/status", response_model=SubmissionStatusPublic)
def practice_status(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    sub = submission_service.get_own_submission(
        db, user=current_user, submission_id=submission_id, work_mode=WorkMode.PRACTICE
    )
    return submission_service.get_status(db, sub)


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_practice(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    submission_service.delete_submission(
        db, user=current_user, submission_id=submission_id, work_mode=WorkMode.PRACTICE
    )
