# calcgrade/api/v1/endpoints/submissions.py
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_student, get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.submission import SubmissionStatus, WorkMode
from calcgrade.models.user import User
from calcgrade.schemas.submission import (
    OCRResultPublic,
    ProcessAccepted,
    ProcessRequest,
    SubmissionCreate,
    SubmissionDetail,
    SubmissionPublic,
    SubmissionStatusPublic,
)
from calcgrade.services import submission_service
from calcgrade.workers.queue import TaskDispatcher, get_task_dispatcher

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionPublic, status_code=status.HTTP_201_CREATED)
def create_submission(
    obj_in: SubmissionCreate,
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
    current_student: User = Depends(get_current_student),
):
    """
    学生提交作业/练习；创建 submission 并入队处理任务，立即返回。
    """
    return submission_service.create_submission_and_dispatch(
        db, dispatcher, student=current_student, obj_in=obj_in
    )


@router.get("", response_model=List[SubmissionPublic])
def list_my_submissions(
    status_filter: SubmissionStatus | None = Query(None, alias="status"),
    work_mode: WorkMode | None = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return submission_service.list_submissions_for_user(
        db,
        user=current_user,
        status=status_filter,
        work_mode=work_mode,
        skip=skip,
        limit=limit,
    )


@router.get("/{submission_id}", response_model=SubmissionDetail)
def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    提交详情（最新 OCR / 批改结果 + 错题分析）；作业的任课老师也可以查看。
    """
    sub = submission_service.get_readable_submission(
        db, user=current_user, submission_id=submission_id
    )
    return submission_service.build_detail(db, sub)


@router.get("/{submission_id}/status", response_model=SubmissionStatusPublic)
def get_submission_status(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    sub = submission_service.get_readable_submission(
        db, user=current_user, submission_id=submission_id
    )
    return submission_service.get_status(db, sub)


@router.post(
    "/{submission_id}/process",
    response_model=ProcessAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def reprocess_submission(
    submission_id: int,
    obj_in: ProcessRequest | None = None,
    db: Session = Depends(get_db),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
    current_user: User = Depends(get_current_user),
):
    sub, job_id = submission_service.reprocess_submission(
        db,
        dispatcher,
        user=current_user,
        submission_id=submission_id,
        skip_ai=obj_in.skip_ai if obj_in else False,
    )
    return ProcessAccepted(submission_id=sub.id, job_id=job_id, status=sub.status)


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    submission_service.delete_submission(db, user=current_user, submission_id=submission_id)


@router.get("/{submission_id}/ocr-results", response_model=List[OCRResultPublic])
def list_ocr_results(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    sub = submission_service.get_readable_submission(
        db, user=current_user, submission_id=submission_id
    )
    return submission_service.list_ocr_results(db, sub)
