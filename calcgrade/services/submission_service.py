# calcgrade/services/submission_service.py
from typing import List, Optional

from sqlalchemy.orm import Session

from calcgrade.models.assignment import Assignment
from calcgrade.models.classroom import ClassroomMember
from calcgrade.models.knowledge import ErrorAnalysis
from calcgrade.models.results import OCRResult
from calcgrade.models.submission import Submission, SubmissionStatus, WorkMode
from calcgrade.models.user import User, UserRole
from calcgrade.schemas.submission import SubmissionCreate
from calcgrade.services.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
)
from calcgrade.services.file_service import get_owned_file
from calcgrade.services.processing_types import ProcessingOptions
from calcgrade.services.progress import compute_progress
from calcgrade.services.repository import SubmissionRepository
from calcgrade.workers.queue import TaskDispatcher

PRACTICE_HISTORY_LIMIT = 20


def _check_homework_assignment(db: Session, *, student: User, assignment_id: int | None) -> Assignment:
    if assignment_id is None:
        raise ServiceError("Homework submissions require an assignment_id")

    assignment = db.get(Assignment, assignment_id)
    if assignment is None or not assignment.is_active:
        raise NotFoundError("Assignment not found")

    membership = (
        db.query(ClassroomMember)
        .filter(
            ClassroomMember.classroom_id == assignment.classroom_id,
            ClassroomMember.student_id == student.id,
            ClassroomMember.is_active.is_(True),
        )
        .first()
    )
    if membership is None:
        raise PermissionDeniedError("You are not a member of this assignment's classroom")
    return assignment


def create_submission_and_dispatch(
    db: Session,
    dispatcher: TaskDispatcher,
    *,
    student: User,
    obj_in: SubmissionCreate,
) -> Submission:
    """
    学生提交作业/练习 + 派发处理任务
    status 初始为 UPLOADED，由 worker 推进
    """
    get_owned_file(db, user=student, file_id=obj_in.file_upload_id)

    assignment_id = None
    if obj_in.work_mode == WorkMode.HOMEWORK:
        assignment_id = _check_homework_assignment(
            db, student=student, assignment_id=obj_in.assignment_id
        ).id

    submission = Submission(
        user_id=student.id,
        file_upload_id=obj_in.file_upload_id,
        assignment_id=assignment_id,
        work_mode=obj_in.work_mode.value,
        status=SubmissionStatus.UPLOADED.value,
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)

    # 入队，让 worker 去跑 OCR + 批改
    dispatcher.dispatch_processing(
        submission.id, ProcessingOptions(mode=WorkMode(submission.work_mode))
    )

    return submission


def get_submission(db: Session, submission_id: int) -> Optional[Submission]:
    return db.get(Submission, submission_id)


def get_own_submission(
    db: Session, *, user: User, submission_id: int, work_mode: WorkMode | None = None
) -> Submission:
    sub = get_submission(db, submission_id)
    if sub is None or sub.user_id != user.id:
        raise NotFoundError("Submission not found")
    if work_mode is not None and sub.work_mode != work_mode.value:
        raise NotFoundError("Submission not found")
    return sub


def get_readable_submission(db: Session, *, user: User, submission_id: int) -> Submission:
    """Owner, or the teacher who owns the submission's assignment."""
    sub = get_submission(db, submission_id)
    if sub is None:
        raise NotFoundError("Submission not found")
    if sub.user_id == user.id:
        return sub

    if user.role == UserRole.TEACHER:
        if sub.assignment is not None and sub.assignment.teacher_id == user.id:
            return sub
        raise PermissionDeniedError("Not allowed to view this submission")

    raise NotFoundError("Submission not found")


def list_submissions_for_user(
    db: Session,
    *,
    user: User,
    status: SubmissionStatus | None = None,
    work_mode: WorkMode | None = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Submission]:
    """
    学生查看自己的所有提交
    """
    query = db.query(Submission).filter(Submission.user_id == user.id)
    if status is not None:
        query = query.filter(Submission.status == status.value)
    if work_mode is not None:
        query = query.filter(Submission.work_mode == work_mode.value)
    return (
        query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def build_detail(db: Session, submission: Submission) -> dict:
    repo = SubmissionRepository(db)
    analyses = (
        db.query(ErrorAnalysis)
        .filter(ErrorAnalysis.submission_id == submission.id)
        .order_by(ErrorAnalysis.id)
        .all()
    )
    return {
        "id": submission.id,
        "user_id": submission.user_id,
        "file_upload_id": submission.file_upload_id,
        "assignment_id": submission.assignment_id,
        "work_mode": submission.work_mode,
        "status": submission.status,
        "submitted_at": submission.submitted_at,
        "completed_at": submission.completed_at,
        "original_name": submission.file_upload.original_name if submission.file_upload else None,
        "ocr_result": repo.latest_ocr_result(submission.id),
        "grading_result": repo.latest_grading_result(submission.id),
        "error_analyses": [
            {
                "id": a.id,
                "knowledge_point_id": a.knowledge_point_id,
                "knowledge_point_name": a.knowledge_point.name if a.knowledge_point else None,
                "error_type": a.error_type,
                "description": a.description,
                "severity": a.severity,
                "ai_suggestion": a.ai_suggestion,
            }
            for a in analyses
        ],
    }


def get_status(db: Session, submission: Submission) -> dict:
    repo = SubmissionRepository(db)
    latest_ocr = repo.latest_ocr_result(submission.id)
    latest_grading = repo.latest_grading_result(submission.id)
    progress = compute_progress(latest_ocr, latest_grading)
    return {
        "submission_id": submission.id,
        "status": submission.status,
        "progress": {
            "percent": progress.percent,
            "stage": progress.stage,
            "message": progress.message,
        },
        "ocr_text": latest_ocr.recognized_text if latest_ocr else None,
        "ocr_confidence": latest_ocr.confidence if latest_ocr else None,
        "score": latest_grading.score if latest_grading else None,
        "max_score": latest_grading.max_score if latest_grading else None,
        "feedback": latest_grading.feedback if latest_grading else None,
        "completed_at": submission.completed_at,
    }


def reprocess_submission(
    db: Session,
    dispatcher: TaskDispatcher,
    *,
    user: User,
    submission_id: int,
    skip_ai: bool = False,
) -> tuple[Submission, str]:
    sub = get_own_submission(db, user=user, submission_id=submission_id)
    if sub.status == SubmissionStatus.PROCESSING:
        raise ConflictError("Submission is already being processed")

    job_id = dispatcher.dispatch_processing(
        sub.id, ProcessingOptions(mode=WorkMode(sub.work_mode), skip_ai=skip_ai)
    )
    return sub, job_id


def delete_submission(
    db: Session, *, user: User, submission_id: int, work_mode: WorkMode | None = None
) -> None:
    """结果行随 submission 级联删除，上传的文件保留"""
    sub = get_own_submission(db, user=user, submission_id=submission_id, work_mode=work_mode)
    db.delete(sub)
    db.commit()


def list_ocr_results(db: Session, submission: Submission) -> List[OCRResult]:
    return (
        db.query(OCRResult)
        .filter(OCRResult.submission_id == submission.id)
        .order_by(OCRResult.created_at.desc(), OCRResult.id.desc())
        .all()
    )


def practice_difficulty(score: float | None, max_score: float | None) -> str:
    if score is None or not max_score:
        return "MEDIUM"
    percentage = score / max_score * 100
    if percentage >= 85:
        return "EASY"
    if percentage < 60:
        return "HARD"
    return "MEDIUM"


def practice_history(db: Session, *, user: User) -> List[dict]:
    repo = SubmissionRepository(db)
    subs = list_submissions_for_user(
        db, user=user, work_mode=WorkMode.PRACTICE, limit=PRACTICE_HISTORY_LIMIT
    )

    history = []
    for sub in subs:
        grading = repo.latest_grading_result(sub.id)
        score = grading.score if grading else None
        max_score = grading.max_score if grading else None
        history.append(
            {
                "id": sub.id,
                "original_name": sub.file_upload.original_name if sub.file_upload else None,
                "status": sub.status,
                "score": score,
                "max_score": max_score,
                "difficulty": practice_difficulty(score, max_score),
                "submitted_at": sub.submitted_at,
                "completed_at": sub.completed_at,
            }
        )
    return history
