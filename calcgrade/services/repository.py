# calcgrade/services/repository.py
"""
Database access for the processing pipeline.

The pipeline never touches a module-level session: a SubmissionRepository is
built per run (worker task, test) and passed in explicitly.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from calcgrade.models.file_upload import FileUpload
from calcgrade.models.knowledge import ErrorAnalysis, KnowledgePoint
from calcgrade.models.results import GradingResult, OCRResult
from calcgrade.models.submission import Submission, SubmissionStatus, can_transition
from calcgrade.services.exceptions import InvalidStatusTransition, SubmissionNotFound

logger = logging.getLogger(__name__)


class SubmissionRepository:
    def __init__(self, db: Session):
        self.db = db

    # ---- submissions ----

    def get_submission(self, submission_id: int) -> Optional[Submission]:
        return self.db.get(Submission, submission_id)

    def require_submission(self, submission_id: int) -> Submission:
        submission = self.get_submission(submission_id)
        if submission is None:
            raise SubmissionNotFound(f"submission {submission_id} not found")
        return submission

    def get_file_upload(self, file_upload_id: int) -> Optional[FileUpload]:
        return self.db.get(FileUpload, file_upload_id)

    def set_status(
        self,
        submission_id: int,
        status: SubmissionStatus,
        *,
        completed_at: datetime | None = None,
    ) -> Submission:
        submission = self.require_submission(submission_id)
        if not can_transition(submission.status, status):
            raise InvalidStatusTransition(
                f"submission {submission_id}: {submission.status} -> {status.value}"
            )
        submission.status = status.value
        if completed_at is not None:
            submission.completed_at = completed_at
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        return submission

    def mark_completed(self, submission_id: int) -> Submission:
        return self.set_status(
            submission_id,
            SubmissionStatus.COMPLETED,
            completed_at=datetime.now(timezone.utc),
        )

    def rollback(self) -> None:
        self.db.rollback()

    def mark_failed(self, submission_id: int) -> Submission:
        # 之前的写入可能已经把 session 弄脏，先回滚再写 FAILED
        self.rollback()
        return self.set_status(submission_id, SubmissionStatus.FAILED)

    # ---- provider results ----

    def add_ocr_result(
        self,
        submission_id: int,
        *,
        recognized_text: str,
        math_latex: str | None,
        confidence: float | None,
        processing_time_ms: int | None,
        raw_result: dict[str, Any] | None,
    ) -> OCRResult:
        row = OCRResult(
            submission_id=submission_id,
            recognized_text=recognized_text,
            math_latex=math_latex,
            confidence=confidence,
            processing_time_ms=processing_time_ms,
            raw_result=raw_result,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def add_grading_result(
        self,
        submission_id: int,
        *,
        score: float | None,
        max_score: float | None,
        feedback: str | None,
        errors: list | None,
        suggestions: list | None,
        strengths: list | None,
        processing_time_ms: int | None,
        raw_result: dict[str, Any] | None,
    ) -> GradingResult:
        row = GradingResult(
            submission_id=submission_id,
            score=score,
            max_score=max_score,
            feedback=feedback,
            errors=errors,
            suggestions=suggestions,
            strengths=strengths,
            processing_time_ms=processing_time_ms,
            raw_result=raw_result,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def latest_ocr_result(self, submission_id: int) -> Optional[OCRResult]:
        return (
            self.db.query(OCRResult)
            .filter(OCRResult.submission_id == submission_id)
            .order_by(OCRResult.created_at.desc(), OCRResult.id.desc())
            .first()
        )

    def latest_grading_result(self, submission_id: int) -> Optional[GradingResult]:
        return (
            self.db.query(GradingResult)
            .filter(GradingResult.submission_id == submission_id)
            .order_by(GradingResult.created_at.desc(), GradingResult.id.desc())
            .first()
        )

    # ---- error analysis / knowledge points ----

    def add_error_analysis(
        self,
        submission_id: int,
        *,
        knowledge_point_id: int | None,
        error_type: str | None,
        description: str | None,
        severity: str | None,
        ai_suggestion: str | None,
    ) -> ErrorAnalysis:
        row = ErrorAnalysis(
            submission_id=submission_id,
            knowledge_point_id=knowledge_point_id,
            error_type=error_type,
            description=description,
            severity=severity,
            ai_suggestion=ai_suggestion,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def find_knowledge_point(self, name: str) -> Optional[KnowledgePoint]:
        return self.db.query(KnowledgePoint).filter(KnowledgePoint.name == name).first()

    def get_or_create_knowledge_point(
        self,
        name: str,
        *,
        chapter: str,
        level: int = 3,
    ) -> KnowledgePoint:
        existing = self.find_knowledge_point(name)
        if existing is not None:
            return existing

        point = KnowledgePoint(
            name=name,
            chapter=chapter,
            level=level,
            description=f"{name}相关的微积分知识点",
            keywords=[],
            function_examples=[],
        )
        self.db.add(point)
        try:
            self.db.commit()
        except IntegrityError:
            # 另一个并发的 pipeline 刚刚创建了同名知识点
            self.db.rollback()
            existing = self.find_knowledge_point(name)
            if existing is None:
                raise
            logger.info(f"Knowledge point '{name}' created concurrently, reusing id={existing.id}")
            return existing

        self.db.refresh(point)
        logger.info(f"Created knowledge point '{name}' (chapter={chapter}, id={point.id})")
        return point
