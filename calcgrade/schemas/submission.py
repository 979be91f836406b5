# calcgrade/schemas/submission.py
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel

from calcgrade.models.submission import SubmissionStatus, WorkMode


class SubmissionCreate(BaseModel):
    file_upload_id: int
    assignment_id: int | None = None
    work_mode: WorkMode = WorkMode.PRACTICE


class PracticeCreate(BaseModel):
    file_upload_id: int


class ProcessRequest(BaseModel):
    skip_ai: bool = False


class SubmissionPublic(BaseModel):
    id: int
    user_id: int
    file_upload_id: int
    assignment_id: int | None = None
    work_mode: WorkMode
    status: SubmissionStatus
    submitted_at: datetime
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class OCRResultPublic(BaseModel):
    id: int
    recognized_text: str | None = None
    math_latex: str | None = None
    confidence: float | None = None
    processing_time_ms: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class GradingResultPublic(BaseModel):
    id: int
    score: float | None = None
    max_score: float | None = None
    feedback: str | None = None
    errors: List[Any] | None = None
    suggestions: List[Any] | None = None
    strengths: List[Any] | None = None
    processing_time_ms: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ErrorAnalysisPublic(BaseModel):
    id: int
    knowledge_point_id: int | None = None
    knowledge_point_name: str | None = None
    error_type: str | None = None
    description: str | None = None
    severity: str | None = None
    ai_suggestion: str | None = None


class SubmissionDetail(SubmissionPublic):
    """提交详情：最新一次 OCR / 批改结果 + 错题分析"""
    original_name: str | None = None
    ocr_result: OCRResultPublic | None = None
    grading_result: GradingResultPublic | None = None
    error_analyses: List[ErrorAnalysisPublic] = []


class ProgressPublic(BaseModel):
    percent: int
    stage: str
    message: str


class SubmissionStatusPublic(BaseModel):
    submission_id: int
    status: SubmissionStatus
    progress: ProgressPublic
    ocr_text: str | None = None
    ocr_confidence: float | None = None
    score: float | None = None
    max_score: float | None = None
    feedback: str | None = None
    completed_at: datetime | None = None


class ProcessAccepted(BaseModel):
    submission_id: int
    job_id: str
    status: SubmissionStatus


class PracticeHistoryItem(BaseModel):
    id: int
    original_name: str | None = None
    status: SubmissionStatus
    score: float | None = None
    max_score: float | None = None
    difficulty: str | None = None  # EASY / MEDIUM / HARD
    submitted_at: datetime
    completed_at: datetime | None = None
