# calcgrade/models/submission.py
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import relationship

from calcgrade.db.base_class import Base


class WorkMode(str, enum.Enum):
    PRACTICE = "practice"
    HOMEWORK = "homework"


class SubmissionStatus(str, enum.Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def can_transition(current: str, new: str) -> bool:
    """
    状态只能前进；终态可以重新进入 PROCESSING（重新批改），
    但一旦开始处理就永远不会回到 UPLOADED。
    """
    if new == SubmissionStatus.UPLOADED:
        return current == SubmissionStatus.UPLOADED
    return True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    file_upload_id = Column(Integer, ForeignKey("file_uploads.id"), nullable=False, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id"), nullable=True, index=True)

    # practice / homework
    work_mode = Column(String(20), nullable=False, default=WorkMode.PRACTICE.value, index=True)

    # UPLOADED / PROCESSING / COMPLETED / FAILED
    status = Column(
        String(20), nullable=False, default=SubmissionStatus.UPLOADED.value, index=True
    )

    submitted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User")
    file_upload = relationship("FileUpload")
    assignment = relationship("Assignment")

    ocr_results = relationship(
        "OCRResult",
        back_populates="submission",
        cascade="all, delete-orphan",
    )
    grading_results = relationship(
        "GradingResult",
        back_populates="submission",
        cascade="all, delete-orphan",
    )
    error_analyses = relationship(
        "ErrorAnalysis",
        back_populates="submission",
        cascade="all, delete-orphan",
    )
    mistake_items = relationship(
        "MistakeItem",
        back_populates="submission",
        cascade="all, delete-orphan",
    )
