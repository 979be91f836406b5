# calcgrade/models/results.py
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    Float,
    Text,
    DateTime,
    ForeignKey,
    JSON,
)
from sqlalchemy.orm import relationship

from calcgrade.db.base_class import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OCRResult(Base):
    """One OCR provider run for a submission; the newest row is authoritative."""

    __tablename__ = "ocr_results"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    recognized_text = Column(Text, nullable=True)
    math_latex = Column(Text, nullable=True)
    confidence = Column(Float, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    raw_result = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    submission = relationship("Submission", back_populates="ocr_results")


class GradingResult(Base):
    """One LLM grading run for a submission; the newest row is authoritative."""

    __tablename__ = "grading_results"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    score = Column(Float, nullable=True)
    max_score = Column(Float, nullable=True, default=100)
    feedback = Column(Text, nullable=True)
    errors = Column(JSON, nullable=True)
    suggestions = Column(JSON, nullable=True)
    strengths = Column(JSON, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    raw_result = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    submission = relationship("Submission", back_populates="grading_results")
