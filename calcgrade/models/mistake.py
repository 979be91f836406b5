# calcgrade/models/mistake.py
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from calcgrade.db.base_class import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MistakeCategory(Base):
    __tablename__ = "mistake_categories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("mistake_categories.id"), nullable=True, index=True)
    level = Column(Integer, nullable=False, default=1)  # 1..5
    sort_order = Column(Integer, nullable=False, default=0)
    color = Column(String(20), nullable=True)
    icon = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    items = relationship("MistakeItem", back_populates="category")


class MistakeItem(Base):
    __tablename__ = "mistake_items"
    __table_args__ = (UniqueConstraint("user_id", "submission_id"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    submission_id = Column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id = Column(Integer, ForeignKey("mistake_categories.id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")  # low / medium / high
    mastery_level = Column(Integer, nullable=False, default=0)  # 0..5

    review_count = Column(Integer, nullable=False, default=0)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    next_review_at = Column(DateTime(timezone=True), nullable=True)
    is_resolved = Column(Boolean, nullable=False, default=False)
    added_by = Column(String(10), nullable=False, default="manual")  # manual / auto

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    category = relationship("MistakeCategory", back_populates="items")
    submission = relationship("Submission", back_populates="mistake_items")
