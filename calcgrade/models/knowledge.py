# calcgrade/models/knowledge.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from calcgrade.db.base_class import Base


class KnowledgePoint(Base):
    __tablename__ = "knowledge_points"

    id = Column(Integer, primary_key=True, index=True)
    # name 是事实上的业务主键，错题分析按名称 get-or-create
    name = Column(String(255), unique=True, nullable=False, index=True)
    chapter = Column(String(100), nullable=True, index=True)
    level = Column(Integer, nullable=False, default=1)
    parent_id = Column(Integer, ForeignKey("knowledge_points.id"), nullable=True, index=True)

    description = Column(Text, nullable=True)
    keywords = Column(JSON, nullable=True)
    function_examples = Column(JSON, nullable=True)
    difficulty_level = Column(Integer, nullable=False, default=3)
    ai_explanation = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    parent = relationship("KnowledgePoint", remote_side=[id], back_populates="children")
    children = relationship("KnowledgePoint", back_populates="parent")
    error_analyses = relationship("ErrorAnalysis", back_populates="knowledge_point")


class ErrorAnalysis(Base):
    __tablename__ = "error_analyses"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    knowledge_point_id = Column(
        Integer, ForeignKey("knowledge_points.id"), nullable=True, index=True
    )

    error_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    severity = Column(String(20), nullable=True)  # low / medium / high
    ai_suggestion = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    submission = relationship("Submission", back_populates="error_analyses")
    knowledge_point = relationship("KnowledgePoint", back_populates="error_analyses")
