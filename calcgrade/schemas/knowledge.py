# calcgrade/schemas/knowledge.py
from typing import Any, List

from pydantic import BaseModel


class KnowledgeNode(BaseModel):
    id: int
    name: str
    chapter: str | None = None
    level: int
    parent_id: int | None = None
    keywords: List[str] | None = None
    function_examples: List[str] | None = None
    difficulty_level: int
    ai_explanation: str | None = None
    error_count: int
    mastery_level: int
    status: str  # mastered / learning / weak


class KnowledgeLink(BaseModel):
    source: int
    target: int
    type: str  # hierarchy / related


class KnowledgeGraphStats(BaseModel):
    total_knowledge_points: int
    mastered_points: int
    weak_points: int
    user_progress: int


class KnowledgeGraph(BaseModel):
    nodes: List[KnowledgeNode]
    links: List[KnowledgeLink]
    chapters: List[str]
    stats: KnowledgeGraphStats


class KnowledgeRef(BaseModel):
    id: int
    name: str


class KnowledgeUserStats(BaseModel):
    error_count: int
    mastery_level: int
    status: str
    recent_errors: List[dict[str, Any]] = []


class KnowledgeDetails(BaseModel):
    id: int
    name: str
    chapter: str | None = None
    level: int
    description: str | None = None
    keywords: List[str] | None = None
    function_examples: List[str] | None = None
    difficulty_level: int
    ai_explanation: str
    parent: KnowledgeRef | None = None
    children: List[KnowledgeRef] = []
    user_stats: KnowledgeUserStats


class KnowledgeSearchResult(BaseModel):
    id: int
    name: str
    chapter: str | None = None
    level: int
    keywords: List[str] | None = None
    description: str | None = None
    parent: KnowledgeRef | None = None
    children_count: int


class InitializeResult(BaseModel):
    message: str
    created_count: int
