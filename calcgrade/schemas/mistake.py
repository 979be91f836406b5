# calcgrade/schemas/mistake.py
from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field

Priority = Literal["low", "medium", "high"]


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    parent_id: int | None = None
    color: str | None = None
    icon: str | None = None


class CategoryUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    color: str | None = None
    icon: str | None = None


class CategoryMove(BaseModel):
    new_parent_id: int | None = None
    new_sort_order: int | None = None


class CategoryPublic(BaseModel):
    id: int
    name: str
    description: str | None = None
    parent_id: int | None = None
    level: int
    sort_order: int
    color: str | None = None
    icon: str | None = None

    model_config = {"from_attributes": True}


class CategoryNode(CategoryPublic):
    mistake_count: int = 0
    children: List["CategoryNode"] = []


class MistakeItemCreate(BaseModel):
    submission_id: int
    category_id: int | None = None
    title: str | None = None
    notes: str | None = None
    tags: List[str] = []
    priority: Priority = "medium"


class MistakeItemUpdate(BaseModel):
    category_id: int | None = None
    title: str | None = None
    notes: str | None = None
    tags: List[str] | None = None
    priority: Priority | None = None
    is_resolved: bool | None = None


class MistakeItemPublic(BaseModel):
    id: int
    submission_id: int
    category_id: int | None = None
    title: str
    notes: str | None = None
    tags: List[str] | None = None
    priority: str
    mastery_level: int
    review_count: int
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    is_resolved: bool
    added_by: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MistakeItemPage(BaseModel):
    items: List[MistakeItemPublic]
    total: int
    page: int
    limit: int
    total_pages: int


class ReviewRequest(BaseModel):
    mastery_level: int = Field(ge=0, le=5)


class ReviewResult(BaseModel):
    item: MistakeItemPublic
    next_review_in_days: int


class MistakeStats(BaseModel):
    total: int
    resolved: int
    unresolved: int
    needs_review: int
    recent_added: int
    priority_distribution: dict[str, int]
    category_distribution: List[dict]
    resolution_rate: float
