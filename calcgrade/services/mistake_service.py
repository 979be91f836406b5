# calcgrade/services/mistake_service.py
"""
错题本：分类树 + 错题条目 + 间隔复习。
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from calcgrade.core.config import settings
from calcgrade.models.mistake import MistakeCategory, MistakeItem
from calcgrade.models.results import GradingResult
from calcgrade.models.submission import Submission
from calcgrade.schemas.mistake import (
    CategoryCreate,
    CategoryMove,
    CategoryUpdate,
    MistakeItemCreate,
    MistakeItemUpdate,
)
from calcgrade.services.exceptions import ConflictError, NotFoundError, ServiceError

logger = logging.getLogger(__name__)

MAX_CATEGORY_LEVEL = 5
REVIEW_INTERVAL_DAYS = [1, 3, 7, 14, 30, 60]
RESOLVED_MASTERY_LEVEL = 4

AUTO_CATEGORY_NAME = "需要加强"
AUTO_CATEGORY_DESCRIPTION = "系统自动创建的分类，用于存放需要重点练习的题目"
AUTO_TAGS = ["自动添加", "低分题目"]

SORTABLE_FIELDS = {
    "created_at": MistakeItem.created_at,
    "updated_at": MistakeItem.updated_at,
    "priority": MistakeItem.priority,
    "mastery_level": MistakeItem.mastery_level,
    "next_review_at": MistakeItem.next_review_at,
}


# ---------------- categories ----------------

def _get_active_category(db: Session, user_id: int, category_id: int) -> MistakeCategory:
    category = (
        db.query(MistakeCategory)
        .filter(
            MistakeCategory.id == category_id,
            MistakeCategory.user_id == user_id,
            MistakeCategory.is_active.is_(True),
        )
        .first()
    )
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _ensure_unique_sibling_name(
    db: Session,
    user_id: int,
    name: str,
    parent_id: int | None,
    exclude_id: int | None = None,
) -> None:
    query = db.query(MistakeCategory).filter(
        MistakeCategory.user_id == user_id,
        MistakeCategory.name == name,
        MistakeCategory.parent_id.is_(None) if parent_id is None else MistakeCategory.parent_id == parent_id,
        MistakeCategory.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(MistakeCategory.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("A sibling category with this name already exists")


def list_category_tree(db: Session, *, user_id: int) -> List[dict]:
    categories = (
        db.query(MistakeCategory)
        .filter(MistakeCategory.user_id == user_id, MistakeCategory.is_active.is_(True))
        .order_by(MistakeCategory.level, MistakeCategory.sort_order, MistakeCategory.created_at)
        .all()
    )
    unresolved_counts = dict(
        db.query(MistakeItem.category_id, func.count(MistakeItem.id))
        .filter(MistakeItem.user_id == user_id, MistakeItem.is_resolved.is_(False))
        .group_by(MistakeItem.category_id)
        .all()
    )

    def build(parent_id: int | None) -> List[dict]:
        return [
            {
                "id": c.id,
                "name": c.name,
                "description": c.description,
                "parent_id": c.parent_id,
                "level": c.level,
                "sort_order": c.sort_order,
                "color": c.color,
                "icon": c.icon,
                "mistake_count": unresolved_counts.get(c.id, 0),
                "children": build(c.id),
            }
            for c in categories
            if c.parent_id == parent_id
        ]

    return build(None)


def create_category(db: Session, *, user_id: int, obj_in: CategoryCreate) -> MistakeCategory:
    name = obj_in.name.strip()
    if not name:
        raise ServiceError("Category name must not be empty")

    level = 1
    if obj_in.parent_id:
        parent = _get_active_category(db, user_id, obj_in.parent_id)
        level = parent.level + 1
        if level > MAX_CATEGORY_LEVEL:
            raise ServiceError(f"Categories cannot be nested deeper than {MAX_CATEGORY_LEVEL} levels")

    parent_id = obj_in.parent_id or None
    _ensure_unique_sibling_name(db, user_id, name, parent_id)

    max_sort = (
        db.query(func.max(MistakeCategory.sort_order))
        .filter(
            MistakeCategory.user_id == user_id,
            MistakeCategory.parent_id.is_(None) if parent_id is None else MistakeCategory.parent_id == parent_id,
            MistakeCategory.is_active.is_(True),
        )
        .scalar()
    )

    category = MistakeCategory(
        user_id=user_id,
        name=name,
        description=(obj_in.description or "").strip() or None,
        parent_id=parent_id,
        level=level,
        sort_order=(max_sort or 0) + 1,
        color=obj_in.color,
        icon=obj_in.icon,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(
    db: Session, *, user_id: int, category_id: int, obj_in: CategoryUpdate
) -> MistakeCategory:
    category = _get_active_category(db, user_id, category_id)
    name = obj_in.name.strip()
    if not name:
        raise ServiceError("Category name must not be empty")
    _ensure_unique_sibling_name(db, user_id, name, category.parent_id, exclude_id=category.id)

    category.name = name
    category.description = (obj_in.description or "").strip() or None
    category.color = obj_in.color
    category.icon = obj_in.icon
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, *, user_id: int, category_id: int) -> int:
    """Soft-delete a leaf category; its items become uncategorised. Returns affected item count."""
    category = _get_active_category(db, user_id, category_id)

    active_children = (
        db.query(MistakeCategory)
        .filter(MistakeCategory.parent_id == category.id, MistakeCategory.is_active.is_(True))
        .count()
    )
    if active_children:
        raise ConflictError("Category has sub-categories; delete or move them first")

    category.is_active = False
    affected = (
        db.query(MistakeItem)
        .filter(MistakeItem.category_id == category.id, MistakeItem.user_id == user_id)
        .update({MistakeItem.category_id: None}, synchronize_session=False)
    )
    db.commit()
    return affected


def _is_descendant(db: Session, ancestor_id: int, candidate_id: int) -> bool:
    frontier = [ancestor_id]
    while frontier:
        children = (
            db.query(MistakeCategory.id)
            .filter(MistakeCategory.parent_id.in_(frontier), MistakeCategory.is_active.is_(True))
            .all()
        )
        child_ids = [c.id for c in children]
        if candidate_id in child_ids:
            return True
        frontier = child_ids
    return False


def _subtree_depth(db: Session, category_id: int) -> int:
    """Levels below category_id (0 for a leaf)."""
    depth = 0
    frontier = [category_id]
    while True:
        children = (
            db.query(MistakeCategory.id)
            .filter(MistakeCategory.parent_id.in_(frontier), MistakeCategory.is_active.is_(True))
            .all()
        )
        if not children:
            return depth
        depth += 1
        frontier = [c.id for c in children]


def _relevel_children(db: Session, parent_id: int, parent_level: int) -> None:
    children = (
        db.query(MistakeCategory)
        .filter(MistakeCategory.parent_id == parent_id, MistakeCategory.is_active.is_(True))
        .all()
    )
    for child in children:
        child.level = parent_level + 1
        _relevel_children(db, child.id, child.level)


def move_category(
    db: Session, *, user_id: int, category_id: int, obj_in: CategoryMove
) -> MistakeCategory:
    category = _get_active_category(db, user_id, category_id)

    new_level = 1
    if obj_in.new_parent_id:
        if obj_in.new_parent_id == category.id or _is_descendant(db, category.id, obj_in.new_parent_id):
            raise ServiceError("Cannot move a category under itself or its descendants")
        new_parent = _get_active_category(db, user_id, obj_in.new_parent_id)
        new_level = new_parent.level + 1

    if new_level + _subtree_depth(db, category.id) > MAX_CATEGORY_LEVEL:
        raise ServiceError(f"Categories cannot be nested deeper than {MAX_CATEGORY_LEVEL} levels")

    category.parent_id = obj_in.new_parent_id or None
    category.level = new_level
    if obj_in.new_sort_order is not None:
        category.sort_order = obj_in.new_sort_order
    _relevel_children(db, category.id, new_level)

    db.commit()
    db.refresh(category)
    return category


# ---------------- items ----------------

def _get_own_submission(db: Session, user_id: int, submission_id: int) -> Submission:
    submission = (
        db.query(Submission)
        .filter(Submission.id == submission_id, Submission.user_id == user_id)
        .first()
    )
    if submission is None:
        raise NotFoundError("Submission not found")
    return submission


def _latest_score(db: Session, submission_id: int) -> Optional[float]:
    latest = (
        db.query(GradingResult)
        .filter(GradingResult.submission_id == submission_id)
        .order_by(GradingResult.created_at.desc(), GradingResult.id.desc())
        .first()
    )
    return latest.score if latest else None


def get_item(db: Session, *, user_id: int, item_id: int) -> MistakeItem:
    item = (
        db.query(MistakeItem)
        .filter(MistakeItem.id == item_id, MistakeItem.user_id == user_id)
        .first()
    )
    if item is None:
        raise NotFoundError("Mistake not found")
    return item


def list_items(
    db: Session,
    *,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    category_id: int | None = None,
    priority: str | None = None,
    is_resolved: bool | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[List[MistakeItem], int]:
    query = db.query(MistakeItem).filter(MistakeItem.user_id == user_id)
    if category_id is not None:
        query = query.filter(MistakeItem.category_id == category_id)
    if priority:
        query = query.filter(MistakeItem.priority == priority)
    if is_resolved is not None:
        query = query.filter(MistakeItem.is_resolved.is_(is_resolved))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(MistakeItem.title.ilike(pattern), MistakeItem.notes.ilike(pattern)))

    total = query.count()

    column = SORTABLE_FIELDS.get(sort_by, MistakeItem.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    items = (
        query.order_by(ordering, MistakeItem.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def add_item(db: Session, *, user_id: int, obj_in: MistakeItemCreate) -> MistakeItem:
    submission = _get_own_submission(db, user_id, obj_in.submission_id)
    if obj_in.category_id:
        _get_active_category(db, user_id, obj_in.category_id)

    existing = (
        db.query(MistakeItem)
        .filter(MistakeItem.user_id == user_id, MistakeItem.submission_id == submission.id)
        .first()
    )
    if existing is not None:
        raise ConflictError("This submission is already in the mistake book")

    item = MistakeItem(
        user_id=user_id,
        submission_id=submission.id,
        category_id=obj_in.category_id or None,
        title=obj_in.title or submission.file_upload.original_name or "未命名练习",
        notes=obj_in.notes,
        tags=obj_in.tags,
        priority=obj_in.priority,
        added_by="manual",
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def _get_or_create_auto_category(db: Session, user_id: int) -> MistakeCategory:
    category = (
        db.query(MistakeCategory)
        .filter(
            MistakeCategory.user_id == user_id,
            MistakeCategory.name == AUTO_CATEGORY_NAME,
            MistakeCategory.parent_id.is_(None),
            MistakeCategory.is_active.is_(True),
        )
        .first()
    )
    if category is None:
        category = MistakeCategory(
            user_id=user_id,
            name=AUTO_CATEGORY_NAME,
            description=AUTO_CATEGORY_DESCRIPTION,
            level=1,
            color="#ef4444",
            icon="🔴",
        )
        db.add(category)
        db.flush()
    return category


def auto_add_mistake(
    db: Session,
    *,
    submission_id: int,
    user_id: int | None = None,
) -> Optional[MistakeItem]:
    """
    低分（< MISTAKE_AUTO_ADD_THRESHOLD）提交自动加入错题本。
    Returns the existing item when already present, None when the score does not qualify.
    """
    query = db.query(Submission).filter(Submission.id == submission_id)
    if user_id is not None:
        query = query.filter(Submission.user_id == user_id)
    submission = query.first()
    if submission is None:
        raise NotFoundError("Submission not found")

    score = _latest_score(db, submission.id)
    if score is None or score >= settings.MISTAKE_AUTO_ADD_THRESHOLD:
        logger.info(f"Skipping auto-add for submission {submission_id}: score={score}")
        return None

    existing = (
        db.query(MistakeItem)
        .filter(MistakeItem.user_id == submission.user_id, MistakeItem.submission_id == submission.id)
        .first()
    )
    if existing is not None:
        return existing

    category = _get_or_create_auto_category(db, submission.user_id)
    item = MistakeItem(
        user_id=submission.user_id,
        submission_id=submission.id,
        category_id=category.id,
        title=submission.file_upload.original_name if submission.file_upload else "系统自动添加",
        notes=f"系统检测到得分较低（{score:g}分），自动添加到错题本",
        tags=list(AUTO_TAGS),
        priority="high" if score < 50 else "medium",
        added_by="auto",
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Auto-added submission {submission_id} to mistake book (score={score:g})")
    return item


def update_item(
    db: Session, *, user_id: int, item_id: int, obj_in: MistakeItemUpdate
) -> MistakeItem:
    item = get_item(db, user_id=user_id, item_id=item_id)
    update_data = obj_in.model_dump(exclude_unset=True)

    if update_data.get("category_id") is not None:
        _get_active_category(db, user_id, update_data["category_id"])

    for field, value in update_data.items():
        setattr(item, field, value)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, *, user_id: int, item_id: int) -> None:
    item = get_item(db, user_id=user_id, item_id=item_id)
    db.delete(item)
    db.commit()


def next_review_interval(review_count: int) -> int:
    """Days until the next review, indexed by how many reviews happened before."""
    return REVIEW_INTERVAL_DAYS[min(review_count, len(REVIEW_INTERVAL_DAYS) - 1)]


def record_review(
    db: Session, *, user_id: int, item_id: int, mastery_level: int
) -> tuple[MistakeItem, int]:
    item = get_item(db, user_id=user_id, item_id=item_id)

    interval = next_review_interval(item.review_count or 0)
    now = datetime.now(timezone.utc)

    item.review_count = (item.review_count or 0) + 1
    item.mastery_level = max(mastery_level, item.mastery_level or 0)
    item.last_reviewed_at = now
    item.next_review_at = now + timedelta(days=interval)
    item.is_resolved = mastery_level >= RESOLVED_MASTERY_LEVEL

    db.add(item)
    db.commit()
    db.refresh(item)
    return item, interval


def _due_filter(now: datetime):
    return or_(MistakeItem.next_review_at.is_(None), MistakeItem.next_review_at <= now)


def list_review_due(db: Session, *, user_id: int) -> List[MistakeItem]:
    now = datetime.now(timezone.utc)
    items = (
        db.query(MistakeItem)
        .filter(
            MistakeItem.user_id == user_id,
            MistakeItem.is_resolved.is_(False),
            _due_filter(now),
        )
        .all()
    )
    rank = {"high": 0, "medium": 1, "low": 2}
    return sorted(items, key=lambda i: (rank.get(i.priority, 3), i.id))


def get_stats(db: Session, *, user_id: int) -> dict:
    now = datetime.now(timezone.utc)
    base = db.query(MistakeItem).filter(MistakeItem.user_id == user_id)

    total = base.count()
    resolved = base.filter(MistakeItem.is_resolved.is_(True)).count()
    needs_review = base.filter(MistakeItem.is_resolved.is_(False), _due_filter(now)).count()
    recent_added = base.filter(MistakeItem.created_at >= now - timedelta(days=7)).count()

    priority_rows = (
        db.query(MistakeItem.priority, func.count(MistakeItem.id))
        .filter(MistakeItem.user_id == user_id, MistakeItem.is_resolved.is_(False))
        .group_by(MistakeItem.priority)
        .all()
    )
    category_rows = (
        db.query(MistakeItem.category_id, func.count(MistakeItem.id))
        .filter(MistakeItem.user_id == user_id)
        .group_by(MistakeItem.category_id)
        .all()
    )

    return {
        "total": total,
        "resolved": resolved,
        "unresolved": total - resolved,
        "needs_review": needs_review,
        "recent_added": recent_added,
        "priority_distribution": {priority: count for priority, count in priority_rows},
        "category_distribution": [
            {"category_id": category_id, "count": count} for category_id, count in category_rows
        ],
        "resolution_rate": round(resolved / total * 100, 1) if total else 0.0,
    }
