# calcgrade/api/v1/endpoints/mistakes.py
import math
from typing import List, Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.mistake import (
    CategoryCreate,
    CategoryMove,
    CategoryNode,
    CategoryPublic,
    CategoryUpdate,
    MistakeItemCreate,
    MistakeItemPage,
    MistakeItemPublic,
    MistakeItemUpdate,
    MistakeStats,
    ReviewRequest,
    ReviewResult,
)
from calcgrade.services import mistake_service

router = APIRouter(prefix="/mistakes", tags=["mistakes"])


# ---------- categories ----------

@router.get("/categories", response_model=List[CategoryNode])
def list_categories(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.list_category_tree(db, user_id=current_user.id)


@router.post("/categories", response_model=CategoryPublic, status_code=status.HTTP_201_CREATED)
def create_category(
    obj_in: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.create_category(db, user_id=current_user.id, obj_in=obj_in)


@router.put("/categories/{category_id}", response_model=CategoryPublic)
def update_category(
    category_id: int,
    obj_in: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.update_category(
        db, user_id=current_user.id, category_id=category_id, obj_in=obj_in
    )


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    affected = mistake_service.delete_category(db, user_id=current_user.id, category_id=category_id)
    return {"deleted": category_id, "affected_items": affected}


@router.put("/categories/{category_id}/move", response_model=CategoryPublic)
def move_category(
    category_id: int,
    obj_in: CategoryMove,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.move_category(
        db, user_id=current_user.id, category_id=category_id, obj_in=obj_in
    )


# ---------- items ----------

@router.get("", response_model=MistakeItemPage)
def list_items(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category_id: int | None = None,
    priority: Literal["low", "medium", "high"] | None = None,
    is_resolved: bool | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = mistake_service.list_items(
        db,
        user_id=current_user.id,
        page=page,
        limit=limit,
        category_id=category_id,
        priority=priority,
        is_resolved=is_resolved,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return MistakeItemPage(
        items=[MistakeItemPublic.model_validate(i) for i in items],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.post("", response_model=MistakeItemPublic, status_code=status.HTTP_201_CREATED)
def add_item(
    obj_in: MistakeItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.add_item(db, user_id=current_user.id, obj_in=obj_in)


@router.get("/review-due", response_model=List[MistakeItemPublic])
def review_due(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.list_review_due(db, user_id=current_user.id)


@router.get("/stats", response_model=MistakeStats)
def stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.get_stats(db, user_id=current_user.id)


@router.put("/{item_id}", response_model=MistakeItemPublic)
def update_item(
    item_id: int,
    obj_in: MistakeItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return mistake_service.update_item(db, user_id=current_user.id, item_id=item_id, obj_in=obj_in)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    mistake_service.delete_item(db, user_id=current_user.id, item_id=item_id)


@router.post("/{item_id}/review", response_model=ReviewResult)
def review_item(
    item_id: int,
    obj_in: ReviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    记录一次复习；下次复习间隔按 1/3/7/14/30/60 天递增。
    """
    item, interval = mistake_service.record_review(
        db, user_id=current_user.id, item_id=item_id, mastery_level=obj_in.mastery_level
    )
    return ReviewResult(item=MistakeItemPublic.model_validate(item), next_review_in_days=interval)
