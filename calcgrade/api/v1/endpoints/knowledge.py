# calcgrade/api/v1/endpoints/knowledge.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from calcgrade.core.security import get_current_teacher, get_current_user
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.knowledge import (
    InitializeResult,
    KnowledgeDetails,
    KnowledgeGraph,
    KnowledgeSearchResult,
)
from calcgrade.services import knowledge_service
from calcgrade.services.llm_client import DeepseekClient, get_llm_client

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


@router.get("/graph", response_model=KnowledgeGraph)
def knowledge_graph(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return knowledge_service.build_graph(db, user=current_user)


@router.get("/search", response_model=List[KnowledgeSearchResult])
def search_knowledge(
    q: str = "",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return knowledge_service.search(db, q)


@router.post("/initialize", response_model=InitializeResult)
def initialize_knowledge(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    created = knowledge_service.initialize_structure(db)
    return InitializeResult(message="Knowledge structure initialized", created_count=created)


@router.get("/{knowledge_point_id}/details", response_model=KnowledgeDetails)
def knowledge_details(
    knowledge_point_id: int,
    db: Session = Depends(get_db),
    llm: DeepseekClient = Depends(get_llm_client),
    current_user: User = Depends(get_current_user),
):
    """
    知识点详情；第一次访问时生成并保存 AI 讲解。
    """
    return knowledge_service.get_details(
        db, llm, user=current_user, knowledge_point_id=knowledge_point_id
    )
