# calcgrade/services/knowledge_service.py
"""
Knowledge graph: the calculus knowledge-point tree annotated with how often
the current user erred on each point.
"""
import logging
from typing import List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from calcgrade.models.knowledge import ErrorAnalysis, KnowledgePoint
from calcgrade.models.submission import Submission
from calcgrade.models.user import User
from calcgrade.services.error_analysis_service import DEFAULT_CHAPTER
from calcgrade.services.exceptions import NotFoundError, ProviderError, ServiceError
from calcgrade.services.llm_client import DeepseekClient

logger = logging.getLogger(__name__)

MASTERY_PENALTY_PER_ERROR = 15
SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 20
RECENT_ERRORS_LIMIT = 5

# 三章微积分知识点：章 -> 节 -> 知识点
CALCULUS_STRUCTURE = [
    {
        "name": "极限与连续",
        "keywords": ["极限", "连续", "函数"],
        "difficulty_level": 3,
        "children": [
            {
                "name": "数列极限",
                "keywords": ["数列", "极限", "收敛"],
                "difficulty_level": 3,
                "children": [
                    {"name": "极限存在准则", "keywords": ["夹逼定理", "单调有界"], "difficulty_level": 4},
                    {"name": "极限运算法则", "keywords": ["四则运算", "复合函数"], "difficulty_level": 3},
                ],
            },
            {
                "name": "函数极限",
                "keywords": ["函数极限", "左极限", "右极限"],
                "difficulty_level": 3,
                "children": [
                    {"name": "重要极限", "keywords": ["sinx/x", "e的极限"], "difficulty_level": 4},
                    {"name": "无穷小量", "keywords": ["无穷小", "等价无穷小"], "difficulty_level": 4},
                ],
            },
            {
                "name": "连续性",
                "keywords": ["连续", "间断点", "一致连续"],
                "difficulty_level": 3,
                "children": [
                    {"name": "连续函数性质", "keywords": ["介值定理", "最值定理"], "difficulty_level": 3},
                    {"name": "间断点分类", "keywords": ["可去间断", "跳跃间断"], "difficulty_level": 3},
                ],
            },
        ],
    },
    {
        "name": "导数与微分",
        "keywords": ["导数", "微分", "求导"],
        "difficulty_level": 3,
        "children": [
            {
                "name": "导数概念",
                "keywords": ["导数定义", "几何意义", "物理意义"],
                "difficulty_level": 2,
                "children": [
                    {"name": "导数的几何意义", "keywords": ["切线斜率", "几何"], "difficulty_level": 2},
                    {"name": "导数的物理意义", "keywords": ["变化率", "速度", "加速度"], "difficulty_level": 2},
                ],
            },
            {
                "name": "求导法则",
                "keywords": ["求导法则", "链式法则", "乘积法则"],
                "difficulty_level": 3,
                "children": [
                    {"name": "基本求导公式", "keywords": ["幂函数", "指数函数", "对数函数"], "difficulty_level": 2},
                    {"name": "复合函数求导", "keywords": ["链式法则", "复合函数"], "difficulty_level": 4},
                    {"name": "隐函数求导", "keywords": ["隐函数", "参数方程"], "difficulty_level": 4},
                ],
            },
            {
                "name": "导数应用",
                "keywords": ["导数应用", "极值", "单调性"],
                "difficulty_level": 4,
                "children": [
                    {"name": "函数单调性", "keywords": ["单调性", "导数符号"], "difficulty_level": 3},
                    {"name": "函数极值", "keywords": ["极大值", "极小值", "驻点"], "difficulty_level": 4},
                    {"name": "最值问题", "keywords": ["最大值", "最小值", "应用题"], "difficulty_level": 4},
                    {"name": "曲线凹凸性", "keywords": ["二阶导数", "拐点", "凹凸"], "difficulty_level": 4},
                ],
            },
        ],
    },
    {
        "name": "积分学",
        "keywords": ["积分", "不定积分", "定积分"],
        "difficulty_level": 4,
        "children": [
            {
                "name": "不定积分",
                "keywords": ["不定积分", "原函数", "积分法"],
                "difficulty_level": 3,
                "children": [
                    {"name": "基本积分公式", "keywords": ["基本积分", "原函数"], "difficulty_level": 3},
                    {"name": "换元积分法", "keywords": ["第一类换元", "第二类换元"], "difficulty_level": 4},
                    {"name": "分部积分法", "keywords": ["分部积分", "udv公式"], "difficulty_level": 4},
                ],
            },
            {
                "name": "定积分",
                "keywords": ["定积分", "几何意义", "物理意义"],
                "difficulty_level": 3,
                "children": [
                    {"name": "定积分概念", "keywords": ["黎曼积分", "几何意义"], "difficulty_level": 3},
                    {"name": "牛顿-莱布尼兹公式", "keywords": ["基本定理", "计算定积分"], "difficulty_level": 3},
                    {"name": "定积分应用", "keywords": ["面积", "体积", "弧长"], "difficulty_level": 4},
                ],
            },
        ],
    },
]


def mastery_level(error_count: int) -> int:
    return max(0, 100 - error_count * MASTERY_PENALTY_PER_ERROR)


def mastery_status(level: int) -> str:
    if level > 80:
        return "mastered"
    if level > 50:
        return "learning"
    return "weak"


def _user_error_counts(db: Session, user_id: int) -> dict[int, int]:
    rows = (
        db.query(ErrorAnalysis.knowledge_point_id, func.count(ErrorAnalysis.id))
        .join(Submission, Submission.id == ErrorAnalysis.submission_id)
        .filter(Submission.user_id == user_id, ErrorAnalysis.knowledge_point_id.isnot(None))
        .group_by(ErrorAnalysis.knowledge_point_id)
        .all()
    )
    return dict(rows)


def build_graph(db: Session, *, user: User) -> dict:
    points = (
        db.query(KnowledgePoint)
        .order_by(KnowledgePoint.level.asc(), KnowledgePoint.created_at.asc(), KnowledgePoint.id.asc())
        .all()
    )
    error_counts = _user_error_counts(db, user.id)

    nodes = []
    for kp in points:
        errors = error_counts.get(kp.id, 0)
        level = mastery_level(errors)
        nodes.append(
            {
                "id": kp.id,
                "name": kp.name,
                "chapter": kp.chapter,
                "level": kp.level,
                "parent_id": kp.parent_id,
                "keywords": kp.keywords,
                "function_examples": kp.function_examples,
                "difficulty_level": kp.difficulty_level,
                "ai_explanation": kp.ai_explanation,
                "error_count": errors,
                "mastery_level": level,
                "status": mastery_status(level),
            }
        )

    links = [
        {"source": kp.parent_id, "target": kp.id, "type": "hierarchy"}
        for kp in points
        if kp.parent_id
    ]
    # 同章节且同级别（非章节根）的知识点互相关联
    for i, a in enumerate(nodes):
        for b in nodes[i + 1:]:
            if a["chapter"] == b["chapter"] and a["level"] == b["level"] and a["level"] > 1:
                links.append({"source": a["id"], "target": b["id"], "type": "related"})

    chapters: List[str] = []
    for node in nodes:
        if node["chapter"] and node["chapter"] not in chapters:
            chapters.append(node["chapter"])

    mastered = sum(1 for n in nodes if n["status"] == "mastered")
    weak = sum(1 for n in nodes if n["status"] == "weak")
    return {
        "nodes": nodes,
        "links": links,
        "chapters": chapters,
        "stats": {
            "total_knowledge_points": len(nodes),
            "mastered_points": mastered,
            "weak_points": weak,
            "user_progress": round(mastered / len(nodes) * 100) if nodes else 0,
        },
    }


def fallback_explanation(kp: KnowledgePoint) -> str:
    return f"{kp.name}是微积分中的重要概念，需要深入理解其定义和应用。"


def build_explanation_prompt(kp: KnowledgePoint) -> str:
    return f"""
你是一位资深的微积分教师，请为以下知识点提供清晰易懂的解释：

知识点名称：{kp.name}
所属章节：{kp.chapter or DEFAULT_CHAPTER}
难度等级：{kp.difficulty_level}/5
关键词：{', '.join(kp.keywords or []) or '无'}
函数示例：{', '.join(kp.function_examples or []) or '无'}

请提供：
1. 概念定义（用通俗易懂的语言）
2. 核心要点（3-4个关键点）
3. 常见应用场景
4. 学习建议和注意事项

要求：语言简洁明了，结合具体例子说明，200-300字左右。"""


def generate_explanation(llm: DeepseekClient, kp: KnowledgePoint) -> str:
    """LLM explanation; falls back to a template sentence, never raises ProviderError."""
    if not llm.configured:
        return fallback_explanation(kp)
    try:
        content = llm.chat(
            [{"role": "user", "content": build_explanation_prompt(kp)}],
            temperature=0.7,
            max_tokens=500,
        )
    except ProviderError as e:
        logger.warning(f"Explanation generation failed for knowledge point {kp.id}: {e}")
        return fallback_explanation(kp)
    return content.strip() or fallback_explanation(kp)


def get_details(db: Session, llm: DeepseekClient, *, user: User, knowledge_point_id: int) -> dict:
    kp = db.get(KnowledgePoint, knowledge_point_id)
    if kp is None:
        raise NotFoundError("Knowledge point not found")

    if not kp.ai_explanation:
        kp.ai_explanation = generate_explanation(llm, kp)
        db.add(kp)
        db.commit()
        db.refresh(kp)

    user_errors = (
        db.query(ErrorAnalysis)
        .join(Submission, Submission.id == ErrorAnalysis.submission_id)
        .filter(ErrorAnalysis.knowledge_point_id == kp.id, Submission.user_id == user.id)
        .order_by(ErrorAnalysis.created_at.desc(), ErrorAnalysis.id.desc())
        .all()
    )
    level = mastery_level(len(user_errors))

    return {
        "id": kp.id,
        "name": kp.name,
        "chapter": kp.chapter,
        "level": kp.level,
        "description": kp.description,
        "keywords": kp.keywords,
        "function_examples": kp.function_examples,
        "difficulty_level": kp.difficulty_level,
        "ai_explanation": kp.ai_explanation,
        "parent": {"id": kp.parent.id, "name": kp.parent.name} if kp.parent else None,
        "children": [{"id": c.id, "name": c.name} for c in kp.children],
        "user_stats": {
            "error_count": len(user_errors),
            "mastery_level": level,
            "status": mastery_status(level),
            "recent_errors": [
                {
                    "submission_id": e.submission_id,
                    "error_type": e.error_type,
                    "description": e.description,
                    "severity": e.severity,
                    "created_at": e.created_at,
                }
                for e in user_errors[:RECENT_ERRORS_LIMIT]
            ],
        },
    }


def search(db: Session, query: str | None) -> List[dict]:
    term = (query or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        raise ServiceError(f"Search term must be at least {SEARCH_MIN_LENGTH} characters")

    pattern = f"%{term}%"
    results = (
        db.query(KnowledgePoint)
        .filter(
            or_(
                KnowledgePoint.name.ilike(pattern),
                KnowledgePoint.description.ilike(pattern),
                KnowledgePoint.chapter.ilike(pattern),
            )
        )
        .order_by(KnowledgePoint.level.asc(), KnowledgePoint.id.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )
    return [
        {
            "id": kp.id,
            "name": kp.name,
            "chapter": kp.chapter,
            "level": kp.level,
            "keywords": kp.keywords,
            "description": kp.description,
            "parent": {"id": kp.parent.id, "name": kp.parent.name} if kp.parent else None,
            "children_count": len(kp.children),
        }
        for kp in results
    ]


def _create_subtree(db: Session, node: dict, *, chapter: str, level: int, parent_id: int | None) -> int:
    kp = KnowledgePoint(
        name=node["name"],
        chapter=chapter,
        level=level,
        parent_id=parent_id,
        description=f"{node['name']}相关的微积分知识点",
        keywords=node.get("keywords", []),
        function_examples=[],
        difficulty_level=node.get("difficulty_level", 3),
    )
    db.add(kp)
    db.flush()

    created = 1
    for child in node.get("children", []):
        created += _create_subtree(db, child, chapter=chapter, level=level + 1, parent_id=kp.id)
    return created


def initialize_structure(db: Session) -> int:
    """Seed the calculus tree. Refuses when any knowledge point already exists."""
    if db.query(KnowledgePoint).count() > 0:
        raise ServiceError("Knowledge structure already exists")

    created = 0
    for chapter in CALCULUS_STRUCTURE:
        created += _create_subtree(db, chapter, chapter=chapter["name"], level=1, parent_id=None)
    db.commit()
    logger.info(f"Initialized knowledge structure with {created} points")
    return created
