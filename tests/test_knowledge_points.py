"""
Knowledge-point resolution used by error analysis.
"""

import pytest

from calcgrade.models.knowledge import KnowledgePoint
from calcgrade.services.error_analysis_service import (
    DEFAULT_CHAPTER,
    infer_chapter,
    resolve_knowledge_point,
)
from calcgrade.services.repository import SubmissionRepository


class TestInferChapter:
    @pytest.mark.parametrize(
        "name, chapter",
        [
            ("重要极限", "极限与连续"),
            ("间断点分类", "极限与连续"),
            ("复合函数求导", "导数与微分"),
            ("函数极值", "导数与微分"),
            ("分部积分法", "积分学"),
            ("牛顿-莱布尼兹公式", "积分学"),
            ("泰勒级数", DEFAULT_CHAPTER),
        ],
    )
    def test_keyword_table(self, name, chapter):
        assert infer_chapter(name) == chapter

    def test_first_matching_chapter_wins(self):
        # "导数" and "积分" both appear; the derivative chapter is checked first
        assert infer_chapter("导数与积分的关系") == "导数与微分"


class TestGetOrCreate:
    def test_repeated_resolution_returns_same_row(self, db_session):
        repo = SubmissionRepository(db_session)

        first = resolve_knowledge_point(repo, "换元积分法")
        second = resolve_knowledge_point(repo, "换元积分法")

        assert first.id == second.id
        assert first.chapter == "积分学"
        assert first.level == 3
        assert db_session.query(KnowledgePoint).count() == 1

    def test_concurrent_insert_is_reused(self, db_session, monkeypatch):
        """这个测试证明：并发插入同名知识点时，唯一约束冲突后复用已有记录"""
        existing = KnowledgePoint(name="隐函数求导", chapter="导数与微分", level=3)
        db_session.add(existing)
        db_session.commit()

        repo = SubmissionRepository(db_session)
        real_find = repo.find_knowledge_point
        lookups = []

        def stale_first_lookup(name):
            lookups.append(name)
            # the first lookup happens "before" the other pipeline committed
            if len(lookups) == 1:
                return None
            return real_find(name)

        monkeypatch.setattr(repo, "find_knowledge_point", stale_first_lookup)

        point = repo.get_or_create_knowledge_point("隐函数求导", chapter="导数与微分")

        assert point.id == existing.id
        assert len(lookups) == 2
        assert db_session.query(KnowledgePoint).count() == 1
