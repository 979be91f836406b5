# calcgrade/services/error_analysis_service.py
"""
Error analysis for low-scoring submissions.

Asks the LLM to break the grading feedback into structured error entries and
tags each one with a KnowledgePoint, creating the point on first sight.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from calcgrade.models.knowledge import ErrorAnalysis, KnowledgePoint
from calcgrade.services.llm_client import DeepseekClient, parse_json_content
from calcgrade.services.repository import SubmissionRepository

logger = logging.getLogger(__name__)

DEFAULT_CHAPTER = "微积分基础"

# 顺序匹配，第一个命中的章节生效
CHAPTER_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("极限", "连续", "无穷小", "间断"), "极限与连续"),
    (("导数", "微分", "求导", "切线", "极值", "单调", "凹凸"), "导数与微分"),
    (("积分", "原函数", "换元", "分部", "牛顿"), "积分学"),
]

VALID_SEVERITIES = {"low", "medium", "high"}
ERROR_TYPE_MAX_LENGTH = 50
KNOWLEDGE_POINT_NAME_MAX_LENGTH = 255


def infer_chapter(knowledge_point_name: str) -> str:
    for keywords, chapter in CHAPTER_KEYWORDS:
        if any(keyword in knowledge_point_name for keyword in keywords):
            return chapter
    return DEFAULT_CHAPTER


def resolve_knowledge_point(repo: SubmissionRepository, name: str) -> KnowledgePoint:
    """Exact-name get-or-create; repeated calls with the same name return the same row."""
    return repo.get_or_create_knowledge_point(name, chapter=infer_chapter(name))


def build_error_analysis_prompt(recognized_text: str, feedback: str) -> str:
    return f"""
你是一名微积分老师。下面是学生的作答和批改评语，请分析学生的错误，并指出每个错误对应的知识点。

学生作答：
{recognized_text}

批改评语：
{feedback}

请按照以下JSON格式返回，不要包含其他内容：
{{
  "errorAnalysis": [
    {{
      "errorType": "calculation|concept|method|format",
      "knowledgePointName": "知识点名称，例如：分部积分法",
      "errorDescription": "错误描述",
      "severity": "low|medium|high",
      "aiSuggestion": "改进建议"
    }}
  ]
}}
"""


def _entries(parsed: dict[str, Any]) -> list[dict[str, Any]]:
    entries = parsed.get("errorAnalysis") or []
    if not isinstance(entries, list):
        return []
    return [e for e in entries if isinstance(e, dict)]


def _text(value: Any) -> str | None:
    """LLM 有时返回列表或对象，统一转成字符串"""
    if value is None:
        return None
    if isinstance(value, list):
        return "；".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def run_error_analysis(
    repo: SubmissionRepository,
    llm: DeepseekClient,
    submission_id: int,
) -> list[ErrorAnalysis]:
    """
    Persist one ErrorAnalysis row per entry the LLM returns.
    Any failure propagates; the pipeline treats this step as best-effort.
    """
    ocr = repo.latest_ocr_result(submission_id)
    grading = repo.latest_grading_result(submission_id)
    recognized_text = ocr.recognized_text if ocr else ""
    feedback = grading.feedback if grading else ""

    content = llm.chat(
        [{"role": "user", "content": build_error_analysis_prompt(recognized_text or "", feedback or "")}],
        temperature=0.3,
        max_tokens=2000,
    )
    parsed = parse_json_content(content)

    rows: list[ErrorAnalysis] = []
    for entry in _entries(parsed):
        name = str(entry.get("knowledgePointName") or "").strip()[:KNOWLEDGE_POINT_NAME_MAX_LENGTH]
        knowledge_point = resolve_knowledge_point(repo, name) if name else None

        severity = str(entry.get("severity") or "medium").lower()
        if severity not in VALID_SEVERITIES:
            severity = "medium"

        error_type = _text(entry.get("errorType"))

        rows.append(
            repo.add_error_analysis(
                submission_id,
                knowledge_point_id=knowledge_point.id if knowledge_point else None,
                error_type=error_type[:ERROR_TYPE_MAX_LENGTH] if error_type else None,
                description=_text(entry.get("errorDescription")),
                severity=severity,
                ai_suggestion=_text(entry.get("aiSuggestion")),
            )
        )

    logger.info(f"Error analysis saved: submission={submission_id}, entries={len(rows)}")
    return rows
