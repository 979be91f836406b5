# calcgrade/services/grading_service.py
"""
AI grading: turn recognized homework text into a score + structured feedback via Deepseek.
"""
from __future__ import annotations

import logging
import time
from typing import Any

from calcgrade.services.llm_client import DeepseekClient, parse_json_content
from calcgrade.services.processing_types import StepResult
from calcgrade.services.repository import SubmissionRepository

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "微积分"
DEFAULT_MAX_SCORE = 100

GRADING_SYSTEM_PROMPT = "你是一名专业的微积分老师，负责批改学生作业。"


def build_grading_prompt(
    recognized_text: str,
    *,
    subject: str,
    exercise_type: str,
    max_score: float = DEFAULT_MAX_SCORE,
) -> str:
    return f"""
请作为一名{subject}老师，对以下学生{exercise_type}进行批改和评分（满分{max_score:g}分）：

学生答案：
{recognized_text}

请按照以下JSON格式返回批改结果：
{{
  "score": 85,
  "maxScore": {max_score:g},
  "feedback": "整体评价...",
  "errors": [
    {{
      "type": "calculation|concept|method|format",
      "description": "错误描述",
      "suggestion": "改进建议",
      "severity": "low|medium|high"
    }}
  ],
  "suggestions": ["建议1", "建议2"],
  "strengths": ["优点1", "优点2"]
}}

请严格按照JSON格式返回，不要包含其他内容。
"""


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def grade_submission(
    repo: SubmissionRepository,
    llm: DeepseekClient,
    submission_id: int,
    recognized_text: str,
    *,
    subject: str = DEFAULT_SUBJECT,
    exercise_type: str,
    max_score: float = DEFAULT_MAX_SCORE,
) -> StepResult:
    """
    pipeline 第二步：调用 LLM 批改并写入 GradingResult。

    Raises:
        ProviderError: Deepseek unreachable / non-2xx / not configured
        MalformedResponseError: the reply is not a JSON object
    """
    prompt = build_grading_prompt(
        recognized_text, subject=subject, exercise_type=exercise_type, max_score=max_score
    )

    start = time.monotonic()
    content = llm.chat(
        [
            {"role": "system", "content": GRADING_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        temperature=0.3,
    )
    processing_time_ms = int((time.monotonic() - start) * 1000)

    parsed = parse_json_content(content)

    score = _as_number(parsed.get("score"))
    parsed_max = _as_number(parsed.get("maxScore"))
    row = repo.add_grading_result(
        submission_id,
        score=score,
        max_score=parsed_max if parsed_max is not None else max_score,
        feedback=parsed.get("feedback") or "",
        errors=_as_list(parsed.get("errors")),
        suggestions=_as_list(parsed.get("suggestions")),
        strengths=_as_list(parsed.get("strengths")),
        processing_time_ms=processing_time_ms,
        raw_result={"content": content, "parsed": parsed},
    )

    logger.info(
        f"Grading result saved: submission={submission_id}, result={row.id}, "
        f"score={row.score}/{row.max_score}"
    )

    return StepResult(
        success=True,
        data={
            "result_id": row.id,
            "score": row.score,
            "max_score": row.max_score,
            "feedback": row.feedback,
            "errors": row.errors,
            "suggestions": row.suggestions,
            "strengths": row.strengths,
        },
    )
