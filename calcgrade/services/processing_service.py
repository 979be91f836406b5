# calcgrade/services/processing_service.py
"""
Submission processing pipeline: OCR -> AI grading -> error analysis -> final status.

process_submission() never raises. Provider failures degrade into the returned
ProcessingResult; only an exception escaping the whole body (a malformed
grading reply, a failing database write) ends the submission in FAILED.
"""
from __future__ import annotations

import logging

from calcgrade.core.config import settings
from calcgrade.models.submission import SubmissionStatus, WorkMode
from calcgrade.services import mistake_service
from calcgrade.services.error_analysis_service import run_error_analysis
from calcgrade.services.exceptions import ProviderError
from calcgrade.services.grading_service import DEFAULT_SUBJECT, grade_submission
from calcgrade.services.llm_client import DeepseekClient
from calcgrade.services.ocr_client import MathpixClient
from calcgrade.services.ocr_service import run_ocr_for_submission
from calcgrade.services.processing_types import (
    ProcessingOptions,
    ProcessingResult,
    StepResult,
)
from calcgrade.services.repository import SubmissionRepository
from calcgrade.services.storage_client import StorageClient

logger = logging.getLogger(__name__)

EXERCISE_TYPES = {
    WorkMode.PRACTICE: "自主练习",
    WorkMode.HOMEWORK: "作业提交",
}


def _run_ocr_step(
    repo: SubmissionRepository,
    storage: StorageClient,
    ocr_provider: MathpixClient,
    submission_id: int,
) -> StepResult:
    try:
        result = run_ocr_for_submission(repo, storage, ocr_provider, submission_id)
    except Exception as e:
        logger.error(f"OCR failed for submission {submission_id}: {e}", exc_info=True)
        repo.rollback()
        return StepResult(success=False, error=str(e))

    logger.info(
        f"OCR finished for submission {submission_id}: "
        f"has_text={bool((result.data or {}).get('recognized_text'))}, "
        f"confidence={(result.data or {}).get('confidence')}"
    )
    return result


def _run_grading_step(
    repo: SubmissionRepository,
    llm: DeepseekClient,
    submission_id: int,
    recognized_text: str,
    mode: WorkMode,
) -> StepResult:
    try:
        result = grade_submission(
            repo,
            llm,
            submission_id,
            recognized_text,
            subject=DEFAULT_SUBJECT,
            exercise_type=EXERCISE_TYPES[mode],
        )
    except ProviderError as e:
        # MalformedResponseError is deliberately not caught here
        logger.error(f"AI grading failed for submission {submission_id}: {e}")
        return StepResult(success=False, error=str(e))
    return result


def _score_of(ai_result: StepResult | None) -> float | None:
    if ai_result is None or not ai_result.success or not ai_result.data:
        return None
    return ai_result.data.get("score")


def process_submission(
    submission_id: int,
    *,
    repo: SubmissionRepository,
    ocr_provider: MathpixClient,
    llm: DeepseekClient,
    storage: StorageClient,
    options: ProcessingOptions | None = None,
) -> ProcessingResult:
    options = options or ProcessingOptions()

    try:
        mode = WorkMode(options.mode)
        logger.info(f"Processing submission {submission_id}: mode={mode.value}, skip_ai={options.skip_ai}")

        repo.set_status(submission_id, SubmissionStatus.PROCESSING)

        # 1. OCR
        ocr_result = _run_ocr_step(repo, storage, ocr_provider, submission_id)
        recognized_text = (ocr_result.data or {}).get("recognized_text") or ""

        # 2. AI 批改（OCR 失败或没有文本时跳过）
        ai_result: StepResult | None = None
        if not options.skip_ai and ocr_result.success and recognized_text.strip():
            ai_result = _run_grading_step(repo, llm, submission_id, recognized_text, mode)
            score = _score_of(ai_result)

            # 2b. 错题分析，尽力而为
            if score is not None and score < settings.ERROR_ANALYSIS_THRESHOLD:
                try:
                    run_error_analysis(repo, llm, submission_id)
                except Exception as e:
                    logger.error(f"Error analysis failed for submission {submission_id}: {e}", exc_info=True)
                    repo.rollback()

            # 2c. 练习模式低分自动加入错题本
            if (
                mode == WorkMode.PRACTICE
                and score is not None
                and score < settings.MISTAKE_AUTO_ADD_THRESHOLD
            ):
                try:
                    mistake_service.auto_add_mistake(repo.db, submission_id=submission_id)
                except Exception as e:
                    logger.error(f"Auto-adding mistake failed for submission {submission_id}: {e}", exc_info=True)
                    repo.rollback()
        else:
            logger.warning(
                f"Skipping AI grading for submission {submission_id}: skip_ai={options.skip_ai}, "
                f"ocr_success={ocr_result.success}, has_text={bool(recognized_text.strip())}"
            )

        # 3. 最终状态
        degraded = not ocr_result.success or (ai_result is not None and not ai_result.success)
        if options.strict_provider_failures and degraded:
            error = ocr_result.error if not ocr_result.success else ai_result.error
            repo.set_status(submission_id, SubmissionStatus.FAILED)
            logger.warning(f"Submission {submission_id} marked FAILED after provider failure: {error}")
            return ProcessingResult(
                success=False, error=error, ocr_result=ocr_result, ai_result=ai_result
            )

        repo.mark_completed(submission_id)
        logger.info(f"Processing finished for submission {submission_id}")

        return ProcessingResult(success=True, ocr_result=ocr_result, ai_result=ai_result)

    except Exception as e:
        logger.error(f"Processing failed for submission {submission_id}: {e}", exc_info=True)
        try:
            repo.mark_failed(submission_id)
        except Exception as update_error:
            logger.error(
                f"Could not mark submission {submission_id} as FAILED: {update_error}",
                exc_info=True,
            )
        return ProcessingResult(success=False, error=str(e) or e.__class__.__name__)
