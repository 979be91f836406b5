"""
Processing tasks for the worker.
These tasks are executed by RQ workers to run the submission pipeline asynchronously.
"""

import logging

from calcgrade.db.session import SessionLocal
from calcgrade.models.submission import WorkMode
from calcgrade.services.llm_client import DeepseekClient
from calcgrade.services.ocr_client import MathpixClient
from calcgrade.services.processing_service import process_submission
from calcgrade.services.processing_types import ProcessingOptions
from calcgrade.services.repository import SubmissionRepository
from calcgrade.services.storage_client import StorageClient

logger = logging.getLogger(__name__)


def process_submission_task(
    submission_id: int,
    mode: str = WorkMode.PRACTICE.value,
    skip_ai: bool = False,
) -> dict:
    """
    Worker task that runs OCR -> AI grading -> error analysis for one submission.

    Provider clients are built from settings; the pipeline itself never raises,
    so the returned dict always carries the outcome.

    Args:
        submission_id: ID of submission to process
        mode: "practice" or "homework"
        skip_ai: stop after OCR

    Returns:
        Dictionary with the processing summary
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting processing task for submission {submission_id}")

        result = process_submission(
            submission_id,
            repo=SubmissionRepository(db),
            ocr_provider=MathpixClient(),
            llm=DeepseekClient(),
            storage=StorageClient(),
            options=ProcessingOptions(mode=WorkMode(mode), skip_ai=skip_ai),
        )

        summary = {
            "status": "success" if result.success else "error",
            "submission_id": submission_id,
            "error": result.error,
            "ocr": result.ocr_result.data if result.ocr_result else None,
            "grading": result.ai_result.data if result.ai_result else None,
        }
        logger.info(
            f"Completed processing task for submission {submission_id}: status={summary['status']}"
        )
        return summary

    finally:
        db.close()
