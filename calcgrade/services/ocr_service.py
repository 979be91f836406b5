# calcgrade/services/ocr_service.py
import logging
import time

from calcgrade.services.exceptions import ProviderError
from calcgrade.services.ocr_client import MathpixClient
from calcgrade.services.processing_types import StepResult
from calcgrade.services.repository import SubmissionRepository
from calcgrade.services.storage_client import StorageClient

logger = logging.getLogger(__name__)


def run_ocr_for_submission(
    repo: SubmissionRepository,
    storage: StorageClient,
    ocr_provider: MathpixClient,
    submission_id: int,
) -> StepResult:
    """
    pipeline 第一步：从对象存储取文件 -> Mathpix 识别 -> 写入 OCRResult。

    Storage/provider failures raise ProviderError; the caller decides how to degrade.
    An empty recognition is still persisted so status polling can see it.
    """
    submission = repo.require_submission(submission_id)
    file_upload = repo.get_file_upload(submission.file_upload_id)
    if file_upload is None:
        raise ProviderError(f"file upload {submission.file_upload_id} for submission {submission_id} not found")

    logger.info(f"Fetching {file_upload.storage_path} for submission {submission_id}")
    file_bytes = storage.download(file_upload.storage_path)

    start = time.monotonic()
    response = ocr_provider.recognize(file_bytes, file_upload.mime_type)
    processing_time_ms = int((time.monotonic() - start) * 1000)

    row = repo.add_ocr_result(
        submission_id,
        recognized_text=response.text,
        math_latex=response.latex,
        confidence=response.confidence,
        processing_time_ms=processing_time_ms,
        raw_result=response.raw,
    )

    logger.info(
        f"OCR result saved: submission={submission_id}, result={row.id}, "
        f"text_length={len(response.text)}, confidence={response.confidence}"
    )

    return StepResult(
        success=True,
        data={
            "result_id": row.id,
            "recognized_text": row.recognized_text,
            "math_latex": row.math_latex,
            "confidence": row.confidence,
            "processing_time_ms": row.processing_time_ms,
        },
    )
