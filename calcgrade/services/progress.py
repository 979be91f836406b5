# calcgrade/services/progress.py
"""
Progress projection for status polling.

There is no stored "current stage": progress is recomputed on every read from
whichever result rows exist. Reads racing a pipeline write may see a stale stage.
"""
from dataclasses import dataclass

from calcgrade.models.results import GradingResult, OCRResult


@dataclass(frozen=True)
class Progress:
    percent: int
    stage: str
    message: str


def compute_progress(
    latest_ocr: OCRResult | None,
    latest_grading: GradingResult | None,
) -> Progress:
    if latest_ocr is None:
        return Progress(10, "awaiting_ocr", "等待OCR识别...")

    if not (latest_ocr.recognized_text or "").strip():
        return Progress(30, "ocr_in_progress", "正在进行OCR识别...")

    if latest_grading is None:
        return Progress(60, "grading_in_progress", "OCR识别完成，正在AI批改...")

    has_score = latest_grading.score is not None
    has_feedback = bool((latest_grading.feedback or "").strip())
    if not has_score and not has_feedback:
        return Progress(80, "grading_in_progress", "AI批改进行中...")

    return Progress(100, "completed", "批改完成")
