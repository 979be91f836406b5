# calcgrade/services/processing_types.py
from dataclasses import asdict, dataclass, field
from typing import Any

from calcgrade.core.config import settings
from calcgrade.models.submission import WorkMode


@dataclass
class ProcessingOptions:
    mode: WorkMode = WorkMode.PRACTICE
    skip_ai: bool = False
    strict_provider_failures: bool = field(
        default_factory=lambda: settings.STRICT_PROVIDER_FAILURES
    )


@dataclass
class StepResult:
    """Outcome of one pipeline stage (OCR or grading)."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class ProcessingResult:
    success: bool
    error: str | None = None
    ocr_result: StepResult | None = None
    ai_result: StepResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
