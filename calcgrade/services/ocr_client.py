"""
Mathpix OCR client
Sends handwritten/PDF homework pages to Mathpix v3/text and returns recognized text + LaTeX
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from calcgrade.core.config import settings
from calcgrade.services.exceptions import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class OCRResponse:
    text: str
    latex: str = ""
    confidence: float = 0.0
    raw: dict[str, Any] = field(default_factory=dict)


def normalize_mime_type(file_type: str | None) -> str:
    """Map an uploaded file's MIME type onto one Mathpix accepts in a data URI."""
    if not file_type:
        return "image/png"
    if file_type == "application/pdf":
        return "application/pdf"
    if "jpeg" in file_type or "jpg" in file_type:
        return "image/jpeg"
    if "png" in file_type:
        return "image/png"
    if "gif" in file_type:
        return "image/gif"
    if "webp" in file_type:
        return "image/webp"
    return "image/png"


class MathpixClient:
    def __init__(
        self,
        app_id: str | None = None,
        app_key: str | None = None,
        *,
        api_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.app_id = app_id if app_id is not None else settings.MATHPIX_APP_ID
        self.app_key = app_key if app_key is not None else settings.MATHPIX_APP_KEY
        self.api_url = api_url or settings.MATHPIX_API_URL
        self.timeout = timeout or settings.MATHPIX_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_key)

    def recognize(self, file_bytes: bytes, mime_type: str | None = None) -> OCRResponse:
        """
        Run Mathpix OCR on a single file.

        Raises:
            ProviderError: missing credentials, transport failure or non-200 response
        """
        if not self.configured:
            raise ProviderError("Mathpix is not configured: MATHPIX_APP_ID / MATHPIX_APP_KEY missing")

        data_mime = normalize_mime_type(mime_type)
        encoded = base64.b64encode(file_bytes).decode("ascii")
        payload = {
            "src": f"data:{data_mime};base64,{encoded}",
            "formats": ["text", "latex_normal"],
            "data_options": {
                "include_asciimath": True,
                "include_latex": True,
                "include_table_html": False,
                "include_tsv": False,
            },
        }
        headers = {
            "app_id": self.app_id,
            "app_key": self.app_key,
            "Content-Type": "application/json",
        }

        logger.info(
            f"Calling Mathpix OCR: mime={data_mime}, size={len(encoded) // 1024}KB"
        )
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"Mathpix request failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(
                f"Mathpix returned {response.status_code}: {response.text[:500]}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise ProviderError(f"Mathpix returned a non-JSON body: {e}") from e

        if result.get("error"):
            raise ProviderError(f"Mathpix error: {result.get('error')}")

        text = result.get("text") or ""
        latex = result.get("latex_normal") or result.get("latex") or ""
        try:
            confidence = float(result.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0

        if not text.strip():
            logger.warning("Mathpix returned an empty text result")

        return OCRResponse(text=text, latex=latex, confidence=confidence, raw=result)
