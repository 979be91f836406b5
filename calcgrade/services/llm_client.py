"""
Deepseek chat-completions client used for grading, error analysis and knowledge explanations
"""

import json
import logging
import re
from typing import Any

import httpx

from calcgrade.core.config import settings
from calcgrade.services.exceptions import MalformedResponseError, ProviderError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class DeepseekClient:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.DEEPSEEK_API_KEY
        self.base_url = (base_url or settings.DEEPSEEK_BASE_URL).rstrip("/")
        self.model = model or settings.DEEPSEEK_MODEL
        self.timeout = timeout or settings.DEEPSEEK_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int | None = None,
    ) -> str:
        """
        Send one chat-completion request and return the first choice's content.

        Raises:
            ProviderError: missing API key, transport failure, non-2xx or empty choices
        """
        if not self.configured:
            raise ProviderError("Deepseek API key is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens or settings.DEEPSEEK_MAX_TOKENS,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions", json=payload, headers=headers
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # 429 rate limits land here as well, no retry
            raise ProviderError(
                f"Deepseek returned {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Deepseek request failed: {e}") from e

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Deepseek response has no message content: {e}") from e

        return content or ""


def parse_json_content(content: str) -> dict[str, Any]:
    """
    Parse the JSON object an LLM was asked to return.
    Tolerates a surrounding ```json fence; anything else is a MalformedResponseError.
    """
    text = (content or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"LLM returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError(f"LLM returned {type(data).__name__}, expected an object")
    return data


def get_llm_client() -> DeepseekClient:
    """FastAPI dependency; overridden in tests."""
    return DeepseekClient()
