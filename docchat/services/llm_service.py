"""Generation backend: one OpenAI-compatible Chat Completions endpoint.

The default configuration points at Gemini's OpenAI-compatible API; Groq and
other compatible providers only need a different base URL, key and model.

通过 HTTP API 直接调用，不依赖各家 SDK。调用带 tenacity 重试，默认只尝试一次。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docchat.config import Settings
from docchat.errors import GenerationError

logger = logging.getLogger(__name__)


class LLMClient:
    """Process-wide generation client; owns one pooled ``httpx.AsyncClient``."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.9,
        max_tokens: int = 2000,
        timeout_seconds: float = 120.0,
        max_retries: int = 1,
        retry_min_wait: float = 1.0,
        retry_max_wait: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
            retry_min_wait=settings.llm_retry_min_wait,
            retry_max_wait=settings.llm_retry_max_wait,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and bool(self.base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
            stop=stop_after_attempt(max(1, self.max_retries)),
            wait=wait_exponential(
                min=max(0.1, self.retry_min_wait),
                max=max(1, self.retry_max_wait),
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _post(self, url: str, headers: dict, payload: dict) -> dict:
        async for attempt in self._retrying():
            with attempt:
                resp = await self._client.post(url, headers=headers, json=payload)
                resp.raise_for_status()
                return resp.json()
        raise GenerationError("retry loop exited without a result")

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's reply to ``user_prompt`` under ``system_prompt``."""
        if not self.configured:
            raise GenerationError(
                "LLM API key is not configured; set LLM_API_KEY, GEMINI_API_KEY or GROQ_API_KEY."
            )
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}/chat/completions"
        try:
            data = await self._post(url, headers, payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Generation request failed | model=%s | error=%r", self.model, exc)
            raise GenerationError(f"generation backend error: {exc!r}") from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        content = None
        if choices:
            content = (choices[0] or {}).get("message", {}).get("content")
        if content is None:
            raise GenerationError(f"unexpected generation response: {data!r}")
        if isinstance(content, list):
            return "".join(
                p.get("text", "") for p in content if isinstance(p, dict) and p.get("type") == "text"
            )
        return str(content)
