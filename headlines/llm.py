"""Groq chat-completions client shared by the tagger and the summarizer."""

from __future__ import annotations

import json
import logging
import os
import re

import httpx
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from headlines.constants import (
    GROQ_CHAT_URL,
    LLM_BACKOFF_MAX,
    LLM_BACKOFF_MIN,
    LLM_HTTP_CONNECT_TIMEOUT,
    LLM_HTTP_POOL_TIMEOUT,
    LLM_HTTP_READ_TIMEOUT,
    LLM_HTTP_USER_AGENT,
    LLM_HTTP_WRITE_TIMEOUT,
    LLM_MAX_REQUESTS_PER_SECOND,
    LLM_MAX_RETRIES,
    LLM_RETRY_AFTER_MAX,
)
from headlines.llm_utils import build_payload

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})

_DAILY_QUOTA_RE = re.compile(r"\b(?:tokens|requests) per day\b|\b(?:tpd|rpd)\b", re.IGNORECASE)
_FENCE_RE = re.compile(r"^```[A-Za-z]*\s*|\s*```$")


class GroqQuotaError(RuntimeError):
    """Daily token/request quota exhausted; retrying today is pointless."""


class GroqRetryableError(RuntimeError):
    def __init__(self, message: str, cooldown: float | None = None) -> None:
        super().__init__(message)
        self.cooldown = cooldown


def retry_after(resp: httpx.Response) -> float | None:
    """Seconds from a numeric ``Retry-After`` header, capped."""
    try:
        seconds = float(resp.headers.get("retry-after", ""))
    except ValueError:
        return None
    return min(max(0.0, seconds), LLM_RETRY_AFTER_MAX)


def error_message(resp: httpx.Response) -> str:
    try:
        return str(resp.json()["error"]["message"]).strip()
    except (ValueError, KeyError, TypeError):
        return resp.text.strip()


_backoff = wait_random_exponential(min=LLM_BACKOFF_MIN, max=LLM_BACKOFF_MAX)


def _wait(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    if isinstance(exc, GroqRetryableError) and exc.cooldown is not None:
        return exc.cooldown
    return _backoff(retry_state)


def parse_json_object(text: str | None) -> dict[str, object]:
    """First JSON object in a model reply, tolerating code fences and chatter."""
    if not text:
        return {}
    cleaned = _FENCE_RE.sub("", text.strip())
    decoder = json.JSONDecoder()
    start = cleaned.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(cleaned, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = cleaned.find("{", start + 1)
    return {}


class GroqClient:
    """One connection pool and one request budget for every LLM call in the process.

    The API key is read per call so a key exported after startup is picked up.
    """

    def __init__(
        self,
        api_key: str | None = None,
        url: str = GROQ_CHAT_URL,
        max_retries: int = LLM_MAX_RETRIES,
        requests_per_second: float = LLM_MAX_REQUESTS_PER_SECOND,
    ) -> None:
        self._api_key = api_key
        self.url = url
        self.max_retries = max(1, max_retries)
        self.limiter = AsyncLimiter(requests_per_second, 1.0)
        self._client: httpx.AsyncClient | None = None

    @property
    def api_key(self) -> str | None:
        return self._api_key or os.environ.get("GROQ_API_KEY")

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": LLM_HTTP_USER_AGENT},
                timeout=httpx.Timeout(
                    connect=LLM_HTTP_CONNECT_TIMEOUT,
                    read=LLM_HTTP_READ_TIMEOUT,
                    write=LLM_HTTP_WRITE_TIMEOUT,
                    pool=LLM_HTTP_POOL_TIMEOUT,
                ),
            )
        return self._client

    async def _post(self, api_key: str, payload: dict[str, object]) -> httpx.Response:
        async with self.limiter:
            try:
                return await self._http().post(
                    self.url,
                    headers={"Authorization": f"Bearer {api_key}"},
                    json=payload,
                )
            except httpx.HTTPError as e:
                raise GroqRetryableError(f"{type(e).__name__}: {e}") from e

    @staticmethod
    def _completion_text(resp: httpx.Response) -> str | None:
        """Content of a 200 reply; raises for retryable or quota failures."""
        if resp.status_code == 200:
            return resp.json()["choices"][0]["message"]["content"]

        message = error_message(resp)
        if resp.status_code == 429 and _DAILY_QUOTA_RE.search(message):
            raise GroqQuotaError(message)
        if resp.status_code in RETRYABLE_STATUS:
            raise GroqRetryableError(
                f"Groq {resp.status_code}: {message}", cooldown=retry_after(resp)
            )
        logger.error(f"Groq rejected request ({resp.status_code}): {message}")
        return None

    async def complete(
        self,
        model: str,
        contents: object | None,
        system_prompt: str | None = None,
        config: dict[str, object] | None = None,
    ) -> str | None:
        """Run one chat completion.

        Returns None without a key, after exhausting retries, or when the
        request is rejected. Raises ``GroqQuotaError`` on daily quota errors.
        """
        api_key = self.api_key
        if not api_key:
            logger.warning("GROQ_API_KEY not set, skipping LLM call")
            return None

        payload = build_payload(
            model=model, contents=contents, config=config, system_prompt=system_prompt
        )
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                retry=retry_if_exception_type(GroqRetryableError),
                wait=_wait,
                reraise=True,
            ):
                with attempt:
                    return self._completion_text(await self._post(api_key, payload))
        except GroqRetryableError as e:
            logger.error(f"Groq call failed after {self.max_retries} attempts: {e}")
        return None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GroqClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
