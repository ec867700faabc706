"""Per-article digest summaries with a deterministic fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from headlines.constants import (
    LLM_SUMMARY_MAX_TOKENS,
    LLM_SUMMARY_MODEL,
    LLM_TEMPERATURE,
    SUMMARY_CONTENT_CHARS,
    SUMMARY_FALLBACK_TEMPLATE,
    SUMMARY_TIMEOUT_SECONDS,
)
from headlines.llm import GroqClient, parse_json_object
from headlines.models import Article
from headlines.prompts import SUMMARIZER_PROMPT

logger = logging.getLogger(__name__)


class SummaryUnavailable(RuntimeError):
    """Raised when the summarizer produced nothing usable."""


class Summarizer(Protocol):
    async def summarize(self, message: str, article: Article) -> str: ...


def fallback_summary(article: Article) -> str:
    return SUMMARY_FALLBACK_TEMPLATE.format(
        title=article.title,
        tags=", ".join(article.topic_tags),
        region=article.region,
    )


def extract_summary(text: str | None) -> str:
    """Pull the summary out of a model reply; accepts JSON objects or plain text."""
    if not text or not text.strip():
        return ""
    data = parse_json_object(text)
    if not data:
        stripped = text.strip()
        return "" if stripped.startswith(("{", "[")) else stripped

    for key in ("summary", "response", "result"):
        value = data.get(key)
        if isinstance(value, dict) and isinstance(value.get("summary"), str):
            return value["summary"].strip()
        if isinstance(value, str):
            return value.strip()
    for value in data.values():
        if isinstance(value, str):
            return value.strip()
    return ""


class LLMSummarizer:
    def __init__(
        self, client: GroqClient | None = None, model: str = LLM_SUMMARY_MODEL
    ) -> None:
        self.client = client or GroqClient()
        self.model = model

    @staticmethod
    def build_prompt(message: str, article: Article) -> str:
        return (
            f'User query: "{message}"\n'
            f"Article Title: {article.title}\n"
            f"Original Content: {article.content[:SUMMARY_CONTENT_CHARS]}...\n\n"
            "Create a concise summary:"
        )

    async def summarize(self, message: str, article: Article) -> str:
        text = await self.client.complete(
            model=self.model,
            contents=self.build_prompt(message, article),
            system_prompt=SUMMARIZER_PROMPT,
            config={
                "temperature": LLM_TEMPERATURE,
                "max_tokens": LLM_SUMMARY_MAX_TOKENS,
                "response_mime_type": "application/json",
            },
        )
        summary = extract_summary(text)
        if not summary:
            raise SummaryUnavailable(f"No summary for article {article.id}")
        return summary


async def _summarize_one(
    summarizer: Summarizer, message: str, article: Article, timeout: float
) -> Article:
    try:
        summary = await asyncio.wait_for(summarizer.summarize(message, article), timeout)
    except Exception as e:
        logger.warning(f"Summarizing article {article.id} failed, using fallback: {e!r}")
        return article.with_summary(fallback_summary(article))
    if not isinstance(summary, str) or not summary.strip():
        return article.with_summary(fallback_summary(article))
    return article.with_summary(summary.strip())


async def summarize_articles(
    summarizer: Summarizer,
    message: str,
    articles: Sequence[Article],
    timeout: float = SUMMARY_TIMEOUT_SECONDS,
) -> list[Article]:
    """Summarize concurrently; the result keeps the input order."""
    if not articles:
        return []
    return list(
        await asyncio.gather(
            *[_summarize_one(summarizer, message, a, timeout) for a in articles]
        )
    )
