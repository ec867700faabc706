"""Digest pipeline: preferences -> tagging -> selection -> seen history -> summaries."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from headlines.catalog import ArticleCatalog
from headlines.config import Settings
from headlines.constants import (
    DEFAULT_DIGEST_LIMIT,
    INFERENCE_TIMEOUT_SECONDS,
    SUMMARY_TIMEOUT_SECONDS,
)
from headlines.kv import FileKV, KeyValueStore, MemoryKV
from headlines.llm import GroqClient
from headlines.logging_config import get_logger
from headlines.models import Article, DigestResult, PreferenceHint, Preferences
from headlines.selection import select_articles
from headlines.storage import PreferenceStore, SeenHistoryStore
from headlines.summarizer import LLMSummarizer, Summarizer, summarize_articles
from headlines.tagger import KeywordTagger, LLMTagger, PreferenceTagger

logger = get_logger(__name__)


class EmptyMessageError(ValueError):
    """Raised when the incoming message is empty or whitespace-only."""


def effective_preferences(stored: Preferences, hint: Preferences) -> Preferences:
    """Per field, a non-empty hint value wins over the stored one."""
    return Preferences(
        topics=hint.topics or stored.topics,
        region=hint.region or stored.region,
    )


class DigestPipeline:
    """
    Runs one digest request end to end.

    Stages run strictly in order. Only an empty message raises; store,
    tagging and summarizing failures degrade to their fallbacks.
    """

    def __init__(
        self,
        candidates: Sequence[Article],
        preferences: PreferenceStore,
        seen: SeenHistoryStore,
        tagger: PreferenceTagger,
        summarizer: Summarizer,
        limit: int = DEFAULT_DIGEST_LIMIT,
        inference_timeout: float = INFERENCE_TIMEOUT_SECONDS,
        summary_timeout: float = SUMMARY_TIMEOUT_SECONDS,
        llm: GroqClient | None = None,
    ) -> None:
        self.candidates = tuple(candidates)
        self.preferences = preferences
        self.seen = seen
        self.tagger = tagger
        self.summarizer = summarizer
        self.limit = limit
        self.inference_timeout = inference_timeout
        self.summary_timeout = summary_timeout
        self.llm = llm

    @classmethod
    def from_settings(cls, settings: Settings) -> DigestPipeline:
        """Wire stores, catalog and ports from resolved settings.

        Tagger and summarizer share one Groq client, closed by ``close()``.
        """
        catalog = ArticleCatalog.from_file(settings.catalog_path)
        kv: KeyValueStore = FileKV(settings.store_dir) if settings.store_dir else MemoryKV()
        llm = GroqClient()
        tagger: PreferenceTagger
        if settings.tagger == "keyword":
            tagger = KeywordTagger(catalog.topics(), catalog.regions())
        else:
            tagger = LLMTagger(catalog.topics(), catalog.regions(), client=llm)
        return cls(
            candidates=catalog.articles,
            preferences=PreferenceStore(kv),
            seen=SeenHistoryStore(kv, max_ids=settings.seen_max_ids),
            tagger=tagger,
            summarizer=LLMSummarizer(client=llm),
            limit=settings.digest_limit,
            llm=llm,
        )

    async def close(self) -> None:
        if self.llm is not None:
            await self.llm.close()

    @contextmanager
    def _step(self, name: str, session_id: str) -> Iterator[None]:
        log = logger.bind(step=name, session_id=session_id)
        start = time.perf_counter()
        log.debug("step.start")
        try:
            yield
        except Exception:
            log.exception("step.failed")
            raise
        log.info("step.done", elapsed_ms=round((time.perf_counter() - start) * 1000, 1))

    async def _infer(self, prefs: Preferences, message: str) -> PreferenceHint:
        try:
            hint = await asyncio.wait_for(
                self.tagger.infer(prefs, message), self.inference_timeout
            )
        except Exception as e:
            logger.warning("tagging.fallback", error=repr(e))
            return PreferenceHint()
        return hint if hint is not None else PreferenceHint()

    async def run(
        self,
        session_id: str,
        message: str,
        candidates: Sequence[Article] | None = None,
    ) -> DigestResult:
        message = (message or "").strip()
        if not message:
            raise EmptyMessageError("Please send a message with at least size greater than 0")
        pool = self.candidates if candidates is None else tuple(candidates)
        logger.info("digest.start", session_id=session_id, candidates=len(pool))

        with self._step("get-user-preferences", session_id):
            stored = await self.preferences.get(session_id)

        with self._step("llm-tagging", session_id):
            hint = await self._infer(stored, message)

        with self._step("merge-preferences", session_id):
            current = effective_preferences(stored, hint)

        with self._step("update-preferences", session_id):
            preferences_updated = False
            if not hint.is_empty():
                _, preferences_updated = await self.preferences.merge(session_id, hint)

        with self._step("get-seen-articles", session_id):
            history = await self.seen.get(session_id)

        with self._step("filter-articles", session_id):
            selected = select_articles(pool, history.ids, current, self.limit)

        with self._step("update-seen-articles", session_id):
            already_seen = set(history.ids)
            new_ids = [a.id for a in selected if a.id not in already_seen]
            if new_ids:
                await self.seen.append(session_id, new_ids)

        with self._step("llm-summarization", session_id):
            summarized = await summarize_articles(
                self.summarizer, message, selected, self.summary_timeout
            )

        result = DigestResult(
            articles=summarized,
            new_articles_seen=len(new_ids),
            total_articles_processed=len(pool),
            preferences_updated=preferences_updated,
        )
        logger.info(
            "digest.done",
            session_id=session_id,
            returned=[a.id for a in summarized],
            new_articles_seen=result.new_articles_seen,
            preferences_updated=preferences_updated,
        )
        return result
