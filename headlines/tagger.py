"""Preference inference: free-text message -> topic/region hint."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from typing import Protocol

from headlines.constants import LLM_TAGGER_MAX_TOKENS, LLM_TAGGER_MODEL, LLM_TEMPERATURE
from headlines.llm import GroqClient, parse_json_object
from headlines.models import PreferenceHint, Preferences
from headlines.prompts import tagger_prompt

logger = logging.getLogger(__name__)


class PreferenceTagger(Protocol):
    async def infer(self, prefs: Preferences, message: str) -> PreferenceHint: ...


class Vocabulary:
    """Known labels, looked up case-insensitively and returned in canonical spelling.

    An empty vocabulary accepts any non-empty label as-is.
    """

    def __init__(self, labels: Iterable[str]) -> None:
        self.labels: list[str] = []
        self._by_key: dict[str, str] = {}
        for label in labels:
            key = label.casefold()
            if label.strip() and key not in self._by_key:
                self._by_key[key] = label
                self.labels.append(label)

    def canonical(self, label: str) -> str | None:
        label = label.strip()
        if not label:
            return None
        if not self._by_key:
            return label
        return self._by_key.get(label.casefold())


def _positions(message: str, labels: Sequence[str]) -> list[tuple[int, str]]:
    lowered = message.casefold()
    found = []
    for label in labels:
        match = re.search(rf"\b{re.escape(label.casefold())}\b", lowered)
        if match:
            found.append((match.start(), label))
    return sorted(found)


class KeywordTagger:
    """Offline tagger: picks vocabulary labels that appear as words in the message."""

    def __init__(self, topics: Iterable[str], regions: Iterable[str]) -> None:
        self.topics = Vocabulary(topics)
        self.regions = Vocabulary(regions)

    async def infer(self, prefs: Preferences, message: str) -> PreferenceHint:
        topics = [label for _, label in _positions(message, self.topics.labels)]
        regions = [label for _, label in _positions(message, self.regions.labels)]
        return PreferenceHint(topics=tuple(topics), region=regions[0] if regions else None)


class LLMTagger:
    """Asks the LLM for topics/region and keeps only labels from the vocabulary."""

    def __init__(
        self,
        topics: Iterable[str],
        regions: Iterable[str],
        client: GroqClient | None = None,
        model: str = LLM_TAGGER_MODEL,
    ) -> None:
        self.topics = Vocabulary(topics)
        self.regions = Vocabulary(regions)
        self.client = client or GroqClient()
        self.model = model

    def _user_prompt(self, prefs: Preferences, message: str) -> str:
        return (
            f"Stored preferences: {json.dumps(prefs.to_dict())}\n"
            f'User message: "{message}"'
        )

    def parse(self, text: str | None) -> PreferenceHint:
        data = parse_json_object(text)
        topics: list[str] = []
        raw_topics = data.get("topics")
        if isinstance(raw_topics, str):
            raw_topics = [raw_topics]
        if isinstance(raw_topics, list):
            for raw in raw_topics:
                if not isinstance(raw, str):
                    continue
                label = self.topics.canonical(raw)
                if label and label not in topics:
                    topics.append(label)
        region = None
        raw_region = data.get("region")
        if isinstance(raw_region, str):
            region = self.regions.canonical(raw_region)
        return PreferenceHint(topics=tuple(topics), region=region)

    async def infer(self, prefs: Preferences, message: str) -> PreferenceHint:
        try:
            text = await self.client.complete(
                model=self.model,
                contents=self._user_prompt(prefs, message),
                system_prompt=tagger_prompt(self.topics.labels, self.regions.labels),
                config={
                    "temperature": LLM_TEMPERATURE,
                    "max_tokens": LLM_TAGGER_MAX_TOKENS,
                    "response_mime_type": "application/json",
                },
            )
        except Exception as e:
            logger.warning(f"Preference tagging failed: {e}")
            return PreferenceHint()
        hint = self.parse(text)
        logger.info(f"Tagged message with {hint.to_dict()}")
        return hint
