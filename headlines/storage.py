"""Per-session preference and seen-history stores.

Both stores are read-merge-write over a ``KeyValueStore`` and never raise to
the caller: read failures degrade to the empty record, write failures are
logged and dropped. Concurrent merges for one session are not serialized.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from headlines.constants import (
    PREFERENCES_KEY_PREFIX,
    SEEN_HISTORY_MAX_IDS,
    SEEN_KEY_PREFIX,
)
from headlines.kv import KeyValueStore
from headlines.models import Preferences, SeenHistory, utc_now

logger = logging.getLogger(__name__)


def preferences_key(session_id: str) -> str:
    return f"{PREFERENCES_KEY_PREFIX}:{session_id}"


def seen_key(session_id: str) -> str:
    return f"{SEEN_KEY_PREFIX}:{session_id}"


def merge_labels(existing: Iterable[str], new: Iterable[str]) -> tuple[str, ...]:
    """Union labels case-insensitively, keeping the first spelling seen."""
    merged: list[str] = []
    keys: set[str] = set()
    for label in [*existing, *new]:
        key = label.casefold()
        if key in keys:
            continue
        keys.add(key)
        merged.append(label)
    return tuple(merged)


class PreferenceStore:
    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    async def get(self, session_id: str) -> Preferences:
        key = preferences_key(session_id)
        try:
            stored = await self.kv.get(key)
        except Exception as e:
            logger.error(f"Failed to read preferences {key}: {e}")
            return Preferences()
        return Preferences.from_dict(stored)

    async def put(self, session_id: str, prefs: Preferences) -> bool:
        key = preferences_key(session_id)
        try:
            await self.kv.put(key, prefs.to_dict())
        except Exception as e:
            logger.error(f"Failed to write preferences {key}: {e}")
            return False
        return True

    async def merge(self, session_id: str, hint: Preferences) -> tuple[Preferences, bool]:
        """Union hint topics into the stored ones; hint region replaces when set.

        Returns the merged record and whether it was persisted.
        """
        current = await self.get(session_id)
        merged = Preferences(
            topics=merge_labels(current.topics, hint.topics),
            region=hint.region or current.region,
        )
        saved = await self.put(session_id, merged)
        logger.debug(f"Merged preferences for {session_id}: {merged.to_dict()}")
        return merged, saved


class SeenHistoryStore:
    def __init__(
        self,
        kv: KeyValueStore,
        max_ids: int = SEEN_HISTORY_MAX_IDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.kv = kv
        self.max_ids = max(0, max_ids)
        self.clock = clock

    async def get(self, session_id: str) -> SeenHistory:
        key = seen_key(session_id)
        try:
            stored = await self.kv.get(key)
        except Exception as e:
            logger.error(f"Failed to read seen history {key}: {e}")
            return SeenHistory(updated_at=self.clock())
        if stored is None:
            return SeenHistory(updated_at=self.clock())
        return SeenHistory.from_dict(stored)

    async def append(self, session_id: str, ids: Iterable[int]) -> SeenHistory:
        """Union ``ids`` after the stored ones, in first-occurrence order.

        With ``max_ids`` set, only the most recent ids are kept.
        """
        new_ids = list(ids)
        current = await self.get(session_id)
        if not new_ids:
            return current

        merged = list(current.ids)
        known = set(merged)
        for article_id in new_ids:
            if article_id not in known:
                known.add(article_id)
                merged.append(article_id)
        if self.max_ids and len(merged) > self.max_ids:
            merged = merged[-self.max_ids :]

        updated = SeenHistory(ids=tuple(merged), updated_at=self.clock())
        key = seen_key(session_id)
        try:
            await self.kv.put(key, updated.to_dict())
        except Exception as e:
            logger.error(f"Failed to write seen history {key}: {e}")
        return updated
