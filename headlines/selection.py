"""Digest selection: preference filter, unseen-first ordering and top-N bound."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence

from headlines.constants import DEFAULT_DIGEST_LIMIT
from headlines.models import Article, Preferences

logger = logging.getLogger(__name__)


def filter_by_preferences(
    articles: Sequence[Article], prefs: Preferences
) -> list[Article]:
    """Keep articles matching any preferred topic AND the preferred region.

    An unset predicate matches everything. Comparisons ignore case.
    """
    topics = {t.casefold() for t in prefs.topics}
    region = prefs.region.casefold() if prefs.region else None

    filtered = []
    for article in articles:
        if topics and not any(tag.casefold() in topics for tag in article.topic_tags):
            continue
        if region is not None and article.region.casefold() != region:
            continue
        filtered.append(article)
    return filtered


def partition_by_seen(
    articles: Sequence[Article], seen_ids: Collection[int]
) -> tuple[list[Article], list[Article]]:
    """Stable split into (unseen, seen)."""
    seen_set = set(seen_ids)
    unseen: list[Article] = []
    seen: list[Article] = []
    for article in articles:
        (seen if article.id in seen_set else unseen).append(article)
    return unseen, seen


def select_articles(
    candidates: Sequence[Article],
    seen_ids: Collection[int],
    prefs: Preferences,
    limit: int = DEFAULT_DIGEST_LIMIT,
) -> list[Article]:
    """
    Pick at most ``limit`` articles for a digest.

    1. Filter by preferences; if nothing matches, fall back to all candidates.
    2. Unseen articles first, then seen ones, each in candidate order.
    3. Drop repeated ids and truncate to ``limit``.

    Inputs are never mutated.
    """
    if limit <= 0 or not candidates:
        return []

    pool: Sequence[Article] = candidates
    if not prefs.is_empty():
        matched = filter_by_preferences(candidates, prefs)
        if matched:
            pool = matched
        else:
            logger.info("No articles matched preferences, falling back to all articles")

    unseen, seen = partition_by_seen(pool, seen_ids)

    selected: list[Article] = []
    returned_ids: set[int] = set()
    for article in unseen + seen:
        if article.id in returned_ids:
            continue
        returned_ids.add(article.id)
        selected.append(article)
        if len(selected) >= limit:
            break

    logger.debug(
        f"Selected {len(selected)} of {len(pool)} articles "
        f"({len(unseen)} unseen, {len(seen)} seen): {[a.id for a in selected]}"
    )
    return selected
