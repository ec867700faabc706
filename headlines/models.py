"""Typed data models for the headlines digest."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import NotRequired, Optional, TypedDict


class ArticleDict(TypedDict):
    """Serialized Article payload for catalogs and API responses."""

    id: int
    title: str
    body: str
    topicTags: list[str]
    region: str
    link: NotRequired[str]


class PreferencesDict(TypedDict, total=False):
    """Stored payload under ``prefs:<sid>``."""

    topics: list[str]
    region: str


class SeenHistoryDict(TypedDict):
    """Stored payload under ``seen:<sid>``."""

    ids: list[int]
    updated_at: str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_labels(values: object) -> tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        return ()
    labels: list[str] = []
    keys: set[str] = set()
    for value in values:
        if not isinstance(value, str) or not value.strip():
            continue
        label = value.strip()
        # Case variants collapse onto the first spelling
        if label.casefold() not in keys:
            keys.add(label.casefold())
            labels.append(label)
    return tuple(labels)


def _clean_region(value: object) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class Article:
    """A candidate news article.

    ``content`` always holds the full text; ``summary`` is only set once the
    digest has been summarized, so it is never ambiguous which stage ran.
    """

    id: int
    title: str
    content: str
    topic_tags: tuple[str, ...] = ()
    region: str = ""
    link: Optional[str] = None
    summary: Optional[str] = None

    @classmethod
    def from_dict(cls, d: ArticleDict) -> Article:
        """Create Article from a catalog record."""
        link = d.get("link")
        tags = d.get("topicTags", [])
        if not isinstance(tags, list):
            raise TypeError(f"topicTags must be a list, got {type(tags).__name__}")
        return cls(
            id=int(d["id"]),
            title=str(d["title"]),
            content=str(d.get("body", "")),
            topic_tags=tuple(str(t) for t in tags),
            region=str(d.get("region", "")),
            link=str(link) if link else None,
        )

    @property
    def body(self) -> str:
        return self.summary if self.summary is not None else self.content

    def with_summary(self, summary: str) -> Article:
        return replace(self, summary=summary)

    def to_dict(self) -> ArticleDict:
        """Serialize to the response shape; ``body`` carries the summary when present."""
        data: ArticleDict = {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "topicTags": list(self.topic_tags),
            "region": self.region,
        }
        if self.link:
            data["link"] = self.link
        return data


@dataclass(frozen=True)
class Preferences:
    """Per-session topic/region preferences."""

    topics: tuple[str, ...] = ()
    region: Optional[str] = None

    @classmethod
    def from_dict(cls, d: object) -> Preferences:
        if not isinstance(d, dict):
            return cls()
        return cls(topics=_clean_labels(d.get("topics")), region=_clean_region(d.get("region")))

    def is_empty(self) -> bool:
        return not self.topics and not self.region

    def to_dict(self) -> PreferencesDict:
        data: PreferencesDict = {}
        if self.topics:
            data["topics"] = list(self.topics)
        if self.region:
            data["region"] = self.region
        return data


@dataclass(frozen=True)
class PreferenceHint(Preferences):
    """Best-effort preferences inferred from a single message."""


@dataclass(frozen=True)
class SeenHistory:
    """Ids of the articles a session has already received, oldest first."""

    ids: tuple[int, ...] = ()
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_dict(cls, d: object) -> SeenHistory:
        if not isinstance(d, dict):
            return cls()
        raw_ids = d.get("ids")
        ids: list[int] = []
        seen: set[int] = set()
        if isinstance(raw_ids, list):
            for raw in raw_ids:
                if isinstance(raw, bool) or not isinstance(raw, int) or raw in seen:
                    continue
                seen.add(raw)
                ids.append(raw)
        updated_at = utc_now()
        raw_ts = d.get("updated_at")
        if isinstance(raw_ts, str):
            try:
                updated_at = datetime.fromisoformat(raw_ts.replace("Z", "+00:00"))
            except ValueError:
                pass
        return cls(ids=tuple(ids), updated_at=updated_at)

    def to_dict(self) -> SeenHistoryDict:
        return {"ids": list(self.ids), "updated_at": self.updated_at.isoformat()}


@dataclass
class DigestResult:
    """Outcome of one digest request."""

    articles: list[Article]
    new_articles_seen: int
    total_articles_processed: int
    preferences_updated: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "articles": [a.to_dict() for a in self.articles],
            "newArticlesSeen": self.new_articles_seen,
            "totalArticlesProcessed": self.total_articles_processed,
            "preferencesUpdated": self.preferences_updated,
        }
