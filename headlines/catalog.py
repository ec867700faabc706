"""Candidate article catalog."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from headlines.models import Article

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "articles.json"


class CatalogError(ValueError):
    """Raised when a catalog file cannot be turned into articles."""


class ArticleCatalog:
    """Immutable, id-unique list of candidate articles."""

    def __init__(self, articles: Iterable[Article]) -> None:
        unique: list[Article] = []
        ids: set[int] = set()
        for article in articles:
            if article.id in ids:
                logger.warning(f"Dropping duplicate catalog article id {article.id}")
                continue
            ids.add(article.id)
            unique.append(article)
        self._articles = tuple(unique)

    @classmethod
    def from_records(cls, records: object) -> ArticleCatalog:
        if not isinstance(records, list):
            raise CatalogError("Catalog must be a JSON array of articles")
        articles = []
        for i, record in enumerate(records):
            try:
                articles.append(Article.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise CatalogError(f"Invalid article at index {i}: {e!r}") from e
        return cls(articles)

    @classmethod
    def from_file(cls, path: Path | str = DEFAULT_CATALOG_PATH) -> ArticleCatalog:
        path = Path(path)
        try:
            records = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot load catalog {path}: {e}") from e
        catalog = cls.from_records(records)
        logger.info(f"Loaded {len(catalog)} articles from {path}")
        return catalog

    @property
    def articles(self) -> Sequence[Article]:
        return self._articles

    def __len__(self) -> int:
        return len(self._articles)

    def topics(self) -> list[str]:
        """Distinct topic tags, first spelling wins."""
        return _distinct(tag for a in self._articles for tag in a.topic_tags)

    def regions(self) -> list[str]:
        return _distinct(a.region for a in self._articles)


def _distinct(labels: Iterable[str]) -> list[str]:
    result: list[str] = []
    keys: set[str] = set()
    for label in labels:
        key = label.casefold()
        if label and key not in keys:
            keys.add(key)
            result.append(label)
    return result
