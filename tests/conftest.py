import asyncio
import os

import pytest

from headlines.kv import MemoryKV
from headlines.models import Article, PreferenceHint


class StubTagger:
    """Returns a fixed hint and records every call."""

    def __init__(self, hint=None, error=None, delay=0.0):
        self.hint = hint if hint is not None else PreferenceHint()
        self.error = error
        self.delay = delay
        self.calls = []

    async def infer(self, prefs, message):
        self.calls.append((prefs, message))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.hint


class StubSummarizer:
    """Summaries are ``"<message>: <title>"``; ids in ``fail_ids`` raise."""

    def __init__(self, fail_ids=(), delays=None):
        self.fail_ids = set(fail_ids)
        self.delays = delays or {}
        self.calls = []

    async def summarize(self, message, article):
        self.calls.append(article.id)
        delay = self.delays.get(article.id, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if article.id in self.fail_ids:
            raise RuntimeError(f"boom {article.id}")
        return f"{message}: {article.title}"


class FailingKV:
    """KV store whose reads and/or writes always fail."""

    def __init__(self, fail_get=True, fail_put=True):
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.inner = MemoryKV()

    async def get(self, key):
        if self.fail_get:
            raise ConnectionError("kv read down")
        return await self.inner.get(key)

    async def put(self, key, value):
        if self.fail_put:
            raise ConnectionError("kv write down")
        await self.inner.put(key, value)


def make_article(article_id, topics=("general",), region="Europe", title=None):
    return Article(
        id=article_id,
        title=title or f"Article {article_id}",
        content=f"Body of article {article_id}",
        topic_tags=tuple(topics),
        region=region,
    )


@pytest.fixture(autouse=True, scope="session")
def no_groq_key():
    """Tests never talk to the real Groq API unless they set a key themselves."""
    saved = os.environ.pop("GROQ_API_KEY", None)
    yield
    if saved is not None:
        os.environ["GROQ_API_KEY"] = saved


@pytest.fixture
def article_factory():
    return make_article


@pytest.fixture
def ten_articles():
    return [make_article(i) for i in range(1, 11)]


@pytest.fixture
def kv():
    return MemoryKV()


@pytest.fixture
def stub_tagger():
    return StubTagger


@pytest.fixture
def stub_summarizer():
    return StubSummarizer


@pytest.fixture
def failing_kv():
    return FailingKV
