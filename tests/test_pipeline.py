import pytest

from headlines.config import Settings
from headlines.kv import FileKV, MemoryKV
from headlines.models import PreferenceHint, Preferences
from headlines.pipeline import DigestPipeline, EmptyMessageError, effective_preferences
from headlines.storage import PreferenceStore, SeenHistoryStore
from headlines.summarizer import fallback_summary


class RecordingSeenStore(SeenHistoryStore):
    def __init__(self, kv):
        super().__init__(kv)
        self.appended = []

    async def append(self, session_id, ids):
        ids = list(ids)
        self.appended.append(ids)
        return await super().append(session_id, ids)


def build(kv, candidates, tagger, summarizer, **kwargs):
    seen = RecordingSeenStore(kv)
    pipeline = DigestPipeline(
        candidates=candidates,
        preferences=PreferenceStore(kv),
        seen=seen,
        tagger=tagger,
        summarizer=summarizer,
        **kwargs,
    )
    return pipeline, seen


def test_effective_preferences_hint_wins_per_field():
    stored = Preferences(topics=("finance",), region="Europe")
    assert effective_preferences(stored, PreferenceHint(topics=("sport",))) == Preferences(
        topics=("sport",), region="Europe"
    )
    assert effective_preferences(stored, PreferenceHint(region="Asia")) == Preferences(
        topics=("finance",), region="Asia"
    )
    assert effective_preferences(stored, PreferenceHint()) == stored


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
async def test_empty_message_rejected_before_any_stage(
    kv, ten_articles, stub_tagger, stub_summarizer, message
):
    tagger = stub_tagger()
    summarizer = stub_summarizer()
    pipeline, seen = build(kv, ten_articles, tagger, summarizer)

    with pytest.raises(EmptyMessageError):
        await pipeline.run("s1", message)

    assert tagger.calls == []
    assert summarizer.calls == []
    assert seen.appended == []
    assert kv.keys() == []


@pytest.mark.asyncio
async def test_first_and_second_request(kv, article_factory, stub_tagger, stub_summarizer):
    """First request marks [1, 2, 3]; the next one shows 4, 5 first and only appends them."""
    candidates = [article_factory(i) for i in range(1, 6)]
    pipeline, seen = build(
        kv, candidates, stub_tagger(), stub_summarizer(), limit=3
    )

    first = await pipeline.run("s1", "news please")
    assert [a.id for a in first.articles] == [1, 2, 3]
    assert seen.appended == [[1, 2, 3]]
    assert first.new_articles_seen == 3
    assert (await seen.get("s1")).ids == (1, 2, 3)

    pipeline.limit = 5
    second = await pipeline.run("s1", "more news")
    assert [a.id for a in second.articles] == [4, 5, 1, 2, 3]
    assert seen.appended[-1] == [4, 5]
    assert second.new_articles_seen == 2
    assert (await seen.get("s1")).ids == (1, 2, 3, 4, 5)


@pytest.mark.asyncio
async def test_nothing_new_skips_seen_write(kv, article_factory, stub_tagger, stub_summarizer):
    candidates = [article_factory(i) for i in range(1, 3)]
    pipeline, seen = build(kv, candidates, stub_tagger(), stub_summarizer())

    await pipeline.run("s1", "hello")
    result = await pipeline.run("s1", "hello again")

    assert result.new_articles_seen == 0
    assert seen.appended == [[1, 2]]


@pytest.mark.asyncio
async def test_hint_filters_and_is_persisted(kv, article_factory, stub_tagger, stub_summarizer):
    candidates = [
        article_factory(1, topics=["politics"], region="Europe"),
        article_factory(2, topics=["sport"], region="Europe"),
        article_factory(3, topics=["sport"], region="North America"),
    ]
    tagger = stub_tagger(PreferenceHint(topics=("Sport",), region="europe"))
    pipeline, _ = build(kv, candidates, tagger, stub_summarizer())

    result = await pipeline.run("s1", "european football")

    assert [a.id for a in result.articles] == [2]
    assert result.preferences_updated is True
    assert result.total_articles_processed == 3
    assert await PreferenceStore(kv).get("s1") == Preferences(
        topics=("Sport",), region="europe"
    )


@pytest.mark.asyncio
async def test_failed_preference_write_not_reported_as_update(
    failing_kv, article_factory, stub_tagger, stub_summarizer
):
    store = failing_kv(fail_get=False, fail_put=True)
    candidates = [article_factory(1, topics=["sport"]), article_factory(2, topics=["politics"])]
    tagger = stub_tagger(PreferenceHint(topics=("sport",)))
    pipeline, _ = build(store, candidates, tagger, stub_summarizer())

    result = await pipeline.run("s1", "sport")

    assert [a.id for a in result.articles] == [1]
    assert result.preferences_updated is False


@pytest.mark.asyncio
async def test_stored_preferences_used_when_hint_empty(
    kv, article_factory, stub_tagger, stub_summarizer
):
    await PreferenceStore(kv).put("s1", Preferences(topics=("politics",)))
    candidates = [
        article_factory(1, topics=["sport"]),
        article_factory(2, topics=["politics"]),
    ]
    tagger = stub_tagger()
    pipeline, _ = build(kv, candidates, tagger, stub_summarizer())

    result = await pipeline.run("s1", "anything")

    assert [a.id for a in result.articles] == [2]
    assert result.preferences_updated is False
    assert tagger.calls == [(Preferences(topics=("politics",)), "anything")]


@pytest.mark.asyncio
async def test_effective_preferences_not_persisted_whole(
    kv, article_factory, stub_tagger, stub_summarizer
):
    """Stored topics are replaced for selection but unioned in the store."""
    await PreferenceStore(kv).put("s1", Preferences(topics=("politics",)))
    candidates = [
        article_factory(1, topics=["politics"]),
        article_factory(2, topics=["sport"]),
    ]
    pipeline, _ = build(
        kv, candidates, stub_tagger(PreferenceHint(topics=("sport",))), stub_summarizer()
    )

    result = await pipeline.run("s1", "sport only")

    assert [a.id for a in result.articles] == [2]
    stored = await PreferenceStore(kv).get("s1")
    assert stored.topics == ("politics", "sport")


@pytest.mark.asyncio
async def test_unmatched_preferences_fall_back(kv, article_factory, stub_tagger, stub_summarizer):
    candidates = [article_factory(i, topics=["finance"]) for i in range(1, 4)]
    tagger = stub_tagger(PreferenceHint(topics=("sport",)))
    pipeline, _ = build(kv, candidates, tagger, stub_summarizer())

    result = await pipeline.run("s1", "sport")
    assert [a.id for a in result.articles] == [1, 2, 3]


@pytest.mark.asyncio
async def test_tagger_failure_degrades_to_empty_hint(
    kv, ten_articles, stub_tagger, stub_summarizer
):
    tagger = stub_tagger(error=RuntimeError("llm down"))
    pipeline, _ = build(kv, ten_articles, tagger, stub_summarizer())

    result = await pipeline.run("s1", "news")

    assert [a.id for a in result.articles] == [1, 2, 3, 4, 5]
    assert result.preferences_updated is False
    assert await kv.get("prefs:s1") is None


@pytest.mark.asyncio
async def test_slow_tagger_times_out(kv, ten_articles, stub_tagger, stub_summarizer):
    tagger = stub_tagger(PreferenceHint(topics=("nothing",)), delay=5.0)
    pipeline, _ = build(
        kv, ten_articles, tagger, stub_summarizer(), inference_timeout=0.01
    )

    result = await pipeline.run("s1", "news")
    assert result.preferences_updated is False
    assert len(result.articles) == 5


@pytest.mark.asyncio
async def test_summaries_replace_body_with_per_item_fallback(
    kv, article_factory, stub_tagger, stub_summarizer
):
    candidates = [article_factory(i, topics=["sport", "politics"]) for i in range(1, 4)]
    pipeline, _ = build(kv, candidates, stub_tagger(), stub_summarizer(fail_ids={2}))

    result = await pipeline.run("s1", "  what's new  ")
    bodies = [a.body for a in result.articles]

    assert bodies[0] == "what's new: Article 1"
    assert bodies[1] == fallback_summary(candidates[1])
    assert bodies[1] == "Summary: Article 2 - A sport, politics story from Europe."
    assert bodies[2] == "what's new: Article 3"
    assert [a.content for a in result.articles] == [a.content for a in candidates]


@pytest.mark.asyncio
async def test_store_outage_still_returns_digest(
    failing_kv, ten_articles, stub_tagger, stub_summarizer
):
    kv = failing_kv()
    tagger = stub_tagger(PreferenceHint(topics=("general",)))
    pipeline, _ = build(kv, ten_articles, tagger, stub_summarizer())

    result = await pipeline.run("s1", "news")

    assert [a.id for a in result.articles] == [1, 2, 3, 4, 5]
    assert result.new_articles_seen == 5


@pytest.mark.asyncio
async def test_explicit_candidates_override(kv, article_factory, stub_tagger, stub_summarizer):
    pipeline, _ = build(kv, [article_factory(1)], stub_tagger(), stub_summarizer())
    others = [article_factory(i) for i in (7, 8)]

    result = await pipeline.run("s1", "news", candidates=others)
    assert [a.id for a in result.articles] == [7, 8]
    assert result.total_articles_processed == 2


@pytest.mark.asyncio
async def test_unexpected_failure_propagates(kv, ten_articles, stub_tagger, stub_summarizer):
    class BrokenSeenStore(SeenHistoryStore):
        async def get(self, session_id):
            raise AssertionError("bug")

    pipeline = DigestPipeline(
        candidates=ten_articles,
        preferences=PreferenceStore(kv),
        seen=BrokenSeenStore(kv),
        tagger=stub_tagger(),
        summarizer=stub_summarizer(),
    )
    with pytest.raises(AssertionError):
        await pipeline.run("s1", "news")


@pytest.mark.asyncio
async def test_from_settings_shares_one_llm_client(tmp_path):
    pipeline = DigestPipeline.from_settings(Settings(store_dir=str(tmp_path), tagger="llm"))

    assert pipeline.llm is not None
    assert pipeline.tagger.client is pipeline.llm
    assert pipeline.summarizer.client is pipeline.llm
    assert isinstance(pipeline.preferences.kv, FileKV)
    await pipeline.close()


def test_from_settings_keyword_tagger_in_memory():
    pipeline = DigestPipeline.from_settings(Settings(tagger="keyword", digest_limit=3))

    assert pipeline.summarizer.client is pipeline.llm
    assert isinstance(pipeline.seen.kv, MemoryKV)
    assert pipeline.limit == 3
    assert len(pipeline.candidates) >= 10
