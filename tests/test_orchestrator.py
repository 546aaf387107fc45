from __future__ import annotations

import httpx
import pytest

from core import ArticleStatus, ProgressEventType
from orchestrator import CollectingSink
from pipeline.prompts import COMPOSE_SYSTEM_PROMPT

from conftest import (
    FakeAggregator,
    FakeCDN,
    FakeImageSearch,
    FakeLLM,
    make_candidate,
    make_image,
    pipeline_responder,
)


FULL_SEQUENCE = [
    ProgressEventType.START,
    ProgressEventType.RSS_SCAN,
    ProgressEventType.RSS_COMPLETE,
    ProgressEventType.PROCESSING,
    ProgressEventType.AI_GENERATING,
    ProgressEventType.AI_COMPLETE,
    ProgressEventType.ARTICLE_SAVED,
    ProgressEventType.COMPLETE,
]


def _failing_for(marker: str):
    def handler(messages, kwargs):
        if messages[0].content == COMPOSE_SYSTEM_PROMPT and marker in str(messages[-1].content):
            return RuntimeError("model overloaded")
        return pipeline_responder(messages, kwargs)

    return handler


@pytest.mark.asyncio
async def test_batch_run_creates_articles_and_tracks_cost(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(1), make_candidate(2)])

    result = await orch.run_batch()

    assert result.status == "completed"
    assert result.new_articles == 2
    assert result.created_count == 2
    assert result.errors == []
    assert orch.store.count() == 2

    article = result.created_articles[0]
    assert article.title == "전기차 시장 급성장"
    assert article.status == ArticleStatus.PUBLISHED
    assert article.quality_score == 100
    assert "IMG_" not in article.content
    assert article.source_url == "https://news.example.com/articles/1"
    assert article.cost_info["requests"] == 1
    assert article.cost_info["tokens_used"] == 150
    assert article.cost_info["images_uploaded"] == 0

    # one scoring batch plus one rewrite per candidate
    assert result.cost_info.total_requests == 3
    assert orch.cost_info()["total_requests"] == 3


@pytest.mark.asyncio
async def test_batch_run_honours_limit(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(idx) for idx in range(1, 4)])

    result = await orch.run_batch(limit=1)

    assert result.new_articles == 3
    assert result.created_count == 1


@pytest.mark.asyncio
async def test_failing_candidate_is_recorded_and_run_continues(build_orchestrator) -> None:
    doomed = make_candidate(1, title="실패할 운명의 전기차 시장 기사")
    orch = build_orchestrator([doomed, make_candidate(2)], llm=FakeLLM(_failing_for("실패할 운명")))

    session_id = orch.start_live(limit=2)
    session = orch.sessions.get(session_id)
    await session.task

    assert session.status == "completed"
    assert session.result["created_articles"] == 1
    assert len(session.result["error_details"]) == 1
    assert session.result["error_details"][0]["article_title"] == doomed.title
    assert "model overloaded" in session.result["error_details"][0]["error_message"]

    types = [event.type for event in session.events]
    error_at = types.index(ProgressEventType.ERROR)
    assert session.events[error_at].current_article == doomed.title
    assert types[error_at + 1] == ProgressEventType.PROCESSING
    assert types[-1] == ProgressEventType.COMPLETE


@pytest.mark.asyncio
async def test_live_run_emits_events_in_order(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(1)])

    session_id = orch.start_live()
    session = orch.sessions.get(session_id)
    await session.task

    assert [event.type for event in session.events] == FULL_SEQUENCE
    progress = [event.progress for event in session.events]
    assert progress == sorted(progress)
    assert progress[0] == 0 and progress[-1] == 100

    processing = session.events[3]
    assert processing.current_article == make_candidate(1).title
    assert processing.data == {"index": 1, "total": 1, "source": "연합뉴스"}
    assert session.events[2].data["ranked_articles"] == 1
    assert session.events[6].article["status"] == "published"
    assert session.events[-1].data["cancelled"] is False
    assert session.status == "completed"
    assert session.done.is_set()


@pytest.mark.asyncio
async def test_cancel_before_first_candidate(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(1), make_candidate(2)])

    session_id = orch.start_live()
    assert orch.cancel_session(session_id) is True
    session = orch.sessions.get(session_id)
    assert session.status == "cancel_requested"
    await session.task

    types = [event.type for event in session.events]
    assert ProgressEventType.PROCESSING not in types
    assert types[-1] == ProgressEventType.COMPLETE
    assert session.events[-1].data["cancelled"] is True
    assert session.status == "cancelled"
    assert orch.store.count() == 0


@pytest.mark.asyncio
async def test_cancel_during_generation_stops_before_saving(build_orchestrator) -> None:
    holder = {}

    def handler(messages, kwargs):
        if messages[0].content == COMPOSE_SYSTEM_PROMPT:
            holder["orch"].cancel_session(holder["session_id"])
        return pipeline_responder(messages, kwargs)

    orch = build_orchestrator([make_candidate(1), make_candidate(2)], llm=FakeLLM(handler))
    holder["orch"] = orch
    holder["session_id"] = orch.start_live()
    session = orch.sessions.get(holder["session_id"])
    await session.task

    types = [event.type for event in session.events]
    assert types[-3:] == [ProgressEventType.AI_GENERATING, ProgressEventType.AI_COMPLETE, ProgressEventType.COMPLETE]
    assert ProgressEventType.ARTICLE_SAVED not in types
    assert session.status == "cancelled"
    assert orch.store.count() == 0


@pytest.mark.asyncio
async def test_empty_candidate_set_fails_the_run(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(1, published_at=None)])

    result = await orch.run_batch()
    assert result.status == "failed"
    assert len(result.errors) == 1
    assert result.errors[0].article_title is None

    session_id = orch.start_live()
    session = orch.sessions.get(session_id)
    await session.task
    assert session.events[-1].type == ProgressEventType.ERROR
    assert ProgressEventType.COMPLETE not in [event.type for event in session.events]
    assert session.status == "failed"
    assert session.error == "no candidates available"


@pytest.mark.asyncio
async def test_feed_failure_fails_the_run(build_orchestrator) -> None:
    orch = build_orchestrator(aggregator=FakeAggregator(error=RuntimeError("feeds down")))

    result = await orch.run_batch()

    assert result.status == "failed"
    assert result.errors[0].error_message == "feeds down"


@pytest.mark.asyncio
async def test_scan_returns_ranked_shortlist(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(idx) for idx in range(1, 8)], top_n=3)

    ranked = await orch.scan()

    assert len(ranked) == 3
    assert all(item.score_source == "llm" for item in ranked)
    assert orch.store.count() == 0
    assert orch.cost_info()["total_requests"] == 2


@pytest.mark.asyncio
async def test_batch_run_can_report_progress_to_a_sink(build_orchestrator) -> None:
    orch = build_orchestrator([make_candidate(1)])
    sink = CollectingSink()

    await orch.run_batch(sink=sink)

    assert [event.type for event in sink.events] == FULL_SEQUENCE
    assert {event.session_id for event in sink.events} == {"batch"}


def _image_bytes() -> httpx.MockTransport:
    return httpx.MockTransport(
        lambda request: httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"})
    )


@pytest.mark.asyncio
async def test_selected_images_are_uploaded_into_the_saved_article(build_orchestrator) -> None:
    cdn = FakeCDN()
    orch = build_orchestrator(
        [make_candidate(1)],
        image_search=FakeImageSearch([make_image(idx) for idx in range(1, 4)]),
        cdn=cdn,
        download_transport=_image_bytes(),
    )

    result = await orch.run_batch()

    assert result.errors == []
    article = result.created_articles[0]
    assert "IMG_" not in article.content
    assert article.content.count("https://cdn.test/") == 4
    assert [image.slot_index for image in article.images] == [0, 1, 2, 3]
    assert article.cost_info["images_selected"] == 4
    assert article.cost_info["images_uploaded"] == 4
    assert len(cdn.uploads) == 4
    assert all(upload["bytes"] == b"jpeg-bytes" for upload in cdn.uploads)


@pytest.mark.asyncio
async def test_malformed_image_link_does_not_drop_the_article(build_orchestrator) -> None:
    cdn = FakeCDN()
    orch = build_orchestrator(
        [make_candidate(1)],
        image_search=FakeImageSearch([make_image(1, link="https://images.example.com/a\x7f.jpg")]),
        cdn=cdn,
        download_transport=_image_bytes(),
    )

    result = await orch.run_batch()

    assert result.errors == []
    assert result.created_count == 1
    article = result.created_articles[0]
    assert "IMG_" not in article.content
    assert article.images == []
    assert article.cost_info["images_uploaded"] == 0
    assert cdn.uploads == []


@pytest.mark.asyncio
async def test_aclose_stops_live_runs_and_releases_clients(build_orchestrator) -> None:
    llm = FakeLLM(pipeline_responder)
    search = FakeImageSearch()
    orch = build_orchestrator([make_candidate(1)], llm=llm, image_search=search)
    orch.start_live()
    task = next(iter(orch._tasks))

    await orch.aclose()

    assert task.cancelled()
    assert llm.closed is True
    assert search.closed is True
    assert orch.store.count() == 0
