from __future__ import annotations

import pytest

from pipeline.image_queries import (
    STRATEGY_BUILDERS,
    generate_search_query,
    heuristic_image_score,
    passes_quality_gate,
    text_similarity,
)
from pipeline.images import ImageSourcingEngine, clean_query, final_score, parse_judgement
from pipeline.prompts import SLOT_PROFILES
from utils.exceptions import ConfigurationError, ImageSearchError

from conftest import FakeImageSearch, FakeLLM, fast_pipeline_settings, make_image


THUMBNAIL = SLOT_PROFILES[0]


def test_quality_gate() -> None:
    assert passes_quality_gate(make_image(1, width=400, height=300))
    assert not passes_quality_gate(make_image(1, width=399, height=300))
    assert not passes_quality_gate(make_image(1, width=800, height=299))
    assert not passes_quality_gate(make_image(1, format="bmp"))
    assert not passes_quality_gate(make_image(1, byte_size=20_000_001))
    assert passes_quality_gate(make_image(1, format="gif"))


def test_heuristic_image_score_components() -> None:
    query = "tesla electric car"
    assert heuristic_image_score(make_image(1), query) == 95
    assert heuristic_image_score(make_image(1, width=1600, height=1200), query) == 85
    assert heuristic_image_score(make_image(1, width=150, height=100), query) == 65
    assert heuristic_image_score(make_image(1, title="unrelated", format="gif"), query) == 60


def test_text_similarity_is_jaccard() -> None:
    assert text_similarity("a b", "b c") == pytest.approx(1 / 3)
    assert text_similarity("", "") == 0.0


def test_final_score_weights_judge_heavily() -> None:
    assert final_score(80, 88) == pytest.approx(87.2)


def test_parse_judgement_formats() -> None:
    assert parse_judgement("이미지 설명: 차량\n관련성 점수: 92\n추천 여부: YES") == (92.0, True)
    assert parse_judgement("점수: 40점\n추천 여부: NO") == (40.0, False)
    assert parse_judgement("75점 정도입니다. YES") == (75.0, True)
    assert parse_judgement("모르겠습니다") == (0.0, False)
    assert parse_judgement("관련성 점수: 150") == (100.0, False)


def test_clean_query_strips_lead_ins_and_quotes() -> None:
    assert clean_query('검색어: "전기차 충전소"\n설명은 생략') == "전기차 충전소"


def test_keyword_fallback_query_uses_three_terms() -> None:
    query = generate_search_query("현대차 전기차 판매 급증 소식", ["현대차", "실적"])
    assert query == "현대차 전기차 판매"
    assert len(STRATEGY_BUILDERS) == 8


@pytest.mark.asyncio
async def test_collect_gates_and_dedupes() -> None:
    results = [
        make_image(1),
        make_image(1, title="same link again"),
        make_image(2, width=300, height=200),
        make_image(3, format="bmp"),
        make_image(4, title="other"),
    ]
    search = FakeImageSearch(results)
    engine = ImageSourcingEngine(FakeLLM(configured=False), search, fast_pipeline_settings())

    collected = await engine.collect_candidates("tesla electric car", "테슬라 전기차", "", ["테슬라"], THUMBNAIL)

    assert [item.link for item in collected] == [
        "https://images.example.com/1.jpg",
        "https://images.example.com/4.jpg",
    ]
    assert collected[0].strategy_source == "large"
    assert collected[0].heuristic_score > collected[1].heuristic_score
    assert search.queries[0]["size"] == "large"
    assert search.queries[1]["size"] == "medium"


@pytest.mark.asyncio
async def test_search_errors_do_not_abort_collection() -> None:
    class FlakySearch(FakeImageSearch):
        async def search(self, query, **kwargs):
            self.queries.append({"query": query, **kwargs})
            if len(self.queries) == 1:
                raise ImageSearchError("quota", provider="fake", query=query)
            return [make_image(9)]

    engine = ImageSourcingEngine(None, FlakySearch(), fast_pipeline_settings(image_candidate_target=1))
    collected = await engine.collect_candidates("tesla electric car", "t", "", [], THUMBNAIL)

    assert [item.link for item in collected] == ["https://images.example.com/9.jpg"]
    assert collected[0].strategy_source == "medium"


@pytest.mark.asyncio
async def test_judging_stops_early_on_a_near_perfect_image() -> None:
    llm = FakeLLM(image_handler=lambda url: "관련성 점수: 96\n추천 여부: YES")
    settings = fast_pipeline_settings(early_exit_score=95, early_exit_min_judged=2)
    engine = ImageSourcingEngine(llm, FakeImageSearch(), settings)
    candidates = [make_image(idx).model_copy(update={"heuristic_score": 90 - idx}) for idx in range(5)]

    judged = await engine.judge_candidates(candidates, "제목", "내용", [], THUMBNAIL)

    assert len(llm.image_calls) == 2
    assert [item.judgement for item in judged] == ["judged", "judged", "unjudged", "unjudged", "unjudged"]
    assert judged[0].final_score == pytest.approx(0.1 * 90 + 0.9 * 96)
    assert judged[2].final_score == pytest.approx(88 * 0.5)


@pytest.mark.asyncio
async def test_failed_judgement_is_discounted_not_dropped() -> None:
    def image_handler(url):
        if url.endswith("/0.jpg"):
            return RuntimeError("vision model refused")
        return "관련성 점수: 60\n추천 여부: NO"

    engine = ImageSourcingEngine(FakeLLM(image_handler=image_handler), FakeImageSearch(), fast_pipeline_settings())
    candidates = [make_image(idx).model_copy(update={"heuristic_score": 80}) for idx in range(2)]

    judged = await engine.judge_candidates(candidates, "제목", "", [], THUMBNAIL)

    assert judged[0].judgement == "failed"
    assert judged[0].llm_relevance_score is None
    assert judged[0].final_score == pytest.approx(80 * 0.3)
    assert judged[1].judgement == "judged"
    assert judged[1].final_score == pytest.approx(8 + 54)


@pytest.mark.asyncio
async def test_unconfigured_llm_ranks_by_heuristic_only() -> None:
    llm = FakeLLM(configured=False)
    engine = ImageSourcingEngine(llm, FakeImageSearch(), fast_pipeline_settings())
    candidates = [make_image(idx).model_copy(update={"heuristic_score": 50 + idx}) for idx in range(3)]

    judged = await engine.judge_candidates(candidates, "제목", "", [], THUMBNAIL)

    assert llm.image_calls == []
    assert judged[0].link.endswith("/2.jpg")
    assert all(item.judgement == "unjudged" for item in judged)
    assert judged[0].final_score == pytest.approx(26)


@pytest.mark.asyncio
async def test_source_images_requires_configured_search() -> None:
    engine = ImageSourcingEngine(FakeLLM(), FakeImageSearch(configured=False), fast_pipeline_settings())
    with pytest.raises(ConfigurationError):
        await engine.source_images("제목", ["태그"])


@pytest.mark.asyncio
async def test_source_images_picks_best_judged_image_per_slot() -> None:
    def image_handler(url):
        score = 92 if url.endswith("/2.jpg") else 40
        return f"관련성 점수: {score}\n추천 여부: {'YES' if score > 50 else 'NO'}"

    llm = FakeLLM(lambda messages, kwargs: "검색어: 전기차 충전소", image_handler=image_handler)
    search = FakeImageSearch([make_image(1), make_image(2), make_image(3)])
    engine = ImageSourcingEngine(llm, search, fast_pipeline_settings(image_candidate_target=3))

    selected = await engine.source_images("테슬라 전기차 판매 급증", ["테슬라", "전기차"], slot_count=2, content="<p>본문</p>")

    assert [item.slot_index for item in selected] == [0, 1]
    assert [item.slot_type for item in selected] == ["thumbnail", "body1"]
    assert all(item.link.endswith("/2.jpg") for item in selected)
    assert all(item.recommended for item in selected)
    assert selected[0].search_query == "전기차 충전소"
    assert selected[0].candidates_considered == 3
    assert search.queries[0]["query"] == "전기차 충전소"
    assert len(llm.image_calls) == 6
