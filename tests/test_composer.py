from __future__ import annotations

import json
import random

import httpx
import pytest

from pipeline import composer as composer_module
from pipeline.composer import (
    DEFAULT_SLUG,
    DEFAULT_TAGS,
    EXTRACTION_EMPTY,
    EXTRACTION_FAILED,
    GENERATION_FAILED,
    ArticleComposer,
    article_category,
    build_structured_data,
    categorize,
    extract_main_text,
    parse_article_response,
    slugify,
)
from pipeline.prompts import CATEGORY_AUTOMOTIVE, CATEGORY_ECONOMY, CATEGORY_GENERAL, COMPOSE_SYSTEM_PROMPT
from sources import feeds
from utils.exceptions import LLMError

from conftest import SOURCE_PAGE, FakeLLM, article_json, fast_pipeline_settings, make_candidate


def test_parse_json_response_normalizes_fields() -> None:
    raw = json.dumps(
        {
            "title": "<h1>금리 인하 기대감에 증시 반등</h1>",
            "content": '<img src="IMG_THUMBNAIL"><p>본문</p><img src="IMG_THUMBNAIL">',
            "tags": "#금리, #증시",
            "slug": "Rate Cut  Rally!",
            "structuredData": {"@type": "NewsArticle"},
        },
        ensure_ascii=False,
    )
    draft = parse_article_response(f"```json\n{raw}\n```", make_candidate(1), CATEGORY_ECONOMY)

    assert draft.title == "금리 인하 기대감에 증시 반등"
    assert draft.body_html.count("IMG_THUMBNAIL") == 1
    assert draft.tags == ["금리", "증시"]
    assert draft.slug == "rate-cut-rally"
    assert draft.category == CATEGORY_ECONOMY
    assert json.loads(draft.structured_data) == {"@type": "NewsArticle"}


def test_parse_empty_json_falls_back_to_defaults() -> None:
    candidate = make_candidate(1)
    draft = parse_article_response("{}", candidate, CATEGORY_GENERAL)

    assert draft.title == candidate.title
    assert draft.body_html == GENERATION_FAILED
    assert draft.tags == DEFAULT_TAGS
    assert draft.slug == DEFAULT_SLUG
    assert draft.structured_data == "{}"


def test_parse_legacy_line_format() -> None:
    raw = "제목: 테슬라 신차 공개\n본문:\n첫 문단입니다.\n\n둘째 문단입니다.\n태그: #테슬라 #전기차"
    draft = parse_article_response(raw, make_candidate(1), CATEGORY_AUTOMOTIVE)

    assert draft.title == "테슬라 신차 공개"
    assert draft.body_html == "첫 문단입니다.\n\n둘째 문단입니다."
    assert draft.tags == ["테슬라", "전기차"]
    assert draft.category == CATEGORY_AUTOMOTIVE


def test_parse_garbage_still_returns_complete_draft() -> None:
    candidate = make_candidate(1)
    draft = parse_article_response("모델이 형식을 지키지 않았습니다", candidate)

    assert draft.title == candidate.title
    assert draft.body_html == GENERATION_FAILED
    assert draft.tags == DEFAULT_TAGS


def test_categorize_counts_keywords() -> None:
    assert categorize("코스피 금리 인상 소식", "") == CATEGORY_ECONOMY
    assert categorize("테슬라 전기차 신차 출시", "") == CATEGORY_AUTOMOTIVE
    assert categorize("오늘의 날씨", "") == CATEGORY_GENERAL
    assert categorize("오늘의 날씨", "", "사회") == CATEGORY_GENERAL


def test_tied_counts_fall_back_to_mapped_feed_category() -> None:
    assert categorize("오늘의 소식 정리", "", "economy") == CATEGORY_ECONOMY
    assert categorize("오늘의 소식 정리", "", "automotive") == CATEGORY_AUTOMOTIVE
    assert categorize("오늘의 소식 정리", "", "general") == CATEGORY_GENERAL
    assert categorize("오늘의 소식 정리", "", CATEGORY_AUTOMOTIVE) == CATEGORY_AUTOMOTIVE
    assert article_category(None) == CATEGORY_GENERAL
    assert parse_article_response("{}", make_candidate(1, category="economy")).category == CATEGORY_ECONOMY


def test_slugify() -> None:
    assert slugify("Hyundai EV9 -- Launch") == "hyundai-ev9-launch"
    assert slugify("한글만") == DEFAULT_SLUG


def test_structured_data_uses_placeholder_images() -> None:
    data = build_structured_data("원제목", "설명" * 200, CATEGORY_GENERAL)

    assert data["@type"] == "NewsArticle"
    assert data["image"] == ["IMG_THUMBNAIL", "IMG_URL_1", "IMG_URL_2"]
    assert data["mainEntityOfPage"]["@id"].endswith("/articles/ARTICLE_SLUG")
    assert len(data["description"]) == 200


def test_extract_main_text_skips_selectors_with_too_little_text() -> None:
    html = (
        "<html><body><article>" + "짧은 글 " * 10 + "</article>"
        "<div class='post-content'>" + "기사 본문 문장입니다. " * 30 + "</div></body></html>"
    )
    text = extract_main_text(html)
    assert text.startswith("기사 본문 문장입니다.")
    assert len(text) > 200
    assert extract_main_text("<html><body><p>tiny</p></body></html>") == ""


@pytest.mark.asyncio
async def test_extract_source_text_sentinels(monkeypatch) -> None:
    pages = {"https://ok.test/a": SOURCE_PAGE, "https://ok.test/empty": "<html><body>nothing</body></html>"}

    async def _fake_get_text(url: str, *, headers=None, timeout: float = 12.0) -> str:
        if url in pages:
            return pages[url]
        raise httpx.ConnectTimeout("timed out")

    monkeypatch.setattr(feeds, "_http_get_text", _fake_get_text)
    composer = ArticleComposer(FakeLLM(), fast_pipeline_settings())

    assert (await composer.extract_source_text("https://ok.test/a")).startswith("전기차 시장이")
    assert await composer.extract_source_text("https://ok.test/empty") == EXTRACTION_EMPTY
    assert await composer.extract_source_text("https://down.test/") == EXTRACTION_FAILED


def test_emotional_keywords_come_from_category_pool() -> None:
    composer = ArticleComposer(FakeLLM(), fast_pipeline_settings(), rng=random.Random(7))
    picked = composer.sample_emotional_keywords(CATEGORY_ECONOMY)

    assert len(picked) == 3
    assert set(picked) <= set(composer_module.EMOTIONAL_KEYWORDS[CATEGORY_ECONOMY])


@pytest.mark.asyncio
async def test_compose_requests_json_and_parses_reply(source_pages) -> None:
    llm = FakeLLM(lambda messages, kwargs: article_json("전기차 판매 급증"))
    composer = ArticleComposer(llm, fast_pipeline_settings())

    draft = await composer.compose(make_candidate(1))

    assert draft.title == "전기차 판매 급증"
    assert draft.slug == "ev-market-growth"
    assert source_pages == ["https://news.example.com/articles/1"]
    call = llm.calls[0]
    assert call["messages"][0].content == COMPOSE_SYSTEM_PROMPT
    assert call["kwargs"]["response_format"] == {"type": "json_object"}
    assert "IMG_THUMBNAIL" in call["messages"][1].content


@pytest.mark.asyncio
async def test_compose_wraps_llm_failures(source_pages) -> None:
    composer = ArticleComposer(FakeLLM(lambda messages, kwargs: RuntimeError("503")), fast_pipeline_settings())

    with pytest.raises(LLMError) as excinfo:
        await composer.compose(make_candidate(1))
    assert "503" in str(excinfo.value)
