"""Candidate filtering, LLM/heuristic quality scoring, and composite ranking."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from config import PipelineSettings, get_pipeline_settings
from core import ComponentScores, ExpectedEngagement, RawCandidate, ScoredCandidate
from intelligence.llm import BaseLLM, Message

from .prompts import SCORING_ITEM, SCORING_RUBRIC, SCORING_SYSTEM_PROMPT


logger = logging.getLogger(__name__)

EXCLUSION_KEYWORDS = ["광고", "프로모션", "이벤트", "AD", "스폰서", "협찬"]

ECONOMY_SCORE_KEYWORDS = ["주식", "증시", "코스피", "금리", "투자", "부동산", "비트코인", "환율", "경제", "금융", "기업", "실적"]
AUTOMOTIVE_SCORE_KEYWORDS = ["현대", "기아", "테슬라", "전기차", "자율주행", "신차", "bmw", "벤츠", "자동차", "모빌리티"]

MIN_TITLE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 20

_COMPONENT_FIELDS = {
    "news_value": ("newsValue", 30),
    "popularity": ("popularity", 25),
    "title_quality": ("titleQuality", 20),
    "content_quality": ("contentQuality", 15),
    "urgency": ("urgency", 10),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, float(value)))


def _age_hours(published_at: Optional[datetime], now: datetime) -> Optional[float]:
    if published_at is None:
        return None
    return (now - published_at).total_seconds() / 3600.0


def freshness_score(published_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Step function of item age in hours."""
    age = _age_hours(published_at, now or _utcnow())
    if age is None:
        return 20.0
    for limit, score in ((1, 100.0), (3, 90.0), (6, 80.0), (12, 70.0), (24, 60.0), (48, 40.0)):
        if age <= limit:
            return score
    return 20.0


def heuristic_score(candidate: RawCandidate, now: Optional[datetime] = None) -> float:
    now = now or _utcnow()
    text = f"{candidate.title} {candidate.description}".lower()

    score = 50.0
    score += 5 * sum(1 for keyword in ECONOMY_SCORE_KEYWORDS if keyword in text)
    score += 5 * sum(1 for keyword in AUTOMOTIVE_SCORE_KEYWORDS if keyword in text)

    age = _age_hours(candidate.published_at, now)
    if age is not None and age < 6:
        score += 10
    if 15 <= len(candidate.title) <= 50:
        score += 5
    return _clamp(score)


def format_age(published_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    if published_at is None:
        return "알 수 없음"
    seconds = max(0, int(((now or _utcnow()) - published_at).total_seconds()))
    hours, minutes = seconds // 3600, (seconds % 3600) // 60
    if hours == 0:
        return f"{minutes}분 전"
    if hours < 24:
        return f"{hours}시간 전"
    return f"{hours // 24}일 전"


def passes_filter(candidate: RawCandidate, now: Optional[datetime] = None, max_age_hours: int = 48) -> bool:
    """Hard gate applied before any scoring."""
    now = now or _utcnow()
    if len(candidate.title) < MIN_TITLE_LENGTH:
        return False
    if not candidate.link.startswith("http"):
        return False
    if len(candidate.description) < MIN_DESCRIPTION_LENGTH:
        return False
    # undated items cannot prove they are fresh
    if candidate.published_at is None or candidate.published_at < now - timedelta(hours=max_age_hours):
        return False
    title = candidate.title.lower()
    if any(keyword.lower() in title for keyword in EXCLUSION_KEYWORDS):
        return False
    return True


def parse_analysis_payload(text: str) -> List[Dict[str, Any]]:
    """Pull the ``analyses`` list out of a judge response; [] when unusable."""
    match = re.search(r"\{[\s\S]*\}", str(text or ""))
    if not match:
        return []
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    analyses = payload.get("analyses") if isinstance(payload, dict) else None
    if not isinstance(analyses, list):
        return []
    return [item for item in analyses if isinstance(item, dict)]


def _raw_fields(candidate: RawCandidate) -> Dict[str, Any]:
    return candidate.model_dump(include=set(RawCandidate.model_fields))


def _engagement(value: Any) -> ExpectedEngagement:
    try:
        return ExpectedEngagement(str(value or "").strip().lower())
    except ValueError:
        return ExpectedEngagement.MEDIUM


def _component_scores(analysis: Dict[str, Any]) -> ComponentScores:
    values: Dict[str, float] = {}
    for field_name, (key, maximum) in _COMPONENT_FIELDS.items():
        raw = analysis.get(key)
        try:
            values[field_name] = _clamp(float(raw), 0, maximum)
        except (TypeError, ValueError):
            continue
    return ComponentScores(**values)


class CandidateRanker:
    """
    Filter -> score -> rank.

    Scoring goes through the LLM judge in fixed-size batches. Judge output is
    matched to inputs by position within the batch; a batch that raises is
    scored with :func:`heuristic_score` as a whole.
    """

    def __init__(self, llm: Optional[BaseLLM] = None, settings: Optional[PipelineSettings] = None):
        self.llm = llm
        self.settings = settings or get_pipeline_settings()

    def filter(self, candidates: Sequence[RawCandidate], now: Optional[datetime] = None) -> List[RawCandidate]:
        now = now or _utcnow()
        kept = [item for item in candidates if passes_filter(item, now, self.settings.max_age_hours)]
        logger.info("Filter kept %d of %d candidates", len(kept), len(candidates))
        return kept

    def _heuristic(self, candidate: RawCandidate, now: datetime, reason: str) -> ScoredCandidate:
        return ScoredCandidate(
            **_raw_fields(candidate),
            quality_score=heuristic_score(candidate, now),
            score_source="heuristic",
            score_rationale=f"heuristic: {reason}",
            freshness_score=freshness_score(candidate.published_at, now),
        )

    async def score(self, candidates: Sequence[RawCandidate], now: Optional[datetime] = None) -> List[ScoredCandidate]:
        now = now or _utcnow()
        if self.llm is None or not self.llm.is_configured():
            logger.warning("LLM not configured; scoring %d candidates heuristically", len(candidates))
            return [self._heuristic(item, now, "llm unavailable") for item in candidates]

        size = max(1, self.settings.scoring_batch_size)
        scored: List[ScoredCandidate] = []
        for start in range(0, len(candidates), size):
            batch = list(candidates[start:start + size])
            try:
                scored.extend(await self._score_batch(batch, now))
            except Exception as exc:
                logger.warning("Scoring batch %d-%d failed, using heuristic: %s", start + 1, start + len(batch), exc)
                scored.extend(self._heuristic(item, now, f"batch failed ({exc})") for item in batch)

            if start + size < len(candidates) and self.settings.scoring_batch_delay > 0:
                await asyncio.sleep(self.settings.scoring_batch_delay)
        return scored

    async def _score_batch(self, batch: List[RawCandidate], now: datetime) -> List[ScoredCandidate]:
        items = "\n\n".join(
            SCORING_ITEM.format(
                index=idx + 1,
                title=item.title,
                summary=item.description[:200],
                source=item.source_name,
                age=format_age(item.published_at, now),
            )
            for idx, item in enumerate(batch)
        )
        response = await self.llm.acomplete(
            [Message.system(SCORING_SYSTEM_PROMPT), Message.user(SCORING_RUBRIC.format(items=items))],
            temperature=0.1,
            max_tokens=2000,
        )
        analyses = parse_analysis_payload(response.content)
        if not analyses:
            logger.warning("Scoring response had no usable analyses; batch falls back to heuristic")

        results: List[ScoredCandidate] = []
        for position, item in enumerate(batch):
            analysis = analyses[position] if position < len(analyses) else None
            results.append(self._from_analysis(item, analysis, now))
        return results

    def _from_analysis(self, candidate: RawCandidate, analysis: Optional[Dict[str, Any]], now: datetime) -> ScoredCandidate:
        if analysis is None:
            return self._heuristic(candidate, now, "no analysis returned for item")
        try:
            quality = _clamp(float(analysis.get("score")))
        except (TypeError, ValueError):
            return self._heuristic(candidate, now, "analysis missing score")

        category = str(analysis.get("category") or "").strip() or None
        return ScoredCandidate(
            **_raw_fields(candidate),
            quality_score=quality,
            score_source="llm",
            score_rationale=f"llm: {str(analysis.get('reason') or '').strip()}".rstrip(": "),
            derived_category=category,
            expected_engagement=_engagement(analysis.get("expectedEngagement")),
            component_scores=_component_scores(analysis),
            freshness_score=freshness_score(candidate.published_at, now),
        )

    def rank(self, scored: Sequence[ScoredCandidate], top_n: Optional[int] = None) -> List[ScoredCandidate]:
        limit = self.settings.top_n if top_n is None else top_n
        ordered = sorted(scored, key=lambda item: item.composite_score, reverse=True)
        return ordered[: max(0, limit)]

    async def select(self, candidates: Sequence[RawCandidate], now: Optional[datetime] = None) -> List[ScoredCandidate]:
        """Filter, score and rank in one pass."""
        now = now or _utcnow()
        survivors = self.filter(candidates, now)
        if not survivors:
            return []
        ranked = self.rank(await self.score(survivors, now))
        logger.info(
            "Top %d composite scores: %s",
            len(ranked),
            ", ".join(f"{item.composite_score:.1f}" for item in ranked),
        )
        return ranked
