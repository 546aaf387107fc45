"""Per-slot image search, LLM judging and winner selection."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

from config import PipelineSettings, get_pipeline_settings
from core import ImageCandidate, JudgedImage
from intelligence.llm import BaseLLM, Message
from scrapers.base import BaseScraper
from utils.exceptions import ConfigurationError, ImageSearchError

from .image_queries import (
    STRATEGY_BUILDERS,
    generate_search_query,
    heuristic_image_score,
    passes_quality_gate,
    source_distribution,
)
from .prompts import (
    JUDGE_PROMPT,
    JUDGE_SYSTEM_PROMPT,
    QUERY_NOISE_PHRASES,
    SLOT_PROFILES,
    SLOT_QUERY_PROMPT,
    SLOT_QUERY_SYSTEM_PROMPT,
    TRANSLATE_PROMPT,
    TRANSLATE_SYSTEM_PROMPT,
    SlotProfile,
)


logger = logging.getLogger(__name__)

SIZE_LADDER: Tuple[Optional[str], ...] = ("large", "medium", None)

UNJUDGED_FACTOR = 0.5
FAILED_FACTOR = 0.3
HEURISTIC_WEIGHT = 0.1
JUDGE_WEIGHT = 0.9


def final_score(heuristic: float, relevance: float) -> float:
    return HEURISTIC_WEIGHT * heuristic + JUDGE_WEIGHT * relevance


def parse_judgement(text: str) -> Tuple[float, bool]:
    """Relevance score (0-100) and YES/NO recommendation from a judge reply."""
    text = str(text or "")
    match = (
        re.search(r"관련성\s*점수[:\s]*(\d+)", text, re.IGNORECASE)
        or re.search(r"점수[:\s]*(\d+)", text, re.IGNORECASE)
        or re.search(r"(\d+)점", text)
    )
    score = float(match.group(1)) if match else 0.0
    recommend = re.search(r"추천\s*여부[:\s]*(YES|NO)", text, re.IGNORECASE) or re.search(r"(YES|NO)", text, re.IGNORECASE)
    recommended = bool(recommend) and recommend.group(1).upper() == "YES"
    return max(0.0, min(100.0, score)), recommended


def clean_query(text: str) -> str:
    """First line of an LLM query reply with quotes and lead-in phrases removed."""
    lines = [line.strip() for line in str(text or "").splitlines() if line.strip()]
    query = lines[0] if lines else ""
    for phrase in QUERY_NOISE_PHRASES:
        query = query.replace(phrase, "")
    return query.strip().strip("\"'").strip()


def _plain_text(html: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", " ", str(html or ""))).strip()


class ImageSourcingEngine:
    """
    Image sourcing for the fixed article slots.

    Slots run one after another (thumbnail first). Each slot builds a query,
    collects up to ``image_candidate_target`` gated and de-duplicated images
    across several query strategies, judges them with the vision model, and
    keeps the single best by final score.
    """

    def __init__(
        self,
        llm: Optional[BaseLLM],
        search_provider: BaseScraper,
        settings: Optional[PipelineSettings] = None,
    ):
        self.llm = llm
        self.search_provider = search_provider
        self.settings = settings or get_pipeline_settings()

    def _llm_ready(self) -> bool:
        return self.llm is not None and self.llm.is_configured()

    async def source_images(
        self,
        title: str,
        tags: Sequence[str],
        slot_count: Optional[int] = None,
        content: str = "",
    ) -> List[JudgedImage]:
        """
        Pick at most ``slot_count`` images, one per slot, in slot order.

        Raises:
            ConfigurationError: the search provider has no credentials
        """
        if not self.search_provider.is_configured():
            raise ConfigurationError(
                "Image search provider is not configured",
                {"provider": self.search_provider.name},
            )

        count = self.settings.image_slots if slot_count is None else slot_count
        profiles = list(SLOT_PROFILES)[: max(0, count)]
        text = _plain_text(content)
        keywords = [str(tag) for tag in tags]

        selected: List[JudgedImage] = []
        for profile in profiles:
            logger.info("Sourcing %s image (%d/%d)", profile.label, profile.index + 1, len(profiles))
            query = await self.generate_slot_query(title, text, keywords, profile)
            candidates = await self.collect_candidates(query, title, text, keywords, profile)
            if not candidates:
                logger.warning("No usable images for %s slot", profile.label)
                continue

            judged = await self.judge_candidates(candidates, title, text, keywords, profile)
            winner = max(judged, key=lambda image: image.final_score)
            winner = winner.model_copy(
                update={
                    "slot_index": profile.index,
                    "slot_type": profile.slot_type,
                    "search_query": query,
                    "candidates_considered": len(candidates),
                }
            )
            logger.info("%s winner: %s (final %.1f)", profile.label, winner.link, winner.final_score)
            selected.append(winner)

        logger.info("Selected %d of %d slot images", len(selected), len(profiles))
        return selected

    async def generate_slot_query(
        self,
        title: str,
        content: str,
        keywords: Sequence[str],
        profile: SlotProfile,
    ) -> str:
        """Slot-specific query from the LLM, else the keyword fallback."""
        fallback = generate_search_query(title, keywords)
        if not self._llm_ready():
            return fallback

        prompt = SLOT_QUERY_PROMPT.format(
            label=profile.label,
            title=title,
            content=content[:500],
            keywords=", ".join(keywords),
            purpose=profile.purpose,
            focus=profile.focus,
            requirements=profile.requirements,
        )
        try:
            response = await self.llm.acomplete(
                [Message.system(SLOT_QUERY_SYSTEM_PROMPT), Message.user(prompt)],
                max_tokens=100,
                temperature=0.3,
            )
        except Exception as exc:
            logger.warning("%s query generation failed, using keywords: %s", profile.label, exc)
            return fallback
        return clean_query(response.content) or fallback

    async def translate_to_english(self, query: str) -> str:
        """English rendition of ``query``; the input itself when translation is unavailable."""
        if not query or not self._llm_ready():
            return query
        try:
            response = await self.llm.acomplete(
                [Message.system(TRANSLATE_SYSTEM_PROMPT), Message.user(TRANSLATE_PROMPT.format(text=query))],
                max_tokens=50,
                temperature=0.3,
            )
        except Exception as exc:
            logger.warning("Query translation failed: %s", exc)
            return query
        return clean_query(response.content) or query

    async def _search_into(
        self,
        query: str,
        size: Optional[str],
        source: str,
        collected: List[ImageCandidate],
        seen: Set[str],
        paced: bool,
    ) -> None:
        if paced and self.settings.image_search_delay > 0:
            await asyncio.sleep(self.settings.image_search_delay)

        remaining = self.settings.image_candidate_target - len(collected)
        try:
            results = await self.search_provider.search(query, size=size, num=min(10, remaining))
        except ImageSearchError as exc:
            logger.warning("Image search '%s' (%s) failed: %s", query, source, exc)
            return

        for item in results:
            if item.link in seen or not passes_quality_gate(item):
                continue
            seen.add(item.link)
            collected.append(
                item.model_copy(
                    update={"heuristic_score": heuristic_image_score(item, query), "strategy_source": source}
                )
            )

    async def collect_candidates(
        self,
        query: str,
        title: str,
        content: str,
        keywords: Sequence[str],
        profile: SlotProfile,
    ) -> List[ImageCandidate]:
        """Gated, de-duplicated candidates sorted by heuristic score."""
        target = self.settings.image_candidate_target
        collected: List[ImageCandidate] = []
        seen: Set[str] = set()

        await self._search_into(query, "large", "large", collected, seen, paced=False)
        if len(collected) < target:
            await self._search_into(query, "medium", "medium", collected, seen, paced=True)

        strategies = [
            ("keywords", " ".join(list(keywords)[:2])),
            ("english", await self.translate_to_english(query) if len(collected) < target else ""),
        ]
        strategies.extend((name, builder(title, content, keywords)) for name, builder in STRATEGY_BUILDERS)

        for name, strategy_query in strategies:
            if len(collected) >= target:
                break
            if not strategy_query or not strategy_query.strip():
                continue
            for size in SIZE_LADDER:
                if len(collected) >= target:
                    break
                await self._search_into(
                    strategy_query, size, f"{name}-{size or 'any'}", collected, seen, paced=True
                )
            logger.debug("%s after %s strategy: %d candidates", profile.label, name, len(collected))

        ranked = sorted(collected, key=lambda image: image.heuristic_score, reverse=True)[:target]
        logger.info(
            "%s candidates: %d (target %d) %s",
            profile.label,
            len(ranked),
            target,
            source_distribution(ranked),
        )
        return ranked

    async def judge_candidates(
        self,
        candidates: Sequence[ImageCandidate],
        title: str,
        content: str,
        keywords: Sequence[str],
        profile: SlotProfile,
    ) -> List[JudgedImage]:
        """
        Score every candidate.

        Up to ``image_judge_limit`` candidates are sent to the vision model in
        heuristic order. Judging stops early once enough images are judged and
        one reaches ``early_exit_score``; whatever was not judged keeps a
        discounted heuristic score.
        """
        ordered = sorted(candidates, key=lambda image: image.heuristic_score, reverse=True)
        if not self._llm_ready():
            logger.warning("LLM not configured; %s images ranked by heuristic only", profile.label)
            return [self._unjudged(image) for image in ordered]

        context = f"제목: {title}\n내용: {content[:800] or '내용 없음'}\n태그: {', '.join(keywords)}"
        prompt = JUDGE_PROMPT.format(label=profile.label, purpose=profile.purpose, context=context)
        batch = ordered[: self.settings.image_judge_limit]

        judged: List[JudgedImage] = []
        for position, image in enumerate(batch):
            try:
                response = await self.llm.aanalyze_image(
                    image.link,
                    prompt,
                    system_prompt=JUDGE_SYSTEM_PROMPT,
                    max_tokens=500,
                    temperature=0.3,
                )
                relevance, recommended = parse_judgement(response.content)
                judged.append(
                    JudgedImage(
                        **image.model_dump(),
                        llm_relevance_score=relevance,
                        recommended=recommended,
                        final_score=final_score(image.heuristic_score, relevance),
                        judgement="judged",
                        reasoning=response.content,
                    )
                )
                if relevance >= self.settings.early_exit_score and len(judged) >= self.settings.early_exit_min_judged:
                    logger.info("%s early exit at %.0f after %d judged", profile.label, relevance, len(judged))
                    break
            except Exception as exc:
                logger.warning("Judging %s failed: %s", image.link, exc)
                judged.append(
                    JudgedImage(
                        **image.model_dump(),
                        final_score=image.heuristic_score * FAILED_FACTOR,
                        judgement="failed",
                        reasoning=str(exc),
                    )
                )

            if position < len(batch) - 1 and self.settings.image_judge_delay > 0:
                await asyncio.sleep(self.settings.image_judge_delay)

        judged.extend(self._unjudged(image) for image in ordered[len(judged):])
        return judged

    @staticmethod
    def _unjudged(image: ImageCandidate) -> JudgedImage:
        return JudgedImage(
            **image.model_dump(),
            final_score=image.heuristic_score * UNJUDGED_FACTOR,
            judgement="unjudged",
        )
