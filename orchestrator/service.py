"""Pipeline orchestrator: batch and live runs over feed -> rank -> compose -> images -> store."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx

from config import Settings, get_settings
from core import (
    CandidateError,
    PersistedArticle,
    PipelineRunResult,
    ProgressEvent,
    ProgressEventType,
    ScoredCandidate,
)
from intelligence.llm import BaseLLM, CostTracker, UsageTrackedLLM, get_llm
from pipeline import (
    ArticleComposer,
    CandidateRanker,
    ImageSourcingEngine,
    MediaPublisher,
    PublishedMedia,
    editorial_quality_score,
)
from scrapers import BaseScraper, GoogleImageSearchScraper
from sources import FeedAggregator
from storage import ArticleStore, CloudflareImagesClient, get_article_store
from utils.exceptions import NewsPipelineError

from .events import InMemorySessionStore, LiveSession, NullSink, ProgressSink


logger = logging.getLogger(__name__)

Emit = Callable[..., Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _RunComponents:
    """Per-run collaborators sharing one usage-tracked LLM."""

    def __init__(self, orchestrator: "PipelineOrchestrator", tracker: CostTracker):
        settings = orchestrator.settings
        self.tracker = tracker
        self.llm = UsageTrackedLLM(orchestrator.llm, tracker)
        self.ranker = CandidateRanker(self.llm, settings.pipeline)
        self.composer = ArticleComposer(self.llm, settings.pipeline)
        self.images = ImageSourcingEngine(self.llm, orchestrator.image_search, settings.pipeline)
        self.publisher = MediaPublisher(orchestrator.cdn, settings.cdn, transport=orchestrator.download_transport)


class PipelineOrchestrator:
    """
    Drives a pipeline run.

    Candidates are processed one at a time in ranked order. A failing
    candidate is recorded and skipped; only an empty candidate set or an
    error before the first candidate fails the whole run. Live runs publish
    progress events to a sink and honour cancellation between steps.
    """

    def __init__(
        self,
        *,
        aggregator: FeedAggregator,
        llm: BaseLLM,
        image_search: BaseScraper,
        cdn: CloudflareImagesClient,
        store: ArticleStore,
        settings: Optional[Settings] = None,
        sessions: Optional[InMemorySessionStore] = None,
        download_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.aggregator = aggregator
        self.llm = llm
        self.image_search = image_search
        self.cdn = cdn
        self.store = store
        self.sessions = sessions or InMemorySessionStore()
        self.download_transport = download_transport
        self._lifetime_cost = CostTracker()
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def cost_info(self) -> Dict[str, Any]:
        return self._lifetime_cost.snapshot().model_dump()

    async def scan(self) -> List[ScoredCandidate]:
        """Fetch feeds and return the ranked shortlist without generating anything."""
        tracker = CostTracker()
        ranker = CandidateRanker(UsageTrackedLLM(self.llm, tracker), self.settings.pipeline)
        try:
            raw = await self.aggregator.fetch()
            return await ranker.select(raw)
        finally:
            self._lifetime_cost.merge(tracker)

    async def run_batch(self, limit: Optional[int] = None, sink: Optional[ProgressSink] = None) -> PipelineRunResult:
        """Run to completion and return the aggregate report; events go to ``sink`` if given."""
        return await self._execute("batch", limit, sink or NullSink(), lambda: False)

    def start_live(self, limit: Optional[int] = None) -> str:
        """Start a background run and return its session id immediately."""
        session = self.sessions.create(limit or self.settings.pipeline.article_limit)
        task = asyncio.create_task(self._run_live(session))
        session.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session.session_id

    def cancel_session(self, session_id: str) -> bool:
        """Ask a live run to stop after its current step."""
        return self.sessions.request_cancel(session_id)

    async def aclose(self) -> None:
        """Stop live runs still in flight and release the provider clients."""
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.image_search.close()
        await self.llm.aclose()

    async def _run_live(self, session: LiveSession) -> None:
        sid = session.session_id
        try:
            result = await self._execute(sid, session.limit, self.sessions, lambda: self.sessions.is_cancelled(sid))
        except Exception as exc:
            logger.exception("Live session %s crashed", sid)
            await session.finalize(status="failed", error=str(exc))
            return
        error = result.errors[0].error_message if result.status == "failed" and result.errors else None
        await session.finalize(status=result.status, result=_result_payload(result), error=error)

    async def _execute(
        self,
        session_id: str,
        limit: Optional[int],
        sink: ProgressSink,
        is_cancelled: Callable[[], bool],
    ) -> PipelineRunResult:
        tracker = CostTracker()
        result = PipelineRunResult()

        async def emit(kind: ProgressEventType, message: str, progress: float, **extra: Any) -> None:
            event = ProgressEvent(
                session_id=session_id,
                type=kind,
                message=message,
                progress=max(0, min(100, int(round(progress)))),
                **extra,
            )
            await sink.publish(event)

        async def fail(message: str, error: str, progress: float) -> PipelineRunResult:
            result.status = "failed"
            result.errors.append(CandidateError(article_title=None, error_message=error))
            result.cost_info = tracker.snapshot()
            result.finished_at = _utcnow()
            self._lifetime_cost.merge(tracker)
            await emit(ProgressEventType.ERROR, message, progress, error=error)
            return result

        limit = self.settings.pipeline.article_limit if limit is None else max(0, int(limit))
        await emit(ProgressEventType.START, f"자동화 프로세스 시작 (최대 {limit}개)", 0)
        await emit(ProgressEventType.RSS_SCAN, "RSS 피드 스캔 중...", 10)

        components = _RunComponents(self, tracker)
        try:
            raw = await self.aggregator.fetch()
            ranked = await components.ranker.select(raw)
        except Exception as exc:
            logger.exception("Run %s failed before any candidate", session_id)
            return await fail("자동화 프로세스 실행 중 오류가 발생했습니다", str(exc), 10)

        if not ranked:
            return await fail("처리할 수 있는 기사가 없습니다", "no candidates available", 10)

        result.new_articles = len(ranked)
        await emit(
            ProgressEventType.RSS_COMPLETE,
            f"총 {len(ranked)}개 기사 발견",
            20,
            data={"total_articles": len(raw), "ranked_articles": len(ranked)},
        )

        todo = ranked[:limit]
        step = 80.0 / len(todo) if todo else 80.0
        cancelled = False
        for index, candidate in enumerate(todo):
            if is_cancelled():
                cancelled = True
                break
            base = 20.0 + step * index
            await emit(
                ProgressEventType.PROCESSING,
                f"처리 중 ({index + 1}/{len(todo)}): {candidate.title[:50]}",
                base,
                current_article=candidate.title,
                data={"index": index + 1, "total": len(todo), "source": candidate.source_name},
            )
            try:
                article = await self._process_candidate(candidate, components, emit, base, step, is_cancelled)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Candidate '%s' failed: %s", candidate.title, exc)
                result.errors.append(CandidateError(article_title=candidate.title, error_message=str(exc)))
                await emit(
                    ProgressEventType.ERROR,
                    f"기사 생성 실패: {candidate.title}",
                    base + step,
                    current_article=candidate.title,
                    error=str(exc),
                )
                continue

            if article is None:
                cancelled = True
                break

            result.created_articles.append(article)
            await emit(
                ProgressEventType.ARTICLE_SAVED,
                f"기사 저장 완료 (품질 점수: {article.quality_score:.0f}점)",
                base + step,
                current_article=candidate.title,
                article={
                    "id": article.id,
                    "title": article.title,
                    "quality_score": article.quality_score,
                    "status": article.status.value,
                },
            )
            if self.settings.pipeline.candidate_delay > 0:
                await asyncio.sleep(self.settings.pipeline.candidate_delay)

        result.status = "cancelled" if cancelled else "completed"
        result.cost_info = tracker.snapshot()
        result.finished_at = _utcnow()
        self._lifetime_cost.merge(tracker)

        summary = _result_payload(result)
        summary["cancelled"] = cancelled
        message = (
            f"자동화 프로세스 중단됨: {result.created_count}개 기사 생성"
            if cancelled
            else f"자동화 프로세스 완료! {result.created_count}개 기사 생성"
        )
        await emit(ProgressEventType.COMPLETE, message, 100, data=summary)
        logger.info(
            "Run %s %s: %d created, %d errors, $%.6f",
            session_id,
            result.status,
            result.created_count,
            len(result.errors),
            result.cost_info.estimated_cost,
        )
        return result

    async def _process_candidate(
        self,
        candidate: ScoredCandidate,
        components: _RunComponents,
        emit: Emit,
        base: float,
        step: float,
        is_cancelled: Callable[[], bool],
    ) -> Optional[PersistedArticle]:
        """Compose, illustrate and store one candidate; None when cancelled midway."""
        before = components.tracker.snapshot()

        await emit(ProgressEventType.AI_GENERATING, "AI 기사 생성 중...", base + 0.25 * step, current_article=candidate.title)
        draft = await components.composer.compose(candidate)
        await emit(
            ProgressEventType.AI_COMPLETE,
            f"AI 기사 생성 완료: \"{draft.title}\"",
            base + 0.5 * step,
            current_article=candidate.title,
        )
        if is_cancelled():
            return None

        selected_count = 0
        try:
            judged = await components.images.source_images(draft.title, draft.tags, content=draft.body_html)
            selected_count = len(judged)
            media = await components.publisher.publish(draft, judged)
        except asyncio.CancelledError:
            raise
        except (NewsPipelineError, httpx.HTTPError) as exc:
            logger.warning("Images skipped for '%s': %s", draft.title, exc)
            media = await components.publisher.publish(draft, [])
        except Exception:
            logger.exception("Image stage crashed for '%s'", draft.title)
            media = await components.publisher.publish(draft, [])

        after = components.tracker.snapshot()
        quality = editorial_quality_score(draft.title, media.body_html, draft.tags)
        return self.store.save(
            {
                "title": draft.title,
                "content": media.body_html,
                "tags": draft.tags,
                "category": draft.category,
                "slug": draft.slug,
                "structured_data": media.structured_data,
                "quality_score": quality,
                "source_url": candidate.link,
                "source_title": candidate.title,
                "source_name": candidate.source_name,
                "images": [image.model_dump() for image in media.uploaded],
                "cost_info": _article_cost(before, after, self.llm.model, selected_count, media, candidate),
            }
        )


def _article_cost(before, after, model: str, selected: int, media: PublishedMedia, candidate: ScoredCandidate) -> Dict[str, Any]:
    return {
        "requests": after.total_requests - before.total_requests,
        "tokens_used": after.total_tokens - before.total_tokens,
        "prompt_tokens": after.prompt_tokens - before.prompt_tokens,
        "completion_tokens": after.completion_tokens - before.completion_tokens,
        "estimated_cost": round(after.estimated_cost - before.estimated_cost, 6),
        "model": model,
        "images_selected": selected,
        "images_uploaded": len(media.uploaded),
        "candidate_score": round(candidate.composite_score, 2),
    }


def _result_payload(result: PipelineRunResult) -> Dict[str, Any]:
    return {
        "status": result.status,
        "new_articles": result.new_articles,
        "created_articles": result.created_count,
        "errors": len(result.errors),
        "generated_articles": [
            {"id": item.id, "title": item.title, "quality_score": item.quality_score, "status": item.status.value}
            for item in result.created_articles
        ],
        "error_details": [item.model_dump() for item in result.errors],
        "cost_info": result.cost_info.model_dump(),
    }


def build_default_orchestrator(settings: Optional[Settings] = None) -> PipelineOrchestrator:
    """Wire the orchestrator from settings (credentials are checked lazily)."""
    settings = settings or get_settings()
    return PipelineOrchestrator(
        aggregator=FeedAggregator(settings.pipeline),
        llm=get_llm(),
        image_search=GoogleImageSearchScraper(settings.image_search),
        cdn=CloudflareImagesClient(settings.cdn),
        store=get_article_store(settings.storage),
        settings=settings,
    )
