"""Web API: FastAPI routes, SSE and WebSocket progress for the news pipeline."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from core import ArticleStatus, ProgressEvent
from orchestrator import LiveSession, PipelineOrchestrator
from utils.exceptions import StorageError
from webapp.runtime import close_orchestrator, get_orchestrator


logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 3.0


class RunPayload(BaseModel):
    limit: Optional[int] = Field(default=None, ge=0, le=20)


class ArticlePatch(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    slug: Optional[str] = None
    status: Optional[ArticleStatus] = None


def _sse(event: str, data: Dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {payload}\n\n"


def _event_payload(event: ProgressEvent) -> Dict[str, Any]:
    return event.model_dump(mode="json", exclude_none=True)


def _heartbeat(session: LiveSession) -> Dict[str, Any]:
    elapsed = (datetime.now(timezone.utc) - session.created_at).total_seconds()
    return {
        "session_id": session.session_id,
        "status": session.status,
        "events": len(session.events),
        "last_event": session.last_event,
        "elapsed_sec": round(float(elapsed), 1),
    }


def _orchestrator() -> PipelineOrchestrator:
    return get_orchestrator()


def _session_or_404(session_id: str) -> LiveSession:
    session = _orchestrator().sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session_id not found")
    return session


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await close_orchestrator()


app = FastAPI(title="News Pipeline API", version="1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/rss/candidates")
async def rss_candidates() -> Dict[str, Any]:
    ranked = await _orchestrator().scan()
    return {
        "count": len(ranked),
        "candidates": [
            {
                **item.model_dump(mode="json", exclude={"component_scores"}),
                "composite_score": round(item.composite_score, 2),
            }
            for item in ranked
        ],
    }


@app.post("/api/automation/run")
async def run_automation(payload: Optional[RunPayload] = None) -> Dict[str, Any]:
    payload = payload or RunPayload()
    result = await _orchestrator().run_batch(limit=payload.limit)
    return {
        "success": result.status != "failed",
        "status": result.status,
        "new_articles": result.new_articles,
        "created_articles": result.created_count,
        "articles": [item.model_dump(mode="json") for item in result.created_articles],
        "errors": [item.model_dump() for item in result.errors],
        "cost_info": result.cost_info.model_dump(),
    }


@app.post("/api/automation/run-live")
async def run_automation_live(payload: Optional[RunPayload] = None) -> Dict[str, Any]:
    payload = payload or RunPayload()
    session_id = _orchestrator().start_live(limit=payload.limit)
    return {"success": True, "session_id": session_id, "status": "running"}


@app.post("/api/automation/sessions/{session_id}/stop")
async def stop_session(session_id: str) -> Dict[str, Any]:
    session = _session_or_404(session_id)
    _orchestrator().cancel_session(session_id)
    return {"session_id": session_id, "status": session.status, "cancel_requested": session.cancel_requested}


@app.get("/api/automation/sessions/{session_id}")
async def get_session(session_id: str) -> Dict[str, Any]:
    session = _session_or_404(session_id)
    summary = session.summary()
    summary["event_log"] = [_event_payload(item) for item in list(session.events)]
    return summary


@app.get("/api/automation/sessions/{session_id}/events")
async def stream_session_events(session_id: str) -> StreamingResponse:
    session = _session_or_404(session_id)

    async def _event_stream():
        yield "retry: 3000\n\n"
        yield _sse("connected", {"session_id": session_id, "status": session.status})
        async for item in session.follow(heartbeat=HEARTBEAT_SECONDS):
            if item is None:
                yield _sse("heartbeat", _heartbeat(session))
            else:
                yield _sse(item.type.value, _event_payload(item))
        yield _sse("stream_end", {"session_id": session_id, "status": session.status, "error": session.error})

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(_event_stream(), media_type="text/event-stream", headers=headers)


@app.websocket("/ws/automation/{session_id}")
async def automation_socket(websocket: WebSocket, session_id: str) -> None:
    await websocket.accept()
    session = _orchestrator().sessions.get(session_id)
    if session is None:
        await websocket.send_json({"type": "error", "error": "session_id not found"})
        await websocket.close(code=4404)
        return

    try:
        async for item in session.follow(heartbeat=HEARTBEAT_SECONDS):
            if item is None:
                await websocket.send_json({"type": "heartbeat", **_heartbeat(session)})
            else:
                await websocket.send_json(_event_payload(item))
        await websocket.send_json({"type": "stream_end", "session_id": session_id, "status": session.status})
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("WebSocket for %s disconnected", session_id)


@app.get("/api/articles")
async def list_articles(status: Optional[ArticleStatus] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    result = _orchestrator().store.list(status=status.value if status else None, page=page, limit=limit)
    return result.model_dump(mode="json")


@app.get("/api/articles/{article_id}")
async def get_article(article_id: int) -> Dict[str, Any]:
    article = _orchestrator().store.get_by_id(article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="article not found")
    return article.model_dump(mode="json")


@app.patch("/api/articles/{article_id}")
async def update_article(article_id: int, patch: ArticlePatch) -> Dict[str, Any]:
    changes = patch.model_dump(exclude_none=True)
    try:
        article = _orchestrator().store.update(article_id, changes)
    except StorageError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if article is None:
        raise HTTPException(status_code=404, detail="article not found")
    return article.model_dump(mode="json")


@app.delete("/api/articles/{article_id}")
async def delete_article(article_id: int) -> Dict[str, Any]:
    if not _orchestrator().store.delete(article_id):
        raise HTTPException(status_code=404, detail="article not found")
    return {"success": True, "id": article_id}


@app.get("/api/stats")
async def article_stats() -> Dict[str, Any]:
    return _orchestrator().store.stats().model_dump(mode="json")


@app.get("/api/cost")
async def cost_info() -> Dict[str, Any]:
    return _orchestrator().cost_info()
