"""Live-session progress events: publish interface and in-memory session store."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol
from uuid import uuid4

from core import ProgressEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return f"live_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class ProgressSink(Protocol):
    """Where the orchestrator writes progress events."""

    async def publish(self, event: ProgressEvent) -> None:
        ...


class NullSink:
    """Discards events (batch mode)."""

    async def publish(self, event: ProgressEvent) -> None:
        return None


class CollectingSink:
    """Keeps every event in order."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []

    async def publish(self, event: ProgressEvent) -> None:
        self.events.append(event)


@dataclass
class LiveSession:
    session_id: str
    limit: int
    created_at: datetime = field(default_factory=_utcnow)
    status: str = "running"
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    events: List[ProgressEvent] = field(default_factory=list)
    last_event: str = "init"
    cancel_requested: bool = False
    done: asyncio.Event = field(default_factory=asyncio.Event)
    condition: asyncio.Condition = field(default_factory=asyncio.Condition)
    task: Optional["asyncio.Task[Any]"] = None

    async def emit(self, event: ProgressEvent) -> None:
        self.last_event = event.type.value
        async with self.condition:
            self.events.append(event)
            self.condition.notify_all()

    async def finalize(self, *, status: str, result: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> None:
        self.status = status
        self.result = result
        self.error = error
        self.done.set()
        async with self.condition:
            self.condition.notify_all()

    async def follow(self, heartbeat: float = 3.0) -> AsyncIterator[Optional[ProgressEvent]]:
        """
        Yield events in emission order until the session is done.

        ``None`` is yielded whenever ``heartbeat`` seconds pass without a new event.
        """
        idx = 0
        while True:
            while idx < len(self.events):
                item = self.events[idx]
                idx += 1
                yield item

            if self.done.is_set() and idx >= len(self.events):
                return

            try:
                async with self.condition:
                    await asyncio.wait_for(self.condition.wait(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield None

    def summary(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "error": self.error,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "events": len(self.events),
            "last_event": self.last_event,
            "cancel_requested": self.cancel_requested,
            "result": self.result,
        }


class InMemorySessionStore:
    """Thread-safe registry of live sessions; also the sink live runs publish to."""

    def __init__(self) -> None:
        self._sessions: Dict[str, LiveSession] = {}
        self._lock = Lock()

    def create(self, limit: int) -> LiveSession:
        session = LiveSession(session_id=_new_session_id(), limit=int(limit))
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[LiveSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def list(self) -> List[LiveSession]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda item: item.created_at, reverse=True)

    def request_cancel(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if not session.done.is_set():
                session.cancel_requested = True
                session.status = "cancel_requested"
            return True

    def is_cancelled(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return bool(session and session.cancel_requested)

    async def publish(self, event: ProgressEvent) -> None:
        session = self.get(event.session_id)
        if session is not None:
            await session.emit(event)
