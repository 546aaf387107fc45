"""Pipeline orchestration: batch/live runs and progress sessions."""

from .events import CollectingSink, InMemorySessionStore, LiveSession, NullSink, ProgressSink
from .service import PipelineOrchestrator, build_default_orchestrator

__all__ = [
    "CollectingSink",
    "InMemorySessionStore",
    "LiveSession",
    "NullSink",
    "ProgressSink",
    "PipelineOrchestrator",
    "build_default_orchestrator",
]
