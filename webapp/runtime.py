"""Shared runtime singletons for web/CLI entrypoints."""

from __future__ import annotations

from typing import Optional

from orchestrator import PipelineOrchestrator, build_default_orchestrator


_ORCHESTRATOR: Optional[PipelineOrchestrator] = None


def get_orchestrator() -> PipelineOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = build_default_orchestrator()
    return _ORCHESTRATOR


def set_orchestrator(orchestrator: Optional[PipelineOrchestrator]) -> None:
    """Replace the shared orchestrator (tests inject one wired with fakes)."""
    global _ORCHESTRATOR
    _ORCHESTRATOR = orchestrator


async def close_orchestrator() -> None:
    """Release the shared orchestrator's clients; the next ``get_orchestrator`` builds a fresh one."""
    global _ORCHESTRATOR
    orchestrator, _ORCHESTRATOR = _ORCHESTRATOR, None
    if orchestrator is not None:
        await orchestrator.aclose()
