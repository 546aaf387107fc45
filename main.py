"""CLI entrypoint for the news pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Awaitable, TypeVar

import uvicorn

from orchestrator import PipelineOrchestrator
from utils.logger import configure_root_logging
from webapp.runtime import get_orchestrator


T = TypeVar("T")


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def _then_close(orchestrator: PipelineOrchestrator, operation: Awaitable[T]) -> T:
    try:
        return await operation
    finally:
        await orchestrator.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="RSS news rewrite pipeline CLI")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("scan", help="Fetch feeds and print the ranked shortlist")

    run = sub.add_parser("run", help="Run the full pipeline once (batch mode)")
    run.add_argument("--limit", type=int, default=None)

    listing = sub.add_parser("list", help="List stored articles")
    listing.add_argument("--status", default=None, choices=["draft", "published", "failed"])
    listing.add_argument("--page", type=int, default=1)
    listing.add_argument("--limit", type=int, default=10)

    sub.add_parser("stats", help="Print article statistics")

    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    configure_root_logging(getattr(logging, str(args.log_level).upper(), logging.INFO), args.log_file)

    if args.command == "serve":
        uvicorn.run("webapp.app:app", host=args.host, port=args.port, reload=args.reload)
        return

    orchestrator = get_orchestrator()

    if args.command == "scan":
        ranked = asyncio.run(_then_close(orchestrator, orchestrator.scan()))
        _print(
            [
                {
                    "title": item.title,
                    "link": item.link,
                    "source": item.source_name,
                    "quality_score": item.quality_score,
                    "freshness_score": item.freshness_score,
                    "composite_score": round(item.composite_score, 2),
                    "score_source": item.score_source,
                }
                for item in ranked
            ]
        )
        return

    if args.command == "run":
        result = asyncio.run(_then_close(orchestrator, orchestrator.run_batch(limit=args.limit)))
        _print(
            {
                "status": result.status,
                "new_articles": result.new_articles,
                "created_articles": [
                    {"id": item.id, "title": item.title, "status": item.status.value, "quality_score": item.quality_score}
                    for item in result.created_articles
                ],
                "errors": [item.model_dump() for item in result.errors],
                "cost_info": result.cost_info.model_dump(),
            }
        )
        return

    if args.command == "list":
        page = orchestrator.store.list(status=args.status, page=args.page, limit=args.limit)
        _print(page.model_dump(mode="json", exclude={"articles": {"__all__": {"content", "structured_data"}}}))
        return

    if args.command == "stats":
        _print(orchestrator.store.stats().model_dump(mode="json"))


if __name__ == "__main__":
    main()
