# src/main.py — v2
"""CLI entry point — ask, status commands.

Usage:
    insurag ask <question> [--filter CATEGORY ...] [-k N] [--threshold F]
                [--json] [--repeat N] [--metrics]
    insurag status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from insurag.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    from insurag.config.settings import ConfigurationError, load_settings

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="insurag",
        description=f"insurag v{__version__} — Insurance question answering",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- ask ---
    p_ask = subparsers.add_parser("ask", help="Answer a question")
    p_ask.add_argument("question", help="Question text")
    p_ask.add_argument(
        "-f", "--filter", dest="filters", action="append", default=None,
        help="Category filter (repeatable)",
    )
    p_ask.add_argument(
        "-k", "--count", dest="count", default=None,
        help="Number of passages to retrieve (default: 5)",
    )
    p_ask.add_argument(
        "--threshold", default=None,
        help="Minimum similarity in [0, 1]",
    )
    p_ask.add_argument(
        "--json", dest="as_json", action="store_true",
        help="Print the full response as JSON",
    )
    p_ask.add_argument(
        "--repeat", type=int, default=1,
        help="Ask the same question N times (exercises the cache)",
    )
    p_ask.add_argument(
        "--metrics", action="store_true",
        help="Print service metrics afterwards",
    )
    p_ask.set_defaults(func=_cmd_ask)

    # --- status ---
    p_status = subparsers.add_parser(
        "status", help="Show provider, vector store and health status",
    )
    p_status.set_defaults(func=_cmd_status)

    return parser


async def _cmd_ask(args: argparse.Namespace, settings: Any) -> int:
    """Run one question through the pipeline."""
    from insurag.api.facade import build_service
    from insurag.core.errors import QueryPipelineError

    service = await build_service(settings)
    response = None
    for _ in range(max(args.repeat, 1)):
        try:
            response = await service.query(
                args.question,
                category_filter=args.filters,
                result_count=args.count,
                similarity_threshold=args.threshold,
            )
        except QueryPipelineError as exc:
            print(json.dumps(exc.to_dict(), indent=2, ensure_ascii=False), file=sys.stderr)
            return 1

    assert response is not None
    if args.as_json:
        print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_response(response)

    if args.metrics:
        print(json.dumps(service.metrics(), indent=2, default=str))
    return 0


async def _cmd_status(args: argparse.Namespace, settings: Any) -> int:
    """Print provider status and health."""
    from insurag.api.facade import build_service

    service = await build_service(settings)
    status = {"rag": await service.rag_status(), "health": service.health()}
    print(json.dumps(status, indent=2, default=str))
    return 0


def _print_response(response: Any) -> None:
    """Print a human-readable answer with its sources."""
    stats = response.stats
    print(f"\n{response.answer}\n")
    if response.sources:
        print("Sources:")
        for rank, src in enumerate(response.sources, start=1):
            print(
                f"  [{rank}] {src.category} | {src.insurer_id} "
                f"({src.similarity:.2f}) {src.fragment_id}"
            )
    print(
        f"\ncache_hit={stats.cache_hit}  fallback={stats.fallback_used}  "
        f"total={stats.total_ms:.1f}ms"
    )


def _setup_logging(settings: Any, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from insurag.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
