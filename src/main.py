# src/main.py — v1
"""CLI entry point — explain, clear-cache, prune-cache, proxy commands.

Usage:
    easyread explain [FILE|-] [--origin URL] [--mode simple|balanced|detailed] [--json] [--calls PATH]
    easyread clear-cache
    easyread prune-cache
    easyread proxy [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from easyread.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        from easyread.core.errors import to_user_message

        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        print(to_user_message(exc), file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="easyread",
        description=f"EasyRead v{__version__}: plain-English explanations of hard text",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- explain ---
    p_explain = subparsers.add_parser(
        "explain", help="Explain a text selection",
    )
    p_explain.add_argument(
        "file", nargs="?", default="-",
        help="File with the selected text ('-' or omitted = stdin)",
    )
    p_explain.add_argument(
        "--origin", default="",
        help="Page URL or origin the text came from",
    )
    p_explain.add_argument(
        "--mode", default="balanced", choices=["simple", "balanced", "detailed"],
        help="Explanation mode (default: balanced)",
    )
    p_explain.add_argument(
        "--json", action="store_true",
        help="Print wire-format JSON instead of text",
    )
    p_explain.add_argument(
        "--calls", type=Path, default=None, metavar="PATH",
        help="Save the upstream call log as JSON Lines",
    )
    p_explain.set_defaults(func=_cmd_explain)

    # --- clear-cache ---
    p_clear = subparsers.add_parser(
        "clear-cache", help="Remove every cached result",
    )
    p_clear.set_defaults(func=_cmd_clear_cache)

    # --- prune-cache ---
    p_prune = subparsers.add_parser(
        "prune-cache", help="Remove expired cached results",
    )
    p_prune.set_defaults(func=_cmd_prune_cache)

    # --- proxy ---
    p_proxy = subparsers.add_parser(
        "proxy", help="Run the model proxy service",
    )
    p_proxy.add_argument("--host", default=None, help="Bind address (default: HOST env)")
    p_proxy.add_argument("--port", type=int, default=None, help="Port (default: PORT env)")
    p_proxy.set_defaults(func=_cmd_proxy)

    return parser


def _load_settings(args: argparse.Namespace):
    from easyread.config.settings import load_settings
    from easyread.logging.logger import setup_from_settings

    settings = load_settings()
    setup_from_settings(settings)
    if args.verbose:
        logging.getLogger("easyread").setLevel(logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return settings


def _read_selection(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


async def _cmd_explain(args: argparse.Namespace) -> int:
    """Explain one selection, waiting for deferred vocabulary."""
    from easyread.api.facade import MessageFacade, create_orchestrator, words_update_to_wire
    from easyread.core.models import WordsUpdate

    settings = _load_settings(args)
    text = _read_selection(args.file)
    updates: list[dict[str, Any]] = []

    async def collect(context_id: str | None, update: WordsUpdate) -> None:
        updates.append(words_update_to_wire(update))

    orchestrator = await create_orchestrator(settings, sink=collect)
    facade = MessageFacade(orchestrator)
    try:
        reply = await facade.handle(
            {
                "type": "explain",
                "selectedText": text,
                "pageUrl": args.origin,
                "explanationMode": args.mode,
            },
            context_id="cli",
        )
    finally:
        await orchestrator.shutdown()
        if args.calls:
            orchestrator.call_log.save(args.calls)
            for usage in orchestrator.call_log.usage_by_model().values():
                logger.info(
                    "Model %s: %d call(s), %d failed, avg %.0fms",
                    usage.model or "moderation", usage.total_calls,
                    usage.failed_calls, usage.avg_latency_ms,
                )

    if args.json:
        print(json.dumps({"reply": reply, "updates": updates}, ensure_ascii=False, indent=2))
        return 0 if reply.get("ok") else 1

    if not reply.get("ok"):
        print(reply.get("error", ""), file=sys.stderr)
        return 1

    result = reply["data"]["result"]
    for update in updates:
        if update.get("result"):
            result = update["result"]
        elif update.get("error"):
            print(f"Words: {update['error']}", file=sys.stderr)
    _print_result(result, cached=reply["data"].get("cached", False))
    return 0


async def _cmd_clear_cache(args: argparse.Namespace) -> int:
    """Remove all cached results."""
    cache = _build_cache(_load_settings(args))
    removed = await cache.clear()
    print(f"Removed {removed} cached result(s).")
    return 0


async def _cmd_prune_cache(args: argparse.Namespace) -> int:
    """Remove expired cached results."""
    cache = _build_cache(_load_settings(args))
    removed = await cache.prune_expired()
    print(f"Pruned {removed} expired result(s).")
    return 0


async def _cmd_proxy(args: argparse.Namespace) -> int:
    """Serve the proxy with uvicorn."""
    import uvicorn

    from easyread.config.settings import ProxySettings
    from easyread.logging.logger import setup_logging
    from easyread.proxy.app import create_app

    setup_logging(level="DEBUG" if args.verbose else "INFO", log_format="text")
    settings = ProxySettings()
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level="debug" if args.verbose else "info",
    )
    await uvicorn.Server(config).serve()
    return 0


def _build_cache(settings):
    from easyread.cache.cache_factory import create_cache_store
    from easyread.cache.result_cache import ResultCache

    return ResultCache(create_cache_store(settings), ttl_s=settings.cache_ttl_s)


def _print_result(result: dict[str, Any], cached: bool = False) -> None:
    """Print a human-readable explanation and word list."""
    print(f"\n{result.get('explanation', '')}")
    vocabulary = result.get("vocabulary") or []
    if vocabulary:
        print("\nWords:")
        for entry in vocabulary:
            print(f"  {entry['word']} ({entry.get('level', 'unknown')}): {entry.get('definition', '')}")
            if entry.get("example"):
                print(f"      e.g. {entry['example']}")
    if result.get("notes"):
        print(f"\nNote: {result['notes']}")
    if cached:
        print("\n(from cache)")


if __name__ == "__main__":
    sys.exit(main())
