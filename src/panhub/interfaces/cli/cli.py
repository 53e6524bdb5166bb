from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from panhub.application.search import SearchOrchestrator
from panhub.domain.entities.search import SearchPhase, SearchSettings, SearchSnapshot
from panhub.infrastructure.cache.cache_factory import create_cache
from panhub.infrastructure.clipboard import CommandClipboard
from panhub.infrastructure.config import AppConfig, load_config
from panhub.infrastructure.logging.setup import configure_logging
from panhub.infrastructure.persistence.hot_search_cache import CacheHotSearchStore
from panhub.infrastructure.persistence.settings_cache import CacheSettingsStore
from panhub.infrastructure.sources.http_gateway import HttpxSourceGateway
from panhub.interfaces.app import create_app
from panhub.interfaces.composition import build_http_client, orchestrator_factory

log = structlog.get_logger(__name__)


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="panhub")

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--api-base",
        default=None,
        help="Override the aggregated search endpoint base URL.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API (default).")
    serve.add_argument(
        "--host",
        default=None,
        help="Bind host (overrides HOST env).",
    )
    serve.add_argument(
        "--port",
        default=None,
        type=int,
        help="Bind port (overrides PORT env).",
    )

    search = sub.add_parser("search", help="Run one search and print the result summary.")
    search.add_argument("keyword", help="Search keyword.")
    search.add_argument(
        "--plugins",
        type=_csv,
        default=None,
        help="Comma-separated plugin ids (default: stored settings).",
    )
    search.add_argument(
        "--channels",
        type=_csv,
        default=None,
        help="Comma-separated channel ids (default: stored settings).",
    )
    search.add_argument("--concurrency", type=int, default=None, help="Batch size per family.")
    search.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-source timeout forwarded to the endpoint.",
    )
    search.add_argument(
        "--copy-first",
        action="store_true",
        help="Copy the first result url to the clipboard.",
    )

    return parser.parse_args(argv)


def _search_settings(args: argparse.Namespace, stored: SearchSettings) -> SearchSettings:
    return SearchSettings(
        enabled_plugins=tuple(args.plugins) if args.plugins is not None else stored.enabled_plugins,
        enabled_channels=(
            tuple(args.channels) if args.channels is not None else stored.enabled_channels
        ),
        concurrency=args.concurrency if args.concurrency is not None else stored.concurrency,
        plugin_timeout_ms=(
            args.timeout_ms if args.timeout_ms is not None else stored.plugin_timeout_ms
        ),
    )


def _print_progress(snapshot: SearchSnapshot) -> None:
    print(
        f"[{snapshot.phase.value}] batch={snapshot.paused_at_batch} "
        f"total={snapshot.total} elapsed={snapshot.elapsed_ms}ms",
        file=sys.stderr,
    )


def _first_url(snapshot: SearchSnapshot) -> str | None:
    for items in snapshot.merged.values():
        if items:
            return items[0].url
    return None


async def run_search(config: AppConfig, args: argparse.Namespace) -> SearchSnapshot:
    """One-shot search over the configured endpoint."""
    cache = create_cache(
        backend=config.cache.backend,
        directory=str(config.cache.directory),
        redis_url=config.cache.redis_url,
        ttl_seconds=config.cache.ttl_seconds,
        max_concurrent=config.cache.max_concurrent,
        max_entries=config.cache.max_entries,
        max_memory_bytes=config.cache.max_memory_bytes,
    )
    async with cache:
        http_client = build_http_client(config)
        try:
            settings_store = CacheSettingsStore(
                cache=cache,
                defaults=config.default_search_settings(),
                plugin_catalog=config.plugins,
            )
            hot_searches = CacheHotSearchStore(
                cache=cache, max_entries=config.hot_searches.max_entries
            )
            factory = orchestrator_factory(
                config,
                HttpxSourceGateway(http_client=http_client, api_base=config.api_base),
                hot_searches=hot_searches,
                clipboard=CommandClipboard(),
                on_change=_print_progress,
            )
            orchestrator: SearchOrchestrator = factory()

            settings = _search_settings(args, await settings_store.load())
            snapshot = await orchestrator.start(args.keyword, settings)

            if args.copy_first:
                url = _first_url(snapshot)
                if url is not None and await orchestrator.copy_link(url):
                    print(f"copied: {url}", file=sys.stderr)

            await orchestrator.aclose()
            return snapshot
        finally:
            await http_client.aclose()


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Config is loaded exactly once here, then handed to the server or the
    one-shot search.
    """

    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)
    command = args.command or "serve"

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.api_base:
        cli_overrides["api_base"] = args.api_base
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    elif command == "search":
        # Keep stdout for the JSON summary.
        cli_overrides["log_level"] = "ERROR"
    if args.log_format:
        cli_overrides["log_format"] = args.log_format

    config = load_config(
        config_path=config_path,
        dotenv_path=dotenv_path,
        cli_overrides=cli_overrides,
    )

    log_config = configure_logging(config)

    if command == "search":
        snapshot = asyncio.run(run_search(config, args))
        print(json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2))
        if snapshot.error or snapshot.phase is not SearchPhase.COMPLETED:
            return 1
        return 0

    host = getattr(args, "host", None) or os.getenv("HOST", "0.0.0.0")
    port = int(getattr(args, "port", None) or os.getenv("PORT", "8080"))

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_config=log_config,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(start())
