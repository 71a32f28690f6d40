"""Command-line entrypoint for listing and republishing classified ads.

Each invocation is a standalone run with its own run state; run status and
forced runs are served by the Celery worker (``republisher.status``).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv

from .config import RepublisherConfig
from .logging_config import configure_logging
from .service import RepublishService, normalize_ad_ids

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover and republish published classified ads")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file to load before reading configuration (default: ./.env if present)",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=None,
        help="Override MAX_CONCURRENT_REQUESTS (republish chunk size)",
    )
    parser.add_argument(
        "--request-delay-ms",
        type=int,
        default=None,
        help="Override REQUEST_DELAY_MS (pause between republish chunks)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="Print the identifiers of every published ad")
    subparsers.add_parser("count", help="Print how many ads are published")
    subparsers.add_parser("republish-all", help="Republish every published ad")

    republish_specific = subparsers.add_parser("republish-specific", help="Republish the given ad IDs")
    republish_specific.add_argument("ad_ids", nargs="+", help="Ad identifiers to republish")
    return parser


def build_config(args: argparse.Namespace) -> RepublisherConfig:
    config = RepublisherConfig.from_env()
    if args.log_level:
        config.logging.level = args.log_level.upper()
    if args.max_concurrent is not None:
        if args.max_concurrent <= 0:
            raise ValueError("--max-concurrent must be positive")
        config.rate_limit.max_concurrent_requests = args.max_concurrent
    if args.request_delay_ms is not None:
        config.rate_limit.request_delay_ms = max(0, args.request_delay_ms)
    return config


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def run_command(service: RepublishService, args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "list":
        ad_ids = await service.list_published_ad_ids()
        return {"ad_ids": ad_ids, "total_count": len(ad_ids), "timestamp": _timestamp()}
    if args.command == "count":
        return {"count": await service.count_published_ads(), "timestamp": _timestamp()}
    if args.command == "republish-all":
        result = await service.run_republish_all()
        return {"message": "Republishing process completed", "timestamp": _timestamp(), **result.to_dict()}
    if args.command == "republish-specific":
        result = await service.run_republish_specific(args.ad_ids)
        return {
            "message": f"Republishing process completed for {len(args.ad_ids)} specific ads",
            "timestamp": _timestamp(),
            **result.to_dict(),
        }
    raise ValueError(f"Unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.env_file is not None:
        if not args.env_file.exists():
            parser.error(f"Env file {args.env_file} does not exist")
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    try:
        config = build_config(args)
    except ValueError as exc:
        parser.error(str(exc))

    configure_logging(config.logging)

    if not config.site.base_url:
        parser.error("CLASIFICADOS_BASE_URL must be configured")
    if args.command == "republish-specific":
        try:
            args.ad_ids = normalize_ad_ids(args.ad_ids)
        except ValueError as exc:
            parser.error(str(exc))

    service = RepublishService(config)
    try:
        payload = asyncio.run(run_command(service, args))
    except Exception:
        LOGGER.exception("Command %s failed", args.command)
        return EXIT_FAILURE

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return EXIT_OK


__all__ = ["build_arg_parser", "build_config", "main", "run_command"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
