"""Command-line interface for the frequency feed service."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import pprint
from pathlib import Path
from typing import List, Optional

from waitress import serve

from .config import parse_app_config, parse_categories_config
from .errors import NoSourceAvailable
from .models import FeedResult
from .resolver import FeedResolver
from .server import create_app
from .transport import RequestsTransport

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Serve normalized news feeds with per-category source failover."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument("--host", default=None, help="Bind address. Overrides config.")
    parser.add_argument(
        "--port", type=int, default=None, help="Listen port. Overrides config and $PORT."
    )
    parser.add_argument(
        "--category",
        action="append",
        metavar="KEY",
        help="Resolve KEY once, print the result as JSON and exit. Repeatable.",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Use the Flask development server instead of waitress.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def _outcome_to_dict(category: str, outcome) -> dict:
    if isinstance(outcome, FeedResult):
        return outcome.to_dict()
    payload = {"category": category, "error": str(outcome)}
    if isinstance(outcome, NoSourceAvailable):
        payload["attempts"] = [
            {"source": skip.source.url, "reason": skip.reason.value, "detail": skip.detail}
            for skip in outcome.attempts
        ]
    return payload


def resolve_once(resolver: FeedResolver, categories: List[str], concurrency: int) -> int:
    """Print resolved categories as JSON; return non-zero if any failed."""
    outcomes = resolver.resolve_many(categories, max_workers=concurrency)
    payload = [_outcome_to_dict(category, outcome) for category, outcome in outcomes]
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    failed = [category for category, outcome in outcomes if not isinstance(outcome, FeedResult)]
    if failed:
        logger.error("Failed to resolve: %s", ", ".join(failed))
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file)

        if args.host:
            app_config.server.host = args.host
        if args.port is not None:
            app_config.server.port = args.port

        logger.info(
            "Active Configuration:\n%s", pprint.pformat(dataclasses.asdict(app_config))
        )

        resolver = FeedResolver(
            parse_categories_config(app_config.categories_file),
            RequestsTransport(),
            timeout=app_config.fetch.timeout,
            user_agent=app_config.fetch.user_agent,
        )

        if args.category:
            return resolve_once(resolver, args.category, app_config.concurrency)

        app = create_app(app_config, resolver=resolver)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during startup.")
        return 1

    logger.info(
        "FREQUENCY BACKEND running on %s:%d",
        app_config.server.host,
        app_config.server.port,
    )
    if args.dev:
        app.run(host=app_config.server.host, port=app_config.server.port, threaded=True)
    else:
        serve(
            app,
            host=app_config.server.host,
            port=app_config.server.port,
            threads=app_config.server.threads,
        )
    return 0
