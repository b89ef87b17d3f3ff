"""Command-line entry point for the accessibility reporter."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import SCREENSHOT_FORMATS, ReporterConfig
from .errors import ReporterError
from .pipeline import AuditPipeline
from .reports import ReportsIndex
from .settings import MAX_PAGES, MIN_PAGES, load_settings

logger = logging.getLogger("axe_reporter.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return ("run",)
    first = argv[0]
    if first in commands or first in ("-h", "--help"):
        return argv
    return ("run", *argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--data-dir",
        default="data",
        type=Path,
        help="Directory holding settings.json, results and reports",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    _add_common_arguments(parser)
    parser.add_argument(
        "--sitemap-url",
        default=None,
        help="Override the sitemap URL from settings.json for this run",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Override the maximum number of pages for this run",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=4,
        help="Maximum number of pages audited at the same time",
    )
    parser.add_argument(
        "--per-domain",
        type=int,
        default=2,
        help="Maximum number of simultaneous audits against one hostname",
    )
    parser.add_argument(
        "--delay",
        type=int,
        default=1000,
        help="Minimum delay in milliseconds between requests to the same hostname",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Audit pages one at a time",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=45_000,
        help="Navigation and audit timeout in milliseconds",
    )
    parser.add_argument(
        "--locale",
        default="ja",
        help="axe-core locale used for rule messages",
    )
    parser.add_argument(
        "--no-screenshots",
        action="store_true",
        help="Skip viewport screenshots",
    )
    parser.add_argument(
        "--screenshot-format",
        choices=SCREENSHOT_FORMATS,
        default="webp",
        help="Image format for screenshots",
    )
    parser.add_argument(
        "--allow-domain",
        action="append",
        default=[],
        help="Only audit hosts under this domain (repeatable)",
    )
    parser.add_argument(
        "--block-domain",
        action="append",
        default=[],
        help="Never audit hosts under this domain or CIDR range (repeatable)",
    )
    parser.add_argument(
        "--no-sandbox",
        action="store_true",
        help="Disable the Chromium sandbox",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Audit the pages listed in a sitemap with axe-core and record versioned reports.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the crawl-and-audit pipeline once")
    _add_run_arguments(run_parser)

    runs_parser = subparsers.add_parser("runs", help="Print the reports index as JSON")
    _add_common_arguments(runs_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ReporterConfig:
    return ReporterConfig(
        data_root=Path(args.data_dir).resolve(),
        locale=args.locale,
        concurrency=args.concurrency,
        enable_concurrency=not args.sequential,
        enable_screenshots=not args.no_screenshots,
        screenshot_format=args.screenshot_format,
        navigation_timeout=args.timeout,
        allowed_domains=list(args.allow_domain),
        blocked_domains=list(args.block_domain),
        enable_sandbox=not args.no_sandbox,
        max_concurrent_per_domain=args.per_domain,
        delay_between_requests=args.delay,
    )


async def _run_with_signals(pipeline: AuditPipeline, args: argparse.Namespace):
    settings = load_settings(pipeline.config.settings_path)
    overrides = {}
    if args.sitemap_url:
        overrides["sitemap_url"] = args.sitemap_url.strip()
    if args.max_pages is not None:
        overrides["max_pages"] = min(max(args.max_pages, MIN_PAGES), MAX_PAGES)
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    loop = asyncio.get_running_loop()
    cancellations: List[asyncio.Task] = []

    def request_cancel() -> None:
        logger.warning("Received stop signal")
        cancellations.append(asyncio.ensure_future(pipeline.cancel()))

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, request_cancel)
        except NotImplementedError:
            logger.debug("Signal handlers are not supported on this platform")
    try:
        return await pipeline.run(settings)
    finally:
        if cancellations:
            await asyncio.gather(*cancellations)


def _run(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    pipeline = AuditPipeline(build_config(args))
    try:
        outcome = asyncio.run(_run_with_signals(pipeline, args))
    except ReporterError as exc:
        logger.error("Fatal error: %s: %s", type(exc).__name__, exc)
        return 1

    logger.info("Successful: %d", outcome.successful)
    if outcome.failed:
        logger.info("Failed: %d", outcome.failed)
    if args.verbose:
        for result in outcome.results:
            if result.error is not None:
                logger.debug("%s -> %s: %s", result.url, result.error.type, result.error.message)
    return 0


def _list_runs(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    index = ReportsIndex(Path(args.data_dir).resolve())
    sys.stdout.write(json.dumps({"runs": index.read()}, ensure_ascii=False, indent=2) + "\n")
    sys.stdout.flush()
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "runs":
        code = _list_runs(args)
    else:
        code = _run(args)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
