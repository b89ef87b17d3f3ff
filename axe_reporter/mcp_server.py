"""MCP server exposing the reports index and one-shot audit runs."""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .config import ReporterConfig
from .pipeline import run_pipeline
from .reports import read_reports_index, read_run_summary
from .settings import MAX_PAGES, MIN_PAGES, load_settings

logger = logging.getLogger("axe_reporter.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="axe-reporter")


def _data_root() -> Path:
    return Path(os.environ.get("AXE_REPORTER_DATA", "data")).resolve()


@mcp.tool()
async def list_runs() -> List[Dict[str, Any]]:
    """List audit runs whose summary and results are still on disk, newest first."""
    return read_reports_index(_data_root())


@mcp.tool()
async def get_run(run_id: str) -> Dict[str, Any]:
    """Return the summary statistics of one audit run."""
    summary = read_run_summary(_data_root(), run_id)
    if summary is None:
        raise ValueError(f"Unknown or expired run: {run_id}")
    return summary


@mcp.tool()
async def run_audit(sitemap_url: Optional[str] = None, max_pages: Optional[int] = None) -> Dict[str, Any]:
    """Audit the pages of a sitemap and return the run summary."""
    config = ReporterConfig(data_root=_data_root())
    settings = load_settings(config.settings_path)
    overrides: Dict[str, Any] = {}
    if sitemap_url:
        overrides["sitemap_url"] = sitemap_url.strip()
    if max_pages is not None:
        overrides["max_pages"] = min(max(max_pages, MIN_PAGES), MAX_PAGES)
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    outcome = await run_pipeline(config, settings=settings)
    return {
        "runId": outcome.run.run_id if outcome.run else None,
        "successful": outcome.successful,
        "failed": outcome.failed,
        "summary": outcome.summary,
        "errors": [
            {"url": result.url, **result.error.to_dict()}
            for result in outcome.results
            if result.error is not None
        ],
    }


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
