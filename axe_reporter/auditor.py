"""Per-page audit execution: load, screenshot, audit, persist."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .browser import AuditBrowser, AuditPage, ResponseObserver
from .config import ReporterConfig
from .errors import InvalidResultError, PageSizeExceeded, ValidationError
from .images import save_screenshot
from .models import PageResult, ResponseInfo, Run
from .utils import generate_base_filename, hash_suffix, is_http_url, write_atomic

logger = logging.getLogger("axe_reporter")


def make_size_guard(url: str, limit: int) -> ResponseObserver:
    """Build a response observer rejecting responses larger than ``limit`` bytes."""

    def guard(response: ResponseInfo) -> None:
        length = response.content_length
        if length is not None and length > limit:
            raise PageSizeExceeded(response.url or url, length, limit)

    return guard


def strip_element_handles(results: Dict[str, Any]) -> None:
    """Drop raw DOM element references from violation nodes."""
    for violation in results.get("violations") or []:
        if isinstance(violation, dict) and isinstance(violation.get("nodes"), list):
            violation["nodes"] = [
                {key: value for key, value in node.items() if key != "element"}
                if isinstance(node, dict)
                else node
                for node in violation["nodes"]
            ]


class PageAuditExecutor:
    """Audit one URL at a time against a shared browser.

    Instances are callables matching the scheduler's ``audit(url, index,
    total)`` signature. Every failure is returned as a failed
    ``PageResult``; nothing but cancellation propagates.
    """

    def __init__(self, browser: AuditBrowser, run: Run, config: ReporterConfig) -> None:
        self.browser = browser
        self.run = run
        self.config = config
        self._claimed: Dict[str, str] = {}

    def claim_base_filename(self, url: str) -> str:
        """Reserve a base filename for ``url`` that no other URL in the run uses."""
        base = generate_base_filename(url)
        owner = self._claimed.setdefault(base, url)
        if owner != url:
            base = f"{base}-{hash_suffix(url, 8)}"
            self._claimed.setdefault(base, url)
        return base

    async def __call__(self, url: str, index: int, total: int) -> PageResult:
        if not is_http_url(url):
            return PageResult.failed(url, ValidationError("Invalid URL format"))
        if index < 1 or total < 1 or index > total:
            return PageResult.failed(url, ValidationError("Invalid index or total parameters"))

        url = url.strip()
        page: Optional[AuditPage] = None
        observers: List[ResponseObserver] = []
        try:
            logger.info("Processing %d/%d: %s", index, total, url)
            page = await self.browser.open_page()
            if self.config.max_page_size > 0:
                guard = make_size_guard(url, self.config.max_page_size)
                page.add_response_observer(guard)
                observers.append(guard)

            await page.goto(url, self.config.navigation_timeout)

            screenshot: Optional[bytes] = None
            if self.config.enable_screenshots:
                screenshot = await page.screenshot(
                    self.config.screenshot_format, self.config.screenshot_quality
                )

            results = await page.audit(self.run.settings.tags, self.config.locale)
            if not isinstance(results, dict):
                raise InvalidResultError("Invalid axe test results received")

            result = self._save(url, results, screenshot)
            logger.info("Completed %d/%d: %s", index, total, url)
            return result
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Failed to process URL %s: %s: %s", url, type(exc).__name__, exc)
            return PageResult.failed(url, exc)
        finally:
            await self._release(page, observers, index)

    def _save(self, url: str, results: Dict[str, Any], screenshot: Optional[bytes]) -> PageResult:
        base_filename = self.claim_base_filename(url)

        screenshot_ref: Optional[str] = None
        if screenshot:
            written = save_screenshot(
                screenshot, self.run.images_dir, base_filename, self.config.screenshot_format
            )
            screenshot_ref = _relative_to(written, self.config.data_root)

        metadata = {
            "runId": self.run.run_id,
            "baseFilename": base_filename,
            "locale": self.config.locale,
            "screenshotPath": screenshot_ref,
        }
        existing = results.get("metadata")
        results["metadata"] = {**existing, **metadata} if isinstance(existing, dict) else metadata

        artifact = self.run.json_dir / f"{base_filename}.json"
        indent = self.config.json_indentation or None
        write_atomic(artifact, json.dumps(results, ensure_ascii=False, indent=indent))

        strip_element_handles(results)
        return PageResult.succeeded(
            url=url,
            base_filename=base_filename,
            payload=results,
            artifact_path=artifact,
            screenshot_path=screenshot_ref,
        )

    async def _release(
        self, page: Optional[AuditPage], observers: List[ResponseObserver], index: int
    ) -> None:
        if page is None:
            return
        for observer in observers:
            page.remove_response_observer(observer)
        if page.is_closed():
            return
        try:
            await page.close()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to close page %d: %s", index, exc)


def _relative_to(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()
