"""High-level orchestration: sitemap → filter → scheduled audits → summary."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import requests

from .auditor import PageAuditExecutor
from .browser import AuditBrowser, PlaywrightAuditBrowser
from .config import ReporterConfig, ensure_valid
from .models import Run, RunOutcome
from .reports import aggregate_run
from .scheduler import CrawlScheduler
from .security import filter_urls
from .settings import Settings, load_settings
from .sitemap import resolve_sitemap

logger = logging.getLogger("axe_reporter")

BrowserFactory = Callable[[ReporterConfig, str], Awaitable[AuditBrowser]]


async def launch_playwright_browser(config: ReporterConfig, mode: str) -> AuditBrowser:
    """Start a Chromium instance configured for ``mode``."""
    return await PlaywrightAuditBrowser(config, mode).start()


class AuditPipeline:
    """Runs the whole crawl-and-audit pipeline once per ``run()`` call."""

    def __init__(
        self,
        config: ReporterConfig,
        browser_factory: BrowserFactory = launch_playwright_browser,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.browser_factory = browser_factory
        self.session = session
        self._browser: Optional[AuditBrowser] = None

    async def cancel(self) -> None:
        """Close the active browser so in-flight page operations fail promptly."""
        browser, self._browser = self._browser, None
        if browser is not None:
            logger.warning("Cancelling run: closing browser")
            await browser.close()

    async def run(self, settings: Optional[Settings] = None) -> RunOutcome:
        config = ensure_valid(self.config)
        settings = settings or load_settings(config.settings_path)
        run = Run.create(config.results_root, settings)
        overall_start = time.perf_counter()

        urls = await asyncio.to_thread(
            resolve_sitemap,
            settings.sitemap_url,
            settings.max_pages,
            self.session,
            config.sitemap_timeout,
        )
        filtered = filter_urls(urls, config.allowed_domains, config.blocked_domains)
        if not filtered.allowed:
            logger.warning("No valid URLs to audit; skipping run %s", run.run_id)
            return RunOutcome(run=None, results=[])

        logger.info("Found %d valid URL(s) to process", len(filtered.allowed))
        if config.allowed_domains:
            logger.info("Security: domain allow-list active (%d domains)", len(config.allowed_domains))
        if config.blocked_domains:
            logger.info("Security: domain block-list active (%d domains)", len(config.blocked_domains))
        if config.max_page_size > 0:
            logger.info("Security: page size limit set to %dMB", round(config.max_page_size / 1024 / 1024))

        run.json_dir.mkdir(parents=True, exist_ok=True)
        if config.enable_screenshots:
            run.images_dir.mkdir(parents=True, exist_ok=True)

        browser = await self.browser_factory(config, settings.mode)
        self._browser = browser
        try:
            scheduler = CrawlScheduler(
                PageAuditExecutor(browser, run, config),
                concurrency=config.concurrency,
                max_per_domain=config.max_concurrent_per_domain,
                delay_ms=config.delay_between_requests,
                enable_concurrency=config.enable_concurrency,
            )
            results = await scheduler.run(filtered.allowed)
        finally:
            if self._browser is browser:
                self._browser = None
                await browser.close()

        summary = await asyncio.to_thread(
            aggregate_run,
            run.output_dir,
            config.data_root,
            settings,
            run.started_at.isoformat(),
            config.json_indentation,
        )
        outcome = RunOutcome(run=run, results=results, summary=summary)
        logger.info(
            "Run %s finished in %.2fs (%d/%d succeeded, %d failed)",
            run.run_id,
            time.perf_counter() - overall_start,
            outcome.successful,
            len(results),
            outcome.failed,
        )
        return outcome


async def run_pipeline(
    config: ReporterConfig,
    settings: Optional[Settings] = None,
    browser_factory: BrowserFactory = launch_playwright_browser,
    session: Optional[requests.Session] = None,
) -> RunOutcome:
    """Execute one pipeline run with a fresh ``AuditPipeline``."""
    return await AuditPipeline(config, browser_factory=browser_factory, session=session).run(settings)
