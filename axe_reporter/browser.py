"""Browser capability: page loading, screenshots and axe-core audits.

The pipeline only talks to the ``AuditBrowser`` / ``AuditPage`` protocols.
``PlaywrightAuditBrowser`` is the Chromium implementation used in
production; tests substitute lightweight fakes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import requests
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Response,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import VIEWPORTS, ReporterConfig
from .errors import AuditTimeoutError, FetchError, ValidationError
from .images import capture_type_for, encode_screenshot
from .models import ResponseInfo

logger = logging.getLogger("axe_reporter")

ResponseObserver = Callable[[ResponseInfo], None]

LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-gpu",
    "--memory-pressure-off",
    "--disable-extensions",
    "--disable-plugins",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
]

AXE_RUN_SCRIPT = """
async ({ options, locale }) => {
    if (locale) {
        axe.configure({ locale });
    }
    return await axe.run(document, options);
}
"""


class AuditPage(Protocol):
    """A single browser tab owned by one audit."""

    def add_response_observer(self, observer: ResponseObserver) -> None: ...

    def remove_response_observer(self, observer: ResponseObserver) -> None: ...

    async def goto(self, url: str, timeout: int) -> None: ...

    async def screenshot(self, screenshot_format: str, quality: int) -> bytes: ...

    async def audit(self, tags: Sequence[str], locale: str) -> Any: ...

    async def close(self) -> None: ...

    def is_closed(self) -> bool: ...


class AuditBrowser(Protocol):
    """Shared browser handing out pages to concurrent audits."""

    async def open_page(self) -> AuditPage: ...

    async def close(self) -> None: ...


def _read_source(source: str, timeout: float = 30.0) -> str:
    if source.startswith(("http://", "https://")):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(source, reason=str(exc)) from exc
        return response.text
    path = Path(source).expanduser()
    if not path.exists():
        raise ValidationError(f"axe-core source does not exist: {path}")
    return path.read_text(encoding="utf-8")


def load_axe_source(source: str) -> str:
    """Load the axe-core script from a URL or a local file."""
    logger.debug("Loading axe-core from %s", source)
    return _read_source(source)


def load_axe_locale(base: str, locale: str) -> Optional[Dict[str, Any]]:
    """Load the axe-core locale JSON, or ``None`` for the built-in English messages."""
    if not locale or locale == "en":
        return None
    raw = _read_source(f"{base.rstrip('/')}/{locale}.json")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid axe-core locale data for {locale!r}") from exc


class PlaywrightAuditPage:
    """``AuditPage`` backed by a Playwright page."""

    def __init__(
        self,
        page: Page,
        axe_source: str,
        locale_data: Optional[Dict[str, Any]],
        audit_timeout: int,
    ) -> None:
        self._page = page
        self._axe_source = axe_source
        self._locale_data = locale_data
        self._audit_timeout = audit_timeout
        self._observers: List[ResponseObserver] = []
        self._aborted: Optional[Exception] = None
        self._abort_task: Optional[asyncio.Task] = None
        self._page.on("response", self._on_response)

    def add_response_observer(self, observer: ResponseObserver) -> None:
        self._observers.append(observer)

    def remove_response_observer(self, observer: ResponseObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _on_response(self, response: Response) -> None:
        if self._aborted is not None:
            return
        info = ResponseInfo(url=response.url, status=response.status, headers=response.headers)
        for observer in list(self._observers):
            try:
                observer(info)
            except Exception as exc:  # pylint: disable=broad-except
                self._aborted = exc
                self._abort_task = asyncio.ensure_future(self._abort_load())
                return

    async def _abort_load(self) -> None:
        try:
            await self._page.close()
        except PlaywrightError as exc:
            logger.debug("Page already gone while aborting load: %s", exc)

    async def _settle_abort(self) -> None:
        task, self._abort_task = self._abort_task, None
        if task is not None:
            await task

    async def _raise_if_aborted(self, cause: Optional[BaseException] = None) -> None:
        if self._aborted is not None:
            await self._settle_abort()
            raise self._aborted from cause

    async def goto(self, url: str, timeout: int) -> None:
        self._page.set_default_navigation_timeout(timeout)
        self._page.set_default_timeout(timeout)
        try:
            await self._page.goto(url, wait_until="load", timeout=timeout)
        except PlaywrightTimeoutError as exc:
            await self._raise_if_aborted(exc)
            raise AuditTimeoutError(f"Navigation timed out after {timeout}ms: {url}") from exc
        except PlaywrightError as exc:
            await self._raise_if_aborted(exc)
            raise
        await self._raise_if_aborted()

    async def screenshot(self, screenshot_format: str, quality: int) -> bytes:
        capture_type = capture_type_for(screenshot_format)
        options: Dict[str, Any] = {"type": capture_type, "full_page": False}
        if capture_type == "jpeg":
            options["quality"] = quality
        data = await self._page.screenshot(**options)
        return encode_screenshot(data, screenshot_format, quality)

    async def audit(self, tags: Sequence[str], locale: str) -> Any:
        await self._page.add_script_tag(content=self._axe_source)
        options = {"runOnly": {"type": "tag", "values": list(tags)}}
        try:
            return await asyncio.wait_for(
                self._page.evaluate(AXE_RUN_SCRIPT, {"options": options, "locale": self._locale_data}),
                timeout=self._audit_timeout / 1000,
            )
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as exc:
            raise AuditTimeoutError(
                f"Accessibility audit timed out after {self._audit_timeout}ms"
            ) from exc

    async def close(self) -> None:
        await self._settle_abort()
        self._page.remove_listener("response", self._on_response)
        if not self._page.is_closed():
            await self._page.close()

    def is_closed(self) -> bool:
        return self._page.is_closed()


class PlaywrightAuditBrowser:
    """Chromium instance shared by every audit in a run."""

    def __init__(self, config: ReporterConfig, mode: str = "pc") -> None:
        if mode not in VIEWPORTS:
            raise ValidationError(f"Invalid mode specified: {mode}")
        self.config = config
        self.mode = mode
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._axe_source = ""
        self._locale_data: Optional[Dict[str, Any]] = None

    async def start(self) -> "PlaywrightAuditBrowser":
        self._axe_source = await asyncio.to_thread(load_axe_source, self.config.axe_script)
        self._locale_data = await asyncio.to_thread(
            load_axe_locale, self.config.axe_locales, self.config.locale
        )

        if not self.config.enable_sandbox:
            logger.warning("Browser sandbox is disabled. This reduces security.")
        width, height = VIEWPORTS[self.mode]
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=LAUNCH_ARGS,
                chromium_sandbox=self.config.enable_sandbox,
            )
            self._context = await self._browser.new_context(
                viewport={"width": width, "height": height},
                bypass_csp=True,
            )
        except BaseException:
            await self.close()
            raise
        logger.info("Launched Chromium (%s viewport %dx%d)", self.mode, width, height)
        return self

    async def open_page(self) -> PlaywrightAuditPage:
        if self._context is None:
            raise RuntimeError("Browser has not been started or was already closed")
        page = await self._context.new_page()
        return PlaywrightAuditPage(
            page,
            self._axe_source,
            self._locale_data,
            audit_timeout=self.config.navigation_timeout,
        )

    async def close(self) -> None:
        context, browser, playwright = self._context, self._browser, self._playwright
        self._context = self._browser = self._playwright = None
        try:
            if context is not None:
                await context.close()
            if browser is not None:
                await browser.close()
        except PlaywrightError as exc:
            logger.error("Error during browser cleanup: %s", exc)
        finally:
            if playwright is not None:
                await playwright.stop()

    async def __aenter__(self) -> "PlaywrightAuditBrowser":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
