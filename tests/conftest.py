"""Shared fakes for the HTTP session and browser capability."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import pytest
import requests

from axe_reporter.config import ReporterConfig
from axe_reporter.models import ResponseInfo

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeResponse:
    def __init__(self, status_code: int = 200, content: Union[str, bytes] = b"") -> None:
        self.status_code = status_code
        self.content = content.encode("utf-8") if isinstance(content, str) else content

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class FakeSession:
    """Minimal stand-in for ``requests.Session`` serving canned documents."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes = routes or {}
        self.requested: List[str] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requested.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, b"")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, tuple):
            status, body = route
            return FakeResponse(status, body)
        return FakeResponse(200, route)


def urlset(*locations: str) -> str:
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locations)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{entries}</urlset>"
    )


def sitemapindex(*locations: str) -> str:
    entries = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locations)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{entries}</sitemapindex>"
    )


def axe_result(url: str, impacts: tuple = ("serious",)) -> Dict[str, Any]:
    return {
        "url": url,
        "violations": [
            {
                "id": f"rule-{position}",
                "impact": impact,
                "nodes": [{"target": ["h1"], "html": "<h1></h1>", "element": {"ref": position}}],
            }
            for position, impact in enumerate(impacts)
        ],
        "passes": [],
    }


class FakePage:
    """In-memory ``AuditPage`` driven by per-URL behaviour dictionaries."""

    def __init__(self, browser: "FakeBrowser") -> None:
        self.browser = browser
        self.observers: List[Any] = []
        self.closed = False
        self.url: Optional[str] = None
        self.screenshots = 0

    def _behaviour(self) -> Dict[str, Any]:
        return self.browser.behaviours.get(self.url or "", {})

    def add_response_observer(self, observer: Any) -> None:
        self.observers.append(observer)

    def remove_response_observer(self, observer: Any) -> None:
        self.observers.remove(observer)

    async def goto(self, url: str, timeout: int) -> None:
        self.url = url
        self.browser.navigations.append((url, timeout))
        behaviour = self._behaviour()
        if "goto_error" in behaviour:
            raise behaviour["goto_error"]
        for headers in behaviour.get("responses", []):
            info = ResponseInfo(url=url, status=200, headers=headers)
            for observer in list(self.observers):
                observer(info)

    async def screenshot(self, screenshot_format: str, quality: int) -> bytes:
        self.screenshots += 1
        return PNG_BYTES

    async def audit(self, tags: Any, locale: str) -> Any:
        self.browser.audits.append((self.url, list(tags), locale))
        behaviour = self._behaviour()
        if "audit_error" in behaviour:
            raise behaviour["audit_error"]
        if "result" in behaviour:
            return behaviour["result"]
        return axe_result(self.url or "")

    async def close(self) -> None:
        self.closed = True

    def is_closed(self) -> bool:
        return self.closed


class FakeBrowser:
    def __init__(self, behaviours: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self.behaviours = behaviours or {}
        self.pages: List[FakePage] = []
        self.navigations: List[Any] = []
        self.audits: List[Any] = []
        self.closed = False

    async def open_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def config(tmp_path):
    return ReporterConfig(
        data_root=tmp_path / "data",
        locale="en",
        screenshot_format="png",
        delay_between_requests=0,
        navigation_timeout=5000,
    )


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
