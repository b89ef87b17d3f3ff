"""Tests for the per-page audit executor."""

import json
from datetime import datetime

import pytest

from axe_reporter.auditor import PageAuditExecutor, make_size_guard, strip_element_handles
from axe_reporter.errors import AuditTimeoutError, PageSizeExceeded
from axe_reporter.models import ResponseInfo, Run
from axe_reporter.reports import build_summary
from axe_reporter.scheduler import CrawlScheduler
from axe_reporter.settings import Settings
from axe_reporter.utils import hash_suffix

from conftest import FakeBrowser, axe_result

URL = "https://example.com/about"


@pytest.fixture
def run(config):
    settings = Settings(sitemap_url="https://example.com/sitemap.xml", tags=["wcag2a", "wcag2aa"])
    return Run.create(config.results_root, settings, now=datetime(2024, 5, 1, 3, 0, 0))


def read_artifact(run, base):
    return json.loads((run.json_dir / f"{base}.json").read_text(encoding="utf-8"))


class TestSuccess:
    """Happy path persistence."""

    @pytest.mark.asyncio
    async def test_writes_artifact_with_metadata(self, config, run, fake_browser):
        result = await PageAuditExecutor(fake_browser, run, config)(URL, 1, 1)

        assert result.success
        assert result.base_filename == "example-com-about"
        stored = read_artifact(run, "example-com-about")
        assert stored["metadata"] == {
            "runId": "2024-05-01_03-00-00",
            "baseFilename": "example-com-about",
            "locale": "en",
            "screenshotPath": "results/2024-05-01_03-00-00/images/example-com-about.png",
        }
        assert stored["violations"][0]["nodes"][0]["element"] == {"ref": 0}
        assert (run.images_dir / "example-com-about.png").exists()

    @pytest.mark.asyncio
    async def test_passes_tags_and_locale(self, config, run, fake_browser):
        await PageAuditExecutor(fake_browser, run, config)(URL, 1, 1)
        assert fake_browser.audits == [(URL, ["wcag2a", "wcag2aa"], "en")]
        assert fake_browser.navigations == [(URL, config.navigation_timeout)]

    @pytest.mark.asyncio
    async def test_in_memory_payload_drops_element_handles(self, config, run, fake_browser):
        result = await PageAuditExecutor(fake_browser, run, config)(URL, 1, 1)
        node = result.payload["violations"][0]["nodes"][0]
        assert "element" not in node
        assert node["target"] == ["h1"]

    @pytest.mark.asyncio
    async def test_merges_existing_metadata(self, config, run):
        payload = axe_result(URL)
        payload["metadata"] = {"engine": "axe", "runId": "stale"}
        browser = FakeBrowser({URL: {"result": payload}})
        await PageAuditExecutor(browser, run, config)(URL, 1, 1)
        stored = read_artifact(run, "example-com-about")
        assert stored["metadata"]["engine"] == "axe"
        assert stored["metadata"]["runId"] == run.run_id

    @pytest.mark.asyncio
    async def test_screenshots_disabled(self, config, run, fake_browser):
        config.enable_screenshots = False
        result = await PageAuditExecutor(fake_browser, run, config)(URL, 1, 1)
        assert result.success
        assert result.screenshot_path is None
        assert fake_browser.pages[0].screenshots == 0
        assert read_artifact(run, "example-com-about")["metadata"]["screenshotPath"] is None

    @pytest.mark.asyncio
    async def test_page_released_and_observers_detached(self, config, run, fake_browser):
        await PageAuditExecutor(fake_browser, run, config)(URL, 1, 1)
        page = fake_browser.pages[0]
        assert page.closed
        assert page.observers == []


class TestFailures:
    """Failures are returned as data."""

    @pytest.mark.asyncio
    async def test_invalid_url_skips_browser(self, config, run, fake_browser):
        result = await PageAuditExecutor(fake_browser, run, config)("javascript:alert(1)", 1, 1)
        assert not result.success
        assert result.error.type == "ValidationError"
        assert fake_browser.pages == []

    @pytest.mark.asyncio
    async def test_invalid_index(self, config, run, fake_browser):
        result = await PageAuditExecutor(fake_browser, run, config)(URL, 0, 1)
        assert result.error.message == "Invalid index or total parameters"
        assert fake_browser.pages == []

    @pytest.mark.asyncio
    async def test_navigation_timeout(self, config, run):
        browser = FakeBrowser({URL: {"goto_error": AuditTimeoutError("Navigation timed out")}})
        result = await PageAuditExecutor(browser, run, config)(URL, 1, 1)
        assert not result.success
        assert result.error.type == "AuditTimeoutError"
        assert "AuditTimeoutError" in result.error.stack
        assert result.error.timestamp
        assert browser.pages[0].closed
        assert not run.json_dir.exists() or not any(run.json_dir.iterdir())

    @pytest.mark.asyncio
    async def test_oversized_page(self, config, run):
        config.max_page_size = 1000
        browser = FakeBrowser({URL: {"responses": [{"Content-Length": "5000"}]}})
        result = await PageAuditExecutor(browser, run, config)(URL, 1, 1)
        assert result.error.type == "PageSizeExceeded"
        assert browser.audits == []

    @pytest.mark.asyncio
    async def test_size_guard_disabled_when_zero(self, config, run):
        config.max_page_size = 0
        browser = FakeBrowser({URL: {"responses": [{"content-length": "999999999"}]}})
        result = await PageAuditExecutor(browser, run, config)(URL, 1, 1)
        assert result.success
        assert browser.pages[0].observers == []

    @pytest.mark.asyncio
    async def test_non_object_result(self, config, run):
        browser = FakeBrowser({URL: {"result": ["not", "a", "dict"]}})
        result = await PageAuditExecutor(browser, run, config)(URL, 1, 1)
        assert result.error.type == "InvalidResultError"

    @pytest.mark.asyncio
    async def test_browser_error(self, config, run):
        browser = FakeBrowser({URL: {"audit_error": RuntimeError("Target closed")}})
        result = await PageAuditExecutor(browser, run, config)(URL, 2, 3)
        assert result.error.type == "RuntimeError"
        assert result.error.message == "Target closed"
        assert browser.pages[0].closed


class TestHelpers:
    def test_size_guard(self):
        guard = make_size_guard(URL, 100)
        guard(ResponseInfo(url=URL, status=200, headers={"content-length": "100"}))
        guard(ResponseInfo(url=URL, status=200, headers={}))
        guard(ResponseInfo(url=URL, status=200, headers={"content-length": "garbage"}))
        with pytest.raises(PageSizeExceeded):
            guard(ResponseInfo(url=URL, status=200, headers={"Content-Length": "101"}))

    def test_strip_element_handles(self):
        payload = {"violations": [{"nodes": [{"element": 1, "html": "<a>"}]}, "junk"]}
        strip_element_handles(payload)
        assert payload["violations"][0]["nodes"] == [{"html": "<a>"}]


class TestFilenameClaims:
    """Distinct URLs in one run never share an artifact."""

    @pytest.mark.asyncio
    async def test_colliding_urls_get_distinct_artifacts(self, config, run, fake_browser):
        urls = ["https://example.com/a-b", "https://example.com/a/b", "http://example.com/A/B"]
        executor = PageAuditExecutor(fake_browser, run, config)
        results = await CrawlScheduler(executor, delay_ms=0, enable_concurrency=False).run(urls)

        names = [result.base_filename for result in results]
        assert names == [
            "example-com-a-b",
            "example-com-a-b-" + hash_suffix(urls[1], 8),
            "example-com-a-b-" + hash_suffix(urls[2], 8),
        ]
        summary = build_summary(run.output_dir, config.data_root)
        assert summary["totalPages"] == 3
        assert sorted(page["url"] for page in summary["pages"]) == sorted(urls)

    def test_same_url_keeps_its_name(self, config, run, fake_browser):
        executor = PageAuditExecutor(fake_browser, run, config)
        assert executor.claim_base_filename(URL) == executor.claim_base_filename(URL)
        assert executor.claim_base_filename(URL) == "example-com-about"
