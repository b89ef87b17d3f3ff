"""Tests for the command-line entry point."""

import asyncio
import json
import os
import signal
from pathlib import Path

import pytest

from axe_reporter import cli
from axe_reporter.errors import FetchError
from axe_reporter.models import RunOutcome


class StubPipeline:
    """Replaces ``AuditPipeline`` so no browser is launched."""

    instances = []
    error = None
    signal_during_run = False

    def __init__(self, config):
        self.config = config
        self.settings = None
        self.cancelled = False
        StubPipeline.instances.append(self)

    async def run(self, settings):
        self.settings = settings
        if StubPipeline.signal_during_run:
            os.kill(os.getpid(), signal.SIGTERM)
            await asyncio.sleep(0.01)
        if StubPipeline.error is not None:
            raise StubPipeline.error
        return RunOutcome(run=None, results=[])

    async def cancel(self):
        await asyncio.sleep(0.1)
        self.cancelled = True


@pytest.fixture
def stub_pipeline(monkeypatch):
    StubPipeline.instances = []
    StubPipeline.error = None
    StubPipeline.signal_during_run = False
    monkeypatch.setattr(cli, "AuditPipeline", StubPipeline)
    return StubPipeline


class TestParseArgs:
    def test_bare_invocation_runs(self):
        args = cli.parse_args([])
        assert args.command == "run"
        assert args.concurrency == 4

    def test_options_without_command_imply_run(self):
        args = cli.parse_args(["--sequential", "--block-domain", "10.0.0.0/8"])
        assert args.command == "run"
        assert args.sequential
        assert args.block_domain == ["10.0.0.0/8"]

    def test_runs_command(self):
        assert cli.parse_args(["runs", "--data-dir", "x"]).data_dir == Path("x")


def test_build_config(tmp_path):
    args = cli.parse_args(
        [
            "run",
            "--data-dir",
            str(tmp_path),
            "--per-domain",
            "3",
            "--delay",
            "0",
            "--no-screenshots",
            "--allow-domain",
            "example.com",
            "--no-sandbox",
        ]
    )
    config = cli.build_config(args)
    assert config.data_root == tmp_path.resolve()
    assert config.max_concurrent_per_domain == 3
    assert config.delay_between_requests == 0
    assert config.enable_screenshots is False
    assert config.allowed_domains == ["example.com"]
    assert config.enable_sandbox is False


class TestMain:
    def test_overrides_apply_to_settings(self, tmp_path, stub_pipeline):
        cli.main(
            [
                "run",
                "--data-dir",
                str(tmp_path),
                "--sitemap-url",
                " https://example.com/s.xml ",
                "--max-pages",
                "5000",
            ]
        )
        settings = stub_pipeline.instances[0].settings
        assert settings.sitemap_url == "https://example.com/s.xml"
        assert settings.max_pages == 1000

    def test_fatal_error_exits_non_zero(self, tmp_path, stub_pipeline):
        stub_pipeline.error = FetchError("https://example.com/s.xml", status=500)
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["run", "--data-dir", str(tmp_path)])
        assert excinfo.value.code == 1

    def test_runs_prints_index(self, tmp_path, capsys):
        cli.main(["runs", "--data-dir", str(tmp_path)])
        assert json.loads(capsys.readouterr().out) == {"runs": []}

    def test_stop_signal_cancel_completes_before_exit(self, tmp_path, stub_pipeline):
        stub_pipeline.signal_during_run = True
        cli.main(["run", "--data-dir", str(tmp_path)])
        assert stub_pipeline.instances[0].cancelled
