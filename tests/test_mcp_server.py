"""Tests for the MCP tool functions."""

import json

import pytest

from axe_reporter import mcp_server
from axe_reporter.reports import aggregate_run

from conftest import axe_result

RUN_ID = "2024-05-01_03-00-00"


@pytest.fixture
def data_root(tmp_path, monkeypatch):
    root = tmp_path / "data"
    json_dir = root / "results" / RUN_ID / "_json"
    json_dir.mkdir(parents=True)
    (json_dir / "example-com.json").write_text(
        json.dumps(axe_result("https://example.com/")), encoding="utf-8"
    )
    aggregate_run(root / "results" / RUN_ID, root)
    monkeypatch.setenv("AXE_REPORTER_DATA", str(root))
    return root


@pytest.mark.asyncio
async def test_list_runs(data_root):
    runs = await mcp_server.list_runs()
    assert [entry["runId"] for entry in runs] == [RUN_ID]


@pytest.mark.asyncio
async def test_get_run(data_root):
    summary = await mcp_server.get_run(RUN_ID)
    assert summary["totalPages"] == 1


@pytest.mark.asyncio
async def test_get_unknown_run(data_root):
    with pytest.raises(ValueError):
        await mcp_server.get_run("1999-01-01_00-00-00")
