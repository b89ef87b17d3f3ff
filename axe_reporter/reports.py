"""Run aggregation and the durable reports index."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import IMPACT_LEVELS, RUN_ID_FORMAT
from .settings import Settings
from .utils import write_atomic

logger = logging.getLogger("axe_reporter")

SUMMARY_FILENAME = "summary.json"


def count_violations(payload: Dict[str, Any]) -> Dict[str, int]:
    """Count violation occurrences per impact level for one page."""
    counts = {level: 0 for level in IMPACT_LEVELS}
    for violation in payload.get("violations") or []:
        if not isinstance(violation, dict):
            continue
        impact = violation.get("impact")
        if impact not in counts:
            continue
        nodes = violation.get("nodes")
        counts[impact] += max(len(nodes), 1) if isinstance(nodes, list) else 1
    counts["total"] = sum(counts[level] for level in IMPACT_LEVELS)
    return counts


def _load_artifact(path: Path) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Skipping unreadable result %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping result %s: not a JSON object", path)
        return None
    return data


def _run_timestamp(run_id: str) -> Optional[str]:
    try:
        return datetime.strptime(run_id, RUN_ID_FORMAT).isoformat()
    except ValueError:
        return None


def _relative(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def build_summary(
    run_dir: Path,
    data_root: Path,
    settings: Optional[Settings] = None,
    run_timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """Compute aggregate statistics for every page artifact in ``run_dir``."""
    run_id = run_dir.name
    settings = settings or Settings()
    json_dir = run_dir / "_json"
    artifacts = sorted(json_dir.glob("*.json")) if json_dir.is_dir() else []

    totals = {level: 0 for level in IMPACT_LEVELS}
    pages: List[Dict[str, Any]] = []
    for artifact in artifacts:
        payload = _load_artifact(artifact)
        if payload is None:
            continue
        metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
        counts = count_violations(payload)
        for level in IMPACT_LEVELS:
            totals[level] += counts[level]
        pages.append(
            {
                "url": payload.get("url") or metadata.get("url") or "",
                "baseFilename": metadata.get("baseFilename") or artifact.stem,
                **counts,
            }
        )

    total_pages = len(pages)
    occurrence_rates = {
        level: round(totals[level] / total_pages, 2) if total_pages else 0
        for level in IMPACT_LEVELS
    }
    return {
        "runId": run_id,
        "runTimestamp": run_timestamp or _run_timestamp(run_id),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "resultsDir": _relative(run_dir, data_root),
        "totalPages": total_pages,
        "globalTotal": sum(totals.values()),
        "totals": totals,
        "occurrenceRates": occurrence_rates,
        "pages": pages,
        "settings": settings.to_dict(),
    }


class ReportsIndex:
    """JSON catalog of runs whose artifacts still exist on disk."""

    def __init__(self, data_root: Path, indentation: int = 2) -> None:
        self.data_root = data_root
        self.path = data_root / "reports" / "index.json"
        self.indentation = indentation

    def summary_path(self, run_id: str) -> Path:
        return self.data_root / "reports" / run_id / SUMMARY_FILENAME

    def _exists(self, value: Any) -> bool:
        return isinstance(value, str) and bool(value) and (self.data_root / value).exists()

    def reconcile(self, entries: List[Any]) -> List[Dict[str, Any]]:
        """Keep only entries whose summary and results directory are present."""
        return [
            entry
            for entry in entries
            if isinstance(entry, dict)
            and self._exists(entry.get("summaryJson"))
            and self._exists(entry.get("resultsDir"))
        ]

    def _read_raw(self) -> List[Any]:
        if not self.path.exists():
            return []
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Reports index %s is unreadable, treating as empty: %s", self.path, exc)
            return []
        if not isinstance(parsed, dict) or not isinstance(parsed.get("runs"), list):
            return []
        return parsed["runs"]

    def read(self) -> List[Dict[str, Any]]:
        """Return the reconciled list of runs, newest first."""
        return self.reconcile(self._read_raw())

    def upsert(self, entry: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Insert or replace ``entry`` by run id, reconcile and persist."""
        runs = [
            existing
            for existing in self._read_raw()
            if not (isinstance(existing, dict) and existing.get("runId") == entry["runId"])
        ]
        runs.append(entry)
        runs = self.reconcile(runs)
        runs.sort(key=lambda item: str(item.get("runId", "")), reverse=True)
        write_atomic(self.path, json.dumps({"runs": runs}, ensure_ascii=False, indent=self.indentation))
        return runs

    def read_summary(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored summary for an indexed run, if it is still valid."""
        if not run_id:
            return None
        match = next((entry for entry in self.read() if entry.get("runId") == run_id), None)
        if match is None:
            return None
        return _load_artifact(self.data_root / match["summaryJson"])


def aggregate_run(
    run_dir: Path,
    data_root: Path,
    settings: Optional[Settings] = None,
    run_timestamp: Optional[str] = None,
    indentation: int = 2,
) -> Dict[str, Any]:
    """Write the run summary and register the run in the reports index."""
    index = ReportsIndex(data_root, indentation=indentation)
    summary = build_summary(run_dir, data_root, settings=settings, run_timestamp=run_timestamp)
    summary_path = index.summary_path(summary["runId"])
    write_atomic(summary_path, json.dumps(summary, ensure_ascii=False, indent=indentation))

    run_settings = summary["settings"]
    entry = {
        "runId": summary["runId"],
        "runTimestamp": summary["runTimestamp"],
        "generatedAt": summary["generatedAt"],
        "summaryJson": _relative(summary_path, data_root),
        "resultsDir": summary["resultsDir"],
        "totalPages": summary["totalPages"],
        "globalTotal": summary["globalTotal"],
        "tags": run_settings["tags"],
        "mode": run_settings["mode"],
        "maxPages": run_settings["maxPages"],
        "frequency": run_settings["frequency"],
    }
    index.upsert(entry)
    logger.info(
        "Summary for %s: %d page(s), %d violation(s)",
        summary["runId"],
        summary["totalPages"],
        summary["globalTotal"],
    )
    return summary


def read_reports_index(data_root: Path) -> List[Dict[str, Any]]:
    return ReportsIndex(data_root).read()


def read_run_summary(data_root: Path, run_id: str) -> Optional[Dict[str, Any]]:
    return ReportsIndex(data_root).read_summary(run_id)
