"""Data models used throughout the audit pipeline."""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .settings import Settings

IMPACT_LEVELS = ("minor", "moderate", "serious", "critical")
RUN_ID_FORMAT = "%Y-%m-%d_%H-%M-%S"


def make_run_id(moment: datetime) -> str:
    """Format a timestamp as a lexically sortable run identifier."""
    return moment.strftime(RUN_ID_FORMAT)


@dataclass(frozen=True)
class Run:
    """One execution of the pipeline and the settings it was started with."""

    run_id: str
    started_at: datetime
    settings: Settings
    output_dir: Path

    @property
    def json_dir(self) -> Path:
        return self.output_dir / "_json"

    @property
    def images_dir(self) -> Path:
        return self.output_dir / "images"

    @classmethod
    def create(cls, results_root: Path, settings: Settings, now: Optional[datetime] = None) -> "Run":
        started_at = now or datetime.now()
        run_id = make_run_id(started_at)
        return cls(
            run_id=run_id,
            started_at=started_at,
            settings=settings,
            output_dir=results_root / run_id,
        )


@dataclass(frozen=True)
class PageError:
    """Structured failure detail captured instead of raising."""

    message: str
    type: str
    stack: str
    timestamp: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "PageError":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(
            message=str(exc) or type(exc).__name__,
            type=type(exc).__name__,
            stack=stack,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "message": self.message,
            "type": self.type,
            "stack": self.stack,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class PageResult:
    """Outcome of auditing a single URL within a run."""

    url: str
    success: bool
    base_filename: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    screenshot_path: Optional[str] = None
    artifact_path: Optional[Path] = None
    error: Optional[PageError] = None

    @classmethod
    def succeeded(
        cls,
        url: str,
        base_filename: str,
        payload: Dict[str, Any],
        artifact_path: Path,
        screenshot_path: Optional[str] = None,
    ) -> "PageResult":
        return cls(
            url=url,
            success=True,
            base_filename=base_filename,
            payload=payload,
            screenshot_path=screenshot_path,
            artifact_path=artifact_path,
        )

    @classmethod
    def failed(cls, url: str, exc: BaseException) -> "PageResult":
        return cls(url=url, success=False, error=PageError.from_exception(exc))


@dataclass(frozen=True)
class ResponseInfo:
    """Subset of an HTTP response exposed to page observers."""

    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def content_length(self) -> Optional[int]:
        raw = None
        for key, value in self.headers.items():
            if key.lower() == "content-length":
                raw = value
                break
        if raw is None:
            return None
        try:
            return int(str(raw).strip())
        except ValueError:
            return None


@dataclass(frozen=True)
class SecurityRejection:
    """A candidate URL turned away by the security policy."""

    url: str
    reason: str


@dataclass
class RunOutcome:
    """Final tally returned by the pipeline."""

    run: Optional[Run]
    results: List[PageResult]
    summary: Optional[Dict[str, Any]] = None

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful
