"""User-facing run settings stored as JSON next to the reports."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger("axe_reporter")

ALLOWED_MODES = ("pc", "mobile")
ALLOWED_TAGS = (
    "wcag2a",
    "wcag2aa",
    "wcag2aaa",
    "wcag21a",
    "wcag21aa",
    "wcag22aa",
    "best-practice",
)
ALLOWED_FREQUENCIES = ("daily", "weekly", "monthly")
MIN_PAGES = 1
MAX_PAGES = 1000

DEFAULT_TAGS = ("wcag2aa",)
DEFAULT_MODE = "pc"
DEFAULT_MAX_PAGES = 100
DEFAULT_FREQUENCY = "daily"


@dataclass(frozen=True)
class Settings:
    """Snapshot of the settings a run was started with."""

    sitemap_url: str = ""
    tags: List[str] = field(default_factory=lambda: list(DEFAULT_TAGS))
    mode: str = DEFAULT_MODE
    max_pages: int = DEFAULT_MAX_PAGES
    frequency: str = DEFAULT_FREQUENCY

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "sitemapUrl": data["sitemap_url"],
            "tags": list(data["tags"]),
            "mode": data["mode"],
            "maxPages": data["max_pages"],
            "frequency": data["frequency"],
        }


def _normalize_tags(raw: Dict[str, Any]) -> List[str]:
    candidates: List[Any] = []
    if isinstance(raw.get("tags"), list) and raw["tags"]:
        candidates = raw["tags"]
    elif isinstance(raw.get("tag"), str):
        candidates = [raw["tag"]]
    tags = [
        tag.strip()
        for tag in candidates
        if isinstance(tag, str) and tag.strip() in ALLOWED_TAGS
    ]
    return tags or list(DEFAULT_TAGS)


def _normalize_max_pages(value: Any) -> int:
    try:
        number = int(str(value if value is not None else DEFAULT_MAX_PAGES).strip())
    except ValueError:
        return DEFAULT_MAX_PAGES
    return min(max(number, MIN_PAGES), MAX_PAGES)


def normalize_settings(raw: Any) -> Settings:
    """Coerce arbitrary JSON into a valid ``Settings`` object."""
    if not isinstance(raw, dict):
        return Settings()

    sitemap_url = raw.get("sitemapUrl")
    sitemap_url = sitemap_url.strip() if isinstance(sitemap_url, str) else ""

    mode = raw.get("mode")
    mode = mode.strip().lower() if isinstance(mode, str) else DEFAULT_MODE
    if mode not in ALLOWED_MODES:
        mode = DEFAULT_MODE

    frequency = raw.get("frequency")
    frequency = frequency.strip().lower() if isinstance(frequency, str) else DEFAULT_FREQUENCY
    if frequency not in ALLOWED_FREQUENCIES:
        frequency = DEFAULT_FREQUENCY

    return Settings(
        sitemap_url=sitemap_url,
        tags=_normalize_tags(raw),
        mode=mode,
        max_pages=_normalize_max_pages(raw.get("maxPages")),
        frequency=frequency,
    )


def load_settings(path: Path) -> Settings:
    """Read settings from disk, writing defaults the first time."""
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        defaults = Settings()
        path.write_text(json.dumps(defaults.to_dict(), indent=2), encoding="utf-8")
        logger.info("Created default settings at %s", path)
        return defaults

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read settings %s, using defaults: %s", path, exc)
        return Settings()
    return normalize_settings(raw)
