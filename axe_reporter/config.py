"""Configuration objects and constants for the audit pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from .errors import ValidationError

VIEWPORTS: Dict[str, Tuple[int, int]] = {
    "pc": (1024, 768),
    "mobile": (375, 812),
}
SCREENSHOT_FORMATS = ("png", "jpeg", "webp")
DEFAULT_AXE_VERSION = "4.10.2"
DEFAULT_AXE_SCRIPT = f"https://cdn.jsdelivr.net/npm/axe-core@{DEFAULT_AXE_VERSION}/axe.min.js"
DEFAULT_AXE_LOCALES = f"https://cdn.jsdelivr.net/npm/axe-core@{DEFAULT_AXE_VERSION}/locales"
MAX_PAGE_SIZE_LIMIT = 1024 * 1024 * 1024


@dataclass
class ReporterConfig:
    """Top-level settings that control crawling, auditing and reporting."""

    data_root: Path = Path("data")
    locale: str = "ja"
    concurrency: int = 4
    enable_concurrency: bool = True
    enable_screenshots: bool = True
    screenshot_format: str = "webp"
    screenshot_quality: int = 80
    json_indentation: int = 2
    navigation_timeout: int = 45_000
    allowed_domains: List[str] = field(default_factory=list)
    blocked_domains: List[str] = field(default_factory=list)
    enable_sandbox: bool = True
    max_page_size: int = 8 * 1024 * 1024
    max_concurrent_per_domain: int = 2
    delay_between_requests: int = 1000
    sitemap_timeout: float = 30.0
    axe_script: str = DEFAULT_AXE_SCRIPT
    axe_locales: str = DEFAULT_AXE_LOCALES

    @property
    def settings_path(self) -> Path:
        return self.data_root / "settings.json"

    @property
    def results_root(self) -> Path:
        return self.data_root / "results"

    @property
    def reports_root(self) -> Path:
        return self.data_root / "reports"

    @property
    def index_path(self) -> Path:
        return self.reports_root / "index.json"


def _in_range(value: object, low: float, high: float) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and low <= value <= high
    )


def validate_config(config: ReporterConfig) -> List[str]:
    """Return a list of human readable problems with ``config``."""
    errors: List[str] = []
    if not isinstance(config.locale, str) or not config.locale.strip():
        errors.append("locale must be a non-empty string")
    if not _in_range(config.concurrency, 1, 10):
        errors.append("concurrency must be a number between 1 and 10")
    if not isinstance(config.enable_concurrency, bool):
        errors.append("enable_concurrency must be a boolean")
    if config.screenshot_format not in SCREENSHOT_FORMATS:
        errors.append(f"screenshot_format must be one of {', '.join(SCREENSHOT_FORMATS)}")
    if not _in_range(config.screenshot_quality, 0, 100):
        errors.append("screenshot_quality must be a number between 0 and 100")
    if not _in_range(config.json_indentation, 0, 10):
        errors.append("json_indentation must be a number between 0 and 10")
    if not _in_range(config.navigation_timeout, 1000, 300_000):
        errors.append("navigation_timeout must be a number between 1000 and 300000 milliseconds")
    if not isinstance(config.allowed_domains, list):
        errors.append("allowed_domains must be a list")
    if not isinstance(config.blocked_domains, list):
        errors.append("blocked_domains must be a list")
    if not isinstance(config.enable_sandbox, bool):
        errors.append("enable_sandbox must be a boolean")
    if not _in_range(config.max_page_size, 0, MAX_PAGE_SIZE_LIMIT):
        errors.append("max_page_size must be a number between 0 and 1GB")
    if not _in_range(config.max_concurrent_per_domain, 1, 10):
        errors.append("max_concurrent_per_domain must be a number between 1 and 10")
    if not _in_range(config.delay_between_requests, 0, 60_000):
        errors.append("delay_between_requests must be a number between 0 and 60000 milliseconds")
    return errors


def ensure_valid(config: ReporterConfig) -> ReporterConfig:
    """Raise ``ValidationError`` when ``config`` has any problems."""
    errors = validate_config(config)
    if errors:
        raise ValidationError("Invalid configuration: " + "; ".join(errors))
    return config
