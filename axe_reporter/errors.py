"""Exception types raised across the audit pipeline."""

from __future__ import annotations


class ReporterError(Exception):
    """Base class for errors raised by axe_reporter."""


class FetchError(ReporterError):
    """A remote document (sitemap or engine script) could not be retrieved."""

    def __init__(self, url: str, status: int | None = None, reason: str = "") -> None:
        self.url = url
        self.status = status
        detail = f" ({status})" if status is not None else ""
        if reason:
            detail += f": {reason}"
        super().__init__(f"Failed to fetch {url}{detail}")


class ParseError(ReporterError):
    """A sitemap or stored result document is malformed."""


class ValidationError(ReporterError):
    """A URL or configuration value is not acceptable."""


class AuditTimeoutError(ReporterError, TimeoutError):
    """Navigation or the audit itself exceeded the configured bound."""


class PageSizeExceeded(ReporterError):
    """A response advertised a body larger than the configured maximum."""

    def __init__(self, url: str, content_length: int, limit: int) -> None:
        self.url = url
        self.content_length = content_length
        self.limit = limit
        super().__init__(
            f"Page size exceeds limit: {content_length} bytes (limit {limit}) for {url}"
        )


class InvalidResultError(ReporterError):
    """The accessibility engine returned something other than a result object."""
