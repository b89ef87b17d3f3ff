"""Utility helpers for URL validation, filenames and artifact writes."""

from __future__ import annotations

import hashlib
import os
import re
import tempfile
import unicodedata
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

from .errors import ValidationError

SEGMENT_PATTERN = re.compile(r"[^a-zA-Z0-9\-_]+")
MAX_BASE_LENGTH = 120
TRUNCATED_BASE_LENGTH = 110


def _read_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


# mkstemp creates 0600 files; artifacts get the permissions a plain open() would give.
FILE_MODE = 0o666 & ~_read_umask()


def is_http_url(value: object) -> bool:
    """Return True for well-formed absolute http(s) URLs."""
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if not trimmed.startswith(("http://", "https://")):
        return False
    try:
        parsed = urlparse(trimmed)
        # Accessing .port validates the netloc.
        parsed.port
    except ValueError:
        return False
    return bool(parsed.hostname)


def sanitize_segment(segment: str) -> str:
    """Reduce a URL segment to lowercase ASCII letters, digits, dashes and underscores."""
    normalized = unicodedata.normalize("NFKD", segment)
    normalized = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    normalized = SEGMENT_PATTERN.sub("-", normalized).strip("-")
    return normalized.lower()


def hash_suffix(value: str, length: int = 8) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def generate_base_filename(url: str) -> str:
    """Derive a stable, filesystem-friendly base filename for a page URL."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("URL must be a non-empty string")

    trimmed = url.strip()
    parsed = urlparse(trimmed)
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        fallback = sanitize_segment(trimmed)[:80] or "invalid-url"
        return f"{fallback}-{hash_suffix(trimmed)}"

    host_segment = sanitize_segment(parsed.hostname) or "root"
    path_segments = [
        cleaned
        for cleaned in (sanitize_segment(part) for part in parsed.path.split("/") if part)
        if cleaned
    ]
    base = "-".join([host_segment, *path_segments])

    if parsed.query:
        base += f"-{hash_suffix('?' + parsed.query, 6)}"

    if len(base) > MAX_BASE_LENGTH:
        base = base[:TRUNCATED_BASE_LENGTH] + "-" + hash_suffix(base, 8)

    return base


def write_atomic(path: Path, data: Union[str, bytes]) -> None:
    """Replace ``path`` with ``data`` so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data.encode("utf-8") if isinstance(data, str) else data)
        os.chmod(tmp_name, FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
