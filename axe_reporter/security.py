"""Allow-list / block-list URL policy with domain suffix and CIDR rules."""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .models import SecurityRejection
from .utils import is_http_url

logger = logging.getLogger("axe_reporter")


class MalformedRule(ValueError):
    """A block-list entry could not be parsed."""


NUMERIC_HOST_PATTERN = re.compile(r"^(?:0x[0-9a-f]*|[0-9]+)(?:\.(?:0x[0-9a-f]*|[0-9]+)){0,3}\.?$")


def canonical_host(host: str) -> str:
    """Rewrite numeric IPv4 spellings to dotted-quad form.

    Browsers accept decimal, octal and hex parts as well as one to three
    part short forms (``167772160``, ``012.1.2.3``, ``0x0a.1.2.3``,
    ``10.1``) and all of them reach the same address as ``10.x.y.z``.
    Raises ``ValueError`` for numeric hosts no browser would resolve.
    """
    host = host.lower().strip("[]")
    if not NUMERIC_HOST_PATTERN.match(host):
        return host
    try:
        return socket.inet_ntoa(socket.inet_aton(host.rstrip(".")))
    except OSError as exc:
        raise ValueError(f"Invalid IPv4 host: {host}") from exc


def _hostname(url: str) -> str:
    host = urlparse(url.strip()).hostname
    if not host:
        raise ValueError(f"URL has no hostname: {url}")
    return canonical_host(host)


def _matches_domain(hostname: str, domain: str) -> bool:
    return hostname == domain or hostname.endswith(f".{domain}")


def ip_in_cidr(host: str, cidr: str) -> bool:
    """Return True when ``host`` is a literal IP address inside ``cidr``.

    Raises ``MalformedRule`` when ``cidr`` itself cannot be parsed. A host
    that is not an IP literal, or belongs to the other address family,
    simply does not match.
    """
    try:
        network = ipaddress.ip_network(cidr.strip(), strict=False)
    except ValueError as exc:
        raise MalformedRule(f"Invalid CIDR rule: {cidr}") from exc
    try:
        address = ipaddress.ip_address(canonical_host(host))
    except ValueError:
        return False
    return address.version == network.version and address in network


def check_url(
    url: str,
    allowed_domains: Sequence[str] = (),
    blocked_domains: Sequence[str] = (),
) -> Tuple[bool, str]:
    """Evaluate a URL and return ``(allowed, reason)``."""
    try:
        hostname = _hostname(url)
        for entry in blocked_domains:
            blocked = entry.strip().lower()
            if not blocked:
                continue
            if "/" in blocked:
                if ip_in_cidr(hostname, blocked):
                    return False, f"blocked by CIDR rule {blocked}"
            elif _matches_domain(hostname, blocked):
                return False, f"blocked domain {blocked}"

        allowed = [entry.strip().lower() for entry in allowed_domains if entry.strip()]
        if not allowed:
            return True, "allowed"
        for domain in allowed:
            if _matches_domain(hostname, domain):
                return True, "allowed"
        return False, "not in allow-list"
    except MalformedRule as exc:
        return False, str(exc)
    except (ValueError, AttributeError) as exc:
        return False, f"unparsable URL: {exc}"


def is_url_allowed(
    url: str,
    allowed_domains: Sequence[str] = (),
    blocked_domains: Sequence[str] = (),
) -> bool:
    allowed, _ = check_url(url, allowed_domains, blocked_domains)
    return allowed


@dataclass
class FilterResult:
    """Partition of candidate URLs produced by ``filter_urls``."""

    allowed: List[str] = field(default_factory=list)
    rejected: List[SecurityRejection] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)


def filter_urls(
    urls: Iterable[str],
    allowed_domains: Optional[Sequence[str]] = None,
    blocked_domains: Optional[Sequence[str]] = None,
) -> FilterResult:
    """Split candidates into allowed, policy-rejected and malformed URLs."""
    allowed_domains = allowed_domains or ()
    blocked_domains = blocked_domains or ()
    result = FilterResult()
    for raw in urls:
        url = raw.strip() if isinstance(raw, str) else raw
        if not url:
            continue
        if not is_http_url(url):
            result.invalid.append(url)
            continue
        ok, reason = check_url(url, allowed_domains, blocked_domains)
        if ok:
            result.allowed.append(url)
        else:
            result.rejected.append(SecurityRejection(url=url, reason=reason))

    if result.invalid:
        logger.warning("Skipping %d invalid URL(s)", len(result.invalid))
        for url in result.invalid:
            logger.warning("  - %s", url)
    if result.rejected:
        logger.warning("Skipping %d URL(s) blocked by security policy", len(result.rejected))
        for rejection in result.rejected:
            logger.warning("  - %s (%s)", rejection.url, rejection.reason)
    return result
