"""Sitemap resolution: turn a sitemap URL into a bounded list of page URLs."""

from __future__ import annotations

import logging
from typing import List, Optional, Set
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from .errors import FetchError, ParseError
from .utils import is_http_url

logger = logging.getLogger("axe_reporter")

HEADERS = {
    "User-Agent": "axe-auto-reporter/1.0 (+sitemap resolver)",
    "Accept": "application/xml,text/xml;q=0.9,*/*;q=0.8",
}


class SitemapResolver:
    """Depth-first sitemap walker.

    One instance serves one resolution: the visited set and the collected
    URLs live on the instance, so separate runs never share state.
    """

    def __init__(
        self,
        max_pages: int,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.max_pages = max_pages
        self.session = session or requests.Session()
        self.timeout = timeout
        self.visited: Set[str] = set()
        self.collected: List[str] = []
        self._seen: Set[str] = set()

    @property
    def is_full(self) -> bool:
        return len(self.collected) >= self.max_pages

    def resolve(self, sitemap_url: str) -> List[str]:
        if not sitemap_url or not sitemap_url.strip():
            logger.warning("No sitemap URL configured; nothing to resolve")
            return []
        if self.max_pages > 0:
            self._collect(sitemap_url.strip())
        if not self.collected:
            logger.warning("Sitemap %s yielded no URLs", sitemap_url)
        else:
            logger.info(
                "Collected %d URL(s) from %s (limit %d)",
                len(self.collected),
                sitemap_url,
                self.max_pages,
            )
        return list(self.collected)

    def _fetch(self, url: str) -> bytes:
        logger.debug("Fetching sitemap %s", url)
        try:
            response = self.session.get(
                url, headers=HEADERS, timeout=self.timeout, allow_redirects=True
            )
        except requests.RequestException as exc:
            raise FetchError(url, reason=str(exc)) from exc
        if not response.ok:
            raise FetchError(url, status=response.status_code)
        return response.content

    def _collect(self, sitemap_url: str) -> None:
        if self.is_full or sitemap_url in self.visited:
            return
        self.visited.add(sitemap_url)

        soup = BeautifulSoup(self._fetch(sitemap_url), "xml")
        root = soup.find(True)
        if root is None:
            raise ParseError(f"Empty or unreadable sitemap document: {sitemap_url}")

        if root.name == "urlset":
            for entry in root.find_all("url", recursive=False):
                if self.is_full:
                    break
                self._add_location(_location(entry))
        elif root.name == "sitemapindex":
            for entry in root.find_all("sitemap", recursive=False):
                if self.is_full:
                    break
                location = _location(entry)
                if not location:
                    continue
                child = urljoin(sitemap_url, location)
                if not is_http_url(child):
                    logger.debug("Skipping nested sitemap with bad location %r", location)
                    continue
                self._collect(child)
        else:
            raise ParseError(f"Unsupported sitemap root element in {sitemap_url}: {root.name}")

    def _add_location(self, location: Optional[str]) -> None:
        if not location or not is_http_url(location):
            if location:
                logger.debug("Dropping malformed sitemap location %r", location)
            return
        if location in self._seen:
            return
        self._seen.add(location)
        self.collected.append(location)


def _location(entry) -> Optional[str]:
    loc = entry.find("loc")
    if loc is None:
        return None
    text = loc.get_text(strip=True)
    return text or None


def resolve_sitemap(
    sitemap_url: str,
    max_pages: int,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> List[str]:
    """Collect up to ``max_pages`` distinct page URLs reachable from ``sitemap_url``."""
    return SitemapResolver(max_pages, session=session, timeout=timeout).resolve(sitemap_url)
