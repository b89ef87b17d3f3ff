"""Domain-aware dispatch of page audits.

Audits run as asyncio tasks under three constraints:

* a global ceiling on in-flight audits,
* a per-hostname ceiling on in-flight audits,
* a minimum delay between consecutive dispatches to the same hostname.

Hostnames only matter for this accounting; completion order across
hostnames is whatever the event loop produces.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .models import PageResult

logger = logging.getLogger("axe_reporter")

INVALID_DOMAIN = "invalid-domain"

AuditCallable = Callable[[str, int, int], Awaitable[PageResult]]


def extract_domain(url: str) -> str:
    """Return the hostname used for rate limiting."""
    try:
        return urlparse(url).hostname or INVALID_DOMAIN
    except ValueError:
        return INVALID_DOMAIN


@dataclass
class DomainQueueState:
    """Per-hostname gate and last dispatch time for one run."""

    gate: asyncio.Semaphore
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_dispatch: Optional[float] = None
    in_flight: int = 0


class CrawlScheduler:
    """Run ``audit(url, index, total)`` for every URL under the configured limits."""

    def __init__(
        self,
        audit: AuditCallable,
        concurrency: int = 4,
        max_per_domain: int = 2,
        delay_ms: int = 1000,
        enable_concurrency: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if concurrency < 1 or max_per_domain < 1:
            raise ValueError("concurrency limits must be at least 1")
        self.audit = audit
        self.concurrency = concurrency
        self.max_per_domain = max_per_domain
        self.delay = max(delay_ms, 0) / 1000.0
        self.enable_concurrency = enable_concurrency
        self.clock = clock
        self.dispatches: List[Tuple[str, float]] = []
        self._domains: Dict[str, DomainQueueState] = {}

    def _state_for(self, domain: str) -> DomainQueueState:
        state = self._domains.get(domain)
        if state is None:
            state = DomainQueueState(gate=asyncio.Semaphore(self.max_per_domain))
            self._domains[domain] = state
        return state

    async def _wait_for_slot(self, state: DomainQueueState) -> None:
        if state.last_dispatch is None:
            return
        while True:
            remaining = state.last_dispatch + self.delay - self.clock()
            if remaining <= 0:
                return
            await asyncio.sleep(remaining)

    async def _dispatch(
        self, url: str, index: int, total: int, global_gate: asyncio.Semaphore
    ) -> PageResult:
        domain = extract_domain(url)
        state = self._state_for(domain)
        try:
            async with state.gate:
                async with global_gate:
                    async with state.lock:
                        await self._wait_for_slot(state)
                        state.last_dispatch = self.clock()
                        self.dispatches.append((domain, state.last_dispatch))
                    state.in_flight += 1
                    try:
                        return await self.audit(url, index, total)
                    finally:
                        state.in_flight -= 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Audit task for %s raised unexpectedly", url)
            return PageResult.failed(url, exc)

    async def run(self, urls: Sequence[str]) -> List[PageResult]:
        """Audit every URL and wait for all of them to settle."""
        urls = list(urls)
        total = len(urls)
        self._domains = {}
        self.dispatches = []
        concurrent = self.enable_concurrency and total > 1
        global_gate = asyncio.Semaphore(self.concurrency if concurrent else 1)

        domain_count = len({extract_domain(url) for url in urls})
        logger.info("Processing %d URL(s) across %d domain(s)", total, domain_count)
        logger.info(
            "Rate limiting: max %d concurrent per domain, %dms delay",
            self.max_per_domain,
            int(self.delay * 1000),
        )

        try:
            if concurrent:
                logger.info("Using domain-aware scheduling with global concurrency %d", self.concurrency)
                results = await asyncio.gather(
                    *(
                        self._dispatch(url, index, total, global_gate)
                        for index, url in enumerate(urls, start=1)
                    )
                )
                return list(results)

            results = []
            for index, url in enumerate(urls, start=1):
                results.append(await self._dispatch(url, index, total, global_gate))
            return results
        finally:
            self._domains = {}
