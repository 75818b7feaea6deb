"""
Resource Loading Monitor
========================

Watches a page load and decides whether extraction is running against a
fully loaded page or a degraded one.

A page is degraded when:
- a critical resource (Maps JS bundles, review RPCs) failed to load
- more than ``max_failed_resources`` requests failed overall
- the observation window ran out before the DOM was complete and review
  cards had rendered

``observe`` never raises. When observation itself fails the page is
reported as degraded.
"""

import logging
import re
import time
from typing import Callable, Iterable, Sequence, Tuple

from ...domain.models import ResourceStatus
from ..browser.page_handle import PageHandle, ResourceEvent
from .retry import attempt
from .selectors import REVIEW_CONTAINER_SELECTORS

logger = logging.getLogger(__name__)

DEFAULT_CRITICAL_PATTERNS: Tuple[str, ...] = (
    r"maps\.googleapis\.com",
    r"/maps/_/js/",
    r"/maps/api/js",
    r"/maps/preview/review",
    r"maps[^?#]*\.js(\?|#|$)",
)


class ResourceMonitor:
    """
    Page load health check.

    Usage:
        monitor = ResourceMonitor()
        status = monitor.observe(page, timeout_ms=10000)
        if status.degraded_mode:
            ...
    """

    def __init__(
        self,
        critical_patterns: Iterable[str] = DEFAULT_CRITICAL_PATTERNS,
        max_failed_resources: int = 5,
        poll_interval: float = 0.5,
        container_selectors: Sequence[str] = REVIEW_CONTAINER_SELECTORS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._critical = [re.compile(p, re.IGNORECASE) for p in critical_patterns]
        self.max_failed_resources = max_failed_resources
        self.poll_interval = poll_interval
        self.container_selectors = tuple(container_selectors)
        self._clock = clock

    def is_critical(self, url: str) -> bool:
        return any(p.search(url) for p in self._critical)

    def observe(self, page: PageHandle, timeout_ms: float = 10000) -> ResourceStatus:
        start = self._clock()
        try:
            dom_complete = page.wait_for(
                lambda: self._dom_ready(page),
                timeout=max(0.0, timeout_ms / 1000.0),
                poll_interval=self.poll_interval,
            )
            events_result = attempt(page.resource_events, max_attempts=2, label="resource observation")
            events = events_result.value or []
            status = self.classify(
                events,
                dom_complete=dom_complete,
                elapsed_ms=(self._clock() - start) * 1000,
            )
            if not events_result.succeeded and not status.degraded_mode:
                status = ResourceStatus(
                    critical_resources_loaded=status.critical_resources_loaded,
                    failed_resources=status.failed_resources,
                    loading_time_ms=status.loading_time_ms,
                    degraded_mode=True,
                )
        except Exception as e:
            logger.warning(f"Resource observation failed, assuming degraded page: {e}")
            return ResourceStatus(
                critical_resources_loaded=False,
                failed_resources=(),
                loading_time_ms=(self._clock() - start) * 1000,
                degraded_mode=True,
            )

        if status.degraded_mode:
            logger.warning(
                f"Degraded mode: {len(status.failed_resources)} failed resources, "
                f"critical loaded={status.critical_resources_loaded}, dom complete={dom_complete}"
            )
        else:
            logger.info(f"Page resources loaded in {status.loading_time_ms:.0f}ms")
        return status

    def classify(self, events: Iterable[ResourceEvent], dom_complete: bool, elapsed_ms: float) -> ResourceStatus:
        """Pure classification of already collected network events."""
        failed = tuple(dict.fromkeys(e.url or "<unknown>" for e in events if e.failed))
        critical_failed = [url for url in failed if self.is_critical(url)]

        degraded = (
            bool(critical_failed)
            or len(failed) > self.max_failed_resources
            or not dom_complete
        )
        return ResourceStatus(
            critical_resources_loaded=not critical_failed,
            failed_resources=failed,
            loading_time_ms=elapsed_ms,
            degraded_mode=degraded,
        )

    def _dom_ready(self, page: PageHandle) -> bool:
        if page.ready_state() != "complete":
            return False
        return any(page.query_all(selector) for selector in self.container_selectors)
