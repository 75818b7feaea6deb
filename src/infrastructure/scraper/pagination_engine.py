"""
Pagination Engine
=================

Reveals reviews until a category reaches its target.

Each round: extract, merge by review ID, then reveal more (click a "more
reviews" control when one is present, otherwise scroll the review pane to
the bottom) and wait.

Stop conditions, checked in this order after every extraction:
- target reached                              -> target-reached
- two reveals in a row without a new review   -> no-more-content
- category timeout or session deadline passed -> timeout
- reveal count reached ``max_attempts``       -> error (partial results kept)

A reveal action that keeps failing after its retries also ends the run
with ``error``.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ...domain.collection_config import ScrollStrategy
from ...domain.errors import PageUnavailableError
from ...domain.models import PaginationResult, RawReview, StoppedReason
from ..browser.page_handle import ElementDescriptor, PageHandle
from .retry import BackoffPolicy, attempt
from .selectors import LOAD_MORE_SELECTORS, PANE_SELECTORS

logger = logging.getLogger(__name__)

ExtractionCallback = Callable[[], Sequence[RawReview]]
ProgressCallback = Callable[[int, int], None]

REVEAL_BACKOFF = BackoffPolicy(base_seconds=0.5, multiplier=2.0, max_seconds=5.0)

FIXED_DELAYS = {
    ScrollStrategy.AGGRESSIVE: 0.5,
    ScrollStrategy.CONSERVATIVE: 3.0,
}


@dataclass(frozen=True)
class PaginationOptions:
    target_count: int
    max_attempts: int = 150
    scroll_strategy: ScrollStrategy = ScrollStrategy.ADAPTIVE
    timeout: float = 30.0
    # Absolute clock reading after which the whole session must stop
    deadline: Optional[float] = None
    reveal_retries: int = 5
    stagnation_limit: int = 2


class AdaptiveDelay:
    """
    Post-reveal wait that tracks how the page responds.

    Productive, fast reveals shrink the wait by ``shrink``; unproductive or
    slow reveals grow it by ``grow``. Always kept within [minimum, maximum].
    """

    def __init__(
        self,
        base: float = 1.5,
        minimum: float = 0.5,
        maximum: float = 4.0,
        shrink: float = 0.8,
        grow: float = 1.5,
        fast_ms: float = 1000.0,
        slow_ms: float = 3000.0,
    ):
        self.minimum = minimum
        self.maximum = maximum
        self.shrink = shrink
        self.grow = grow
        self.fast_ms = fast_ms
        self.slow_ms = slow_ms
        self.current = min(max(base, minimum), maximum)
        self.adjustments = 0

    def record(self, productive: bool, reveal_ms: float) -> bool:
        """Update the delay from one reveal. Returns True when it changed."""
        previous = self.current
        if not productive or reveal_ms >= self.slow_ms:
            self.current = min(self.current * self.grow, self.maximum)
        elif reveal_ms <= self.fast_ms:
            self.current = max(self.current * self.shrink, self.minimum)

        changed = abs(self.current - previous) > 1e-9
        if changed:
            self.adjustments += 1
        return changed


class PaginationEngine:
    """
    Usage:
        engine = PaginationEngine()
        result = engine.paginate_for_target(
            page,
            PaginationOptions(target_count=100, timeout=30),
            lambda: selector_engine.extract(page, context).reviews,
        )
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock

    def paginate_for_target(
        self,
        page: PageHandle,
        options: PaginationOptions,
        extraction_callback: ExtractionCallback,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PaginationResult:
        start = self._clock()
        if options.target_count <= 0:
            return PaginationResult(0, 0, StoppedReason.TARGET_REACHED, 0.0)

        end = start + options.timeout
        if options.deadline is not None:
            end = min(end, options.deadline)

        delay = AdaptiveDelay() if options.scroll_strategy is ScrollStrategy.ADAPTIVE else None
        collected: Dict[str, RawReview] = {}
        pages = 0
        reveals = 0
        scrolls = 0
        clicks = 0
        stagnant = 0

        self._extract_into(extraction_callback, collected)
        pages += 1
        self._report(on_progress, len(collected), options.target_count)

        while True:
            if len(collected) >= options.target_count:
                reason = StoppedReason.TARGET_REACHED
                break
            if stagnant >= options.stagnation_limit:
                reason = StoppedReason.NO_MORE_CONTENT
                break
            if self._clock() >= end:
                reason = StoppedReason.TIMEOUT
                break
            if reveals >= options.max_attempts:
                logger.warning(f"Reveal cap of {options.max_attempts} reached with "
                               f"{len(collected)}/{options.target_count} reviews")
                reason = StoppedReason.ERROR
                break

            reveal_started = self._clock()
            outcome = attempt(
                lambda: self._reveal(page),
                max_attempts=options.reveal_retries,
                backoff=REVEAL_BACKOFF,
                sleep=page.pause,
                label="reveal",
            )
            reveal_ms = (self._clock() - reveal_started) * 1000
            reveals += 1
            if not outcome.succeeded:
                logger.warning(f"Reveal action failed: {outcome.last_error}")
                reason = StoppedReason.ERROR
                break
            if outcome.value == "click":
                clicks += 1
            else:
                scrolls += 1

            page.pause(delay.current if delay else FIXED_DELAYS[options.scroll_strategy])

            new_count = self._extract_into(extraction_callback, collected)
            pages += 1
            self._report(on_progress, len(collected), options.target_count)

            stagnant = 0 if new_count else stagnant + 1
            if delay:
                delay.record(productive=bool(new_count), reveal_ms=reveal_ms)

        reviews = tuple(list(collected.values())[:options.target_count])
        elapsed_ms = (self._clock() - start) * 1000
        logger.info(
            f"Pagination stopped ({reason.value}): {len(reviews)}/{options.target_count} reviews, "
            f"{reveals} reveals in {elapsed_ms:.0f}ms"
        )
        return PaginationResult(
            reviews_collected=len(reviews),
            pages_traversed=pages,
            stopped_reason=reason,
            elapsed_ms=elapsed_ms,
            reviews=reviews,
            scroll_attempts=scrolls,
            click_attempts=clicks,
            adaptive_adjustments=delay.adjustments if delay else 0,
        )

    # ── Internals ──────────────────────────────────────────────────

    @staticmethod
    def _extract_into(extraction_callback: ExtractionCallback, collected: Dict[str, RawReview]) -> int:
        try:
            reviews = extraction_callback()
        except PageUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Extraction callback failed: {e}")
            return 0

        added = 0
        for review in reviews:
            if review.id not in collected:
                collected[review.id] = review
                added += 1
        return added

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], current: int, target: int) -> None:
        if on_progress is None:
            return
        try:
            on_progress(min(current, target), target)
        except Exception as e:
            logger.debug(f"Progress callback failed: {e}")

    def _reveal(self, page: PageHandle) -> str:
        for selector in LOAD_MORE_SELECTORS:
            buttons = page.query_all(selector)
            if buttons:
                page.click(buttons[0])
                return "click"
        page.scroll_to_bottom(within=self._find_pane(page))
        return "scroll"

    @staticmethod
    def _find_pane(page: PageHandle) -> Optional[ElementDescriptor]:
        for selector in PANE_SELECTORS:
            panes: List[ElementDescriptor] = page.query_all(selector)
            if panes:
                return panes[0]
        return None
