"""
Comprehensive Collection Orchestrator
=====================================

Runs one collection: for each category in priority order (recent, worst,
best by default) switch the sort order, paginate toward the category
target, then merge the three lists with the deduplication service.

States: pending -> recent -> worst -> best -> deduplication -> complete,
or error when the page handle dies.

ARCHITECTURAL DECISION:
- Every component is injected so tests can run the whole flow against an
  in-memory page and a fake clock
- Recoverable failures (sort control missing, pagination stall, degraded
  resources, phase timeout, extraction exhausted) never abort the run;
  they become warnings in the result metadata
- ``timeouts.total_collection`` is the only cancellation: once it passes,
  remaining categories are skipped and deduplication runs on what was
  collected
- PageUnavailableError ends the session with status "error", but the
  result still carries everything collected before the failure
"""

import logging
import time
import uuid
from typing import Callable, Dict, Optional

from ..domain.collection_config import CollectionConfig
from ..domain.deduplication import ReviewDeduplicationService
from ..domain.errors import (
    CollectionError,
    CollectionTimeout,
    ExtractionExhausted,
    NavigationFailure,
    PageUnavailableError,
    PaginationStall,
    ResourceDegraded,
)
from ..domain.models import (
    CollectionPhase,
    CollectionSession,
    CollectionStatus,
    ComprehensiveCollectionResult,
    PhaseResult,
    RawReview,
    ResultMetadata,
    SortType,
    StoppedReason,
    Strategy,
)
from ..infrastructure.browser.page_handle import PageHandle
from ..infrastructure.diagnostics.diagnostic_store import DiagnosticStore
from ..infrastructure.scraper.pagination_engine import PaginationEngine, PaginationOptions
from ..infrastructure.scraper.resource_monitor import ResourceMonitor
from ..infrastructure.scraper.retry import BackoffPolicy, attempt
from ..infrastructure.scraper.selector_engine import ExtractionContext, SelectorEngine
from ..infrastructure.scraper.sort_navigation import METHOD_FALLBACK, SortNavigationService
from .progress_tracker import ProgressTracker

logger = logging.getLogger(__name__)

SORT_BACKOFF = BackoffPolicy(base_seconds=1.0, multiplier=2.0, max_seconds=5.0)


class CollectionOrchestrator:
    """
    Usage:
        orchestrator = CollectionOrchestrator.from_settings(get_settings(), store, tracker)
        result = orchestrator.collect(page, config, url="https://www.google.com/maps/place/...")
        print(result.metadata.total_unique)
    """

    def __init__(
        self,
        selector_engine: Optional[SelectorEngine] = None,
        sort_navigation: Optional[SortNavigationService] = None,
        pagination_engine: Optional[PaginationEngine] = None,
        resource_monitor: Optional[ResourceMonitor] = None,
        deduplication: Optional[ReviewDeduplicationService] = None,
        progress_tracker: Optional[ProgressTracker] = None,
        diagnostic_store: Optional[DiagnosticStore] = None,
        resource_timeout_ms: float = 10000,
        min_reviews_per_tier: int = 1,
        sort_backoff: BackoffPolicy = SORT_BACKOFF,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self.diagnostic_store = diagnostic_store
        self.selector_engine = selector_engine or SelectorEngine(diagnostic_store=diagnostic_store, clock=clock)
        self.sort_navigation = sort_navigation or SortNavigationService(clock=clock)
        self.pagination_engine = pagination_engine or PaginationEngine(clock=clock)
        self.resource_monitor = resource_monitor or ResourceMonitor(clock=clock)
        self.deduplication = deduplication or ReviewDeduplicationService()
        self.progress_tracker = progress_tracker or ProgressTracker(clock=clock)
        self.resource_timeout_ms = resource_timeout_ms
        self.min_reviews_per_tier = min_reviews_per_tier
        self.sort_backoff = sort_backoff

    @classmethod
    def from_settings(
        cls,
        settings,
        diagnostic_store: Optional[DiagnosticStore] = None,
        progress_tracker: Optional[ProgressTracker] = None,
    ) -> "CollectionOrchestrator":
        """Wire the default components from application Settings."""
        extraction = settings.extraction
        store = diagnostic_store if diagnostic_store is not None else DiagnosticStore(
            max_entries=settings.diagnostics.max_entries,
            max_memory_mb=settings.diagnostics.max_memory_mb,
            retention_hours=settings.diagnostics.retention_hours,
        )
        return cls(
            selector_engine=SelectorEngine(diagnostic_store=store, degraded_penalty=extraction.degraded_penalty),
            resource_monitor=ResourceMonitor(
                critical_patterns=extraction.critical_resource_patterns,
                max_failed_resources=extraction.max_failed_resources,
            ),
            sort_navigation=SortNavigationService(timeout=settings.collection.sort_navigation_timeout),
            progress_tracker=progress_tracker,
            diagnostic_store=store,
            resource_timeout_ms=extraction.resource_timeout_ms,
            min_reviews_per_tier=extraction.min_reviews_per_tier,
        )

    # ── Public API ─────────────────────────────────────────────────

    def collect(
        self,
        page: PageHandle,
        config: Optional[CollectionConfig] = None,
        url: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ComprehensiveCollectionResult:
        """
        Run a full collection. Raises ValidationError for a bad config;
        every other failure is reported in the returned result.
        """
        config = config or CollectionConfig()
        config.validate()

        session = CollectionSession(
            session_id=session_id or f"col-{uuid.uuid4().hex[:12]}",
            config=config,
            url=url or "",
            started_at=self._clock(),
        )
        deadline = session.started_at + config.timeouts.total_collection
        self.progress_tracker.start_session(session.session_id, config.target_counts)
        logger.info(f"Collection {session.session_id} started (target {config.target_counts.total})")

        try:
            if url:
                page.navigate(url)
                self.sort_navigation.forget(page)

            session.resource_status = self.resource_monitor.observe(page, timeout_ms=self.resource_timeout_ms)
            if session.resource_status.degraded_mode:
                self._warn(session, ResourceDegraded(
                    f"{len(session.resource_status.failed_resources)} resources failed; "
                    "extraction confidence reduced"
                ))

            for sort_type in config.priority_order:
                target = config.target_counts.for_sort(sort_type)
                if target <= 0:
                    session.phase_results[sort_type] = PhaseResult(
                        category=sort_type, collected=0, target=0, success=True, sort_method="skipped"
                    )
                    continue
                if self._clock() >= deadline:
                    session.timed_out = True
                    self._warn(session, CollectionTimeout(
                        f"total collection timeout reached before '{sort_type.value}'; phase skipped"
                    ))
                    session.phase_results[sort_type] = PhaseResult(
                        category=sort_type, collected=0, target=target, success=False,
                        stopped_reason=StoppedReason.TIMEOUT, error="skipped: session deadline passed",
                    )
                    continue
                self._run_phase(page, session, sort_type, target, deadline)

        except PageUnavailableError as e:
            session.status = CollectionStatus.ERROR
            session.phase = CollectionPhase.ERROR
            session.error = str(e)
            logger.error(f"Collection {session.session_id} lost its page: {e}")

        return self._finish(session)

    # ── Phases ─────────────────────────────────────────────────────

    def _run_phase(self, page: PageHandle, session: CollectionSession, sort_type: SortType,
                   target: int, deadline: float) -> None:
        config: CollectionConfig = session.config
        phase = CollectionPhase.for_sort(sort_type)
        session.phase = phase
        tracker = self.progress_tracker
        tracker.start_phase(session.session_id, phase, target)
        started = self._clock()
        logger.info(f"Phase {sort_type.value}: target {target}")

        # Sort navigation, retried with backoff; failure keeps the default order
        sort_timeout = max(0.0, min(config.timeouts.sort_navigation, deadline - self._clock()))
        sort_outcome = attempt(
            lambda: self.sort_navigation.navigate_to_sort(page, sort_type, timeout=sort_timeout),
            max_attempts=config.retry_limits.sorting_attempts,
            backoff=self.sort_backoff,
            sleep=page.pause,
            accept=lambda result: result.success,
            label=f"sort {sort_type.value}",
        )
        sort_method = sort_outcome.value.method if sort_outcome.value else METHOD_FALLBACK
        if not sort_outcome.succeeded:
            sort_method = METHOD_FALLBACK
            error = sort_outcome.value.error if sort_outcome.value else sort_outcome.last_error
            self._warn(session, NavigationFailure(
                f"could not sort by '{sort_type.value}' ({error}); collecting in default order"
            ))

        # Pagination with the selector engine as the extraction callback
        context = ExtractionContext(
            url=session.url,
            resource_status=session.resource_status,
            min_confidence=config.min_confidence,
            min_reviews=self.min_reviews_per_tier,
        )
        phase_reviews: Dict[str, RawReview] = {}
        exhausted = []

        def extract():
            result = self.selector_engine.extract(page, context)
            key = result.strategy_used.value
            session.strategies_used[key] = session.strategies_used.get(key, 0) + 1
            if result.strategy_used is Strategy.NONE:
                exhausted.append(result)
            for review in result.reviews:
                phase_reviews.setdefault(review.id, review)
            return result.reviews

        options = PaginationOptions(
            target_count=target,
            max_attempts=config.max_reveals,
            scroll_strategy=config.scroll_strategy,
            timeout=config.timeouts.pagination,
            deadline=deadline,
            reveal_retries=config.retry_limits.pagination_attempts,
        )
        try:
            pagination = self.pagination_engine.paginate_for_target(
                page, options, extract,
                on_progress=lambda current, total: tracker.update(session.session_id, phase, current, total),
            )
        except PageUnavailableError as e:
            # Keep what this phase had already extracted
            partial = list(phase_reviews.values())[:target]
            session.per_category_raw[sort_type] = partial
            session.phase_results[sort_type] = PhaseResult(
                category=sort_type, collected=len(partial), target=target, success=False,
                elapsed_ms=(self._clock() - started) * 1000, stopped_reason=StoppedReason.ERROR,
                sort_method=sort_method, error=str(e),
            )
            tracker.complete_phase(session.session_id, phase, len(partial))
            raise

        session.per_category_raw[sort_type] = list(pagination.reviews)
        collected = pagination.reviews_collected
        reason = pagination.stopped_reason
        error = None

        if reason is StoppedReason.NO_MORE_CONTENT and collected < target:
            error = f"no more reviews after {collected} of {target}"
            self._warn(session, PaginationStall(f"'{sort_type.value}': {error}"))
        elif reason is StoppedReason.TIMEOUT:
            if self._clock() >= deadline:
                session.timed_out = True
            error = f"timed out with {collected} of {target}"
            self._warn(session, CollectionTimeout(f"'{sort_type.value}': {error}"))
        elif reason is StoppedReason.ERROR:
            error = f"pagination stopped with {collected} of {target}"
            self._warn(session, PaginationStall(f"'{sort_type.value}': {error}"))

        if exhausted and collected == 0:
            self._warn(session, ExtractionExhausted(
                f"'{sort_type.value}': all extraction tiers failed {len(exhausted)} times"
            ))

        session.phase_results[sort_type] = PhaseResult(
            category=sort_type,
            collected=collected,
            target=target,
            success=collected >= target,
            elapsed_ms=(self._clock() - started) * 1000,
            stopped_reason=reason,
            sort_method=sort_method,
            error=error,
        )
        tracker.complete_phase(session.session_id, phase, collected)
        logger.info(f"Phase {sort_type.value} done: {collected}/{target} ({reason.value})")

    # ── Result ─────────────────────────────────────────────────────

    def _finish(self, session: CollectionSession) -> ComprehensiveCollectionResult:
        config: CollectionConfig = session.config
        if session.status is not CollectionStatus.ERROR:
            session.phase = CollectionPhase.DEDUPLICATION
            self.progress_tracker.set_phase(session.session_id, CollectionPhase.DEDUPLICATION)

        dedup = self.deduplication.deduplicate(session.per_category_raw, config.priority_order)
        unique_by_category = dedup.by_category()

        if session.status is not CollectionStatus.ERROR:
            session.status = CollectionStatus.COMPLETE
            session.phase = CollectionPhase.COMPLETE

        per_category = {s: tuple(session.per_category_raw.get(s, ())) for s in SortType}
        counts = {
            s.value: {
                "target": config.target_counts.for_sort(s),
                "collected": len(per_category[s]),
                "unique": len(unique_by_category[s]),
            }
            for s in SortType
        }
        elapsed_ms = (self._clock() - session.started_at) * 1000

        metadata = ResultMetadata(
            session_id=session.session_id,
            status=session.status,
            total_collected=dedup.total_input,
            total_unique=len(dedup.unique_reviews),
            duplicates_removed=dedup.duplicates_removed,
            collection_time_ms=elapsed_ms,
            per_category_counts=counts,
            timed_out=session.timed_out,
            warnings=tuple(session.warnings),
            resource_status=session.resource_status,
            strategies_used=dict(session.strategies_used),
            error=session.error,
        )
        self.progress_tracker.complete_session(session.session_id, session.status)
        logger.info(
            f"Collection {session.session_id} {session.status.value}: "
            f"{metadata.total_unique} unique of {metadata.total_collected} "
            f"({metadata.duplicates_removed} duplicates) in {elapsed_ms:.0f}ms"
        )

        return ComprehensiveCollectionResult(
            unique_reviews=dedup.unique_reviews,
            per_category=per_category,
            phase_results=dict(session.phase_results),
            duplicate_groups=dedup.duplicate_groups,
            attribution=dict(dedup.attribution),
            metadata=metadata,
        )

    @staticmethod
    def _warn(session: CollectionSession, error: CollectionError) -> None:
        message = f"{type(error).__name__}: {error}"
        session.warnings.append(message)
        logger.warning(f"[{session.session_id}] {message}")
