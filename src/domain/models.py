"""
Domain Models - Reviews, Extraction Diagnostics and Collection Results
======================================================================

Plain dataclasses shared by every layer. Nothing here touches a browser.

DESIGN:
- Values produced once and handed to callers (reviews, results, reports)
  are frozen dataclasses so nobody downstream can edit them in place.
- Working state owned by a single component (the collection session) is
  a regular mutable dataclass.
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .review_id import create_review_id


class SortType(Enum):
    """The three sort orders a collection walks through."""
    RECENT = "recent"
    WORST = "worst"
    BEST = "best"


DEFAULT_PRIORITY_ORDER = (SortType.RECENT, SortType.WORST, SortType.BEST)


class CollectionPhase(Enum):
    """Orchestrator states."""
    PENDING = "pending"
    RECENT = "recent"
    WORST = "worst"
    BEST = "best"
    DEDUPLICATION = "deduplication"
    COMPLETE = "complete"
    ERROR = "error"

    @classmethod
    def for_sort(cls, sort_type: SortType) -> "CollectionPhase":
        return cls(sort_type.value)


class CollectionStatus(Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class StoppedReason(Enum):
    """Why a pagination run ended."""
    TARGET_REACHED = "target-reached"
    NO_MORE_CONTENT = "no-more-content"
    TIMEOUT = "timeout"
    ERROR = "error"


class Strategy(Enum):
    """Selector engine tiers, in the order they are tried."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    CONTENT_BASED = "content-based"
    BRUTE_FORCE = "brute-force"
    NONE = "none"


# ── Reviews ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RawReview:
    """A single review as scraped from the page."""
    id: str
    author: str
    rating: Optional[int]
    text: str
    date: str = ""
    original_url: str = ""

    @classmethod
    def create(
        cls,
        author: Optional[str],
        text: Optional[str],
        rating: Optional[int],
        date: str = "",
        original_url: str = "",
    ) -> "RawReview":
        """Build a review and derive its ID from author, text and rating."""
        return cls(
            id=create_review_id(author, text, rating),
            author=(author or "").strip(),
            rating=rating,
            text=(text or "").strip(),
            date=(date or "").strip(),
            original_url=original_url,
        )

    @property
    def is_rated(self) -> bool:
        return self.rating is not None

    def with_url(self, url: str) -> "RawReview":
        if self.original_url == url:
            return self
        return RawReview(self.id, self.author, self.rating, self.text, self.date, url)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Extraction diagnostics ─────────────────────────────────────────


@dataclass(frozen=True)
class ResourceStatus:
    """Outcome of watching the page load."""
    critical_resources_loaded: bool = True
    failed_resources: Tuple[str, ...] = ()
    loading_time_ms: float = 0.0
    degraded_mode: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["failed_resources"] = list(self.failed_resources)
        return data


@dataclass
class ExtractionAttempt:
    """One tier's try at extracting reviews."""
    strategy_name: str
    tier_priority: int
    elements_found: int = 0
    succeeded: bool = False
    failure_reason: Optional[str] = None
    elapsed_ms: float = 0.0


@dataclass
class DiagnosticReport:
    """What the selector engine found versus what it expected."""
    attempts: List[ExtractionAttempt] = field(default_factory=list)
    dom_summary: Dict[str, Any] = field(default_factory=dict)
    resource_status: Optional[ResourceStatus] = None
    suggested_fixes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempts": [asdict(a) for a in self.attempts],
            "dom_summary": dict(self.dom_summary),
            "resource_status": self.resource_status.to_dict() if self.resource_status else None,
            "suggested_fixes": list(self.suggested_fixes),
        }


@dataclass(frozen=True)
class ExtractionResult:
    reviews: Tuple[RawReview, ...]
    strategy_used: Strategy
    confidence: float
    diagnostics: Optional[DiagnosticReport] = None
    low_confidence: bool = False
    selector_set: Optional[str] = None


# ── Sorting and pagination ─────────────────────────────────────────


@dataclass(frozen=True)
class SortingOption:
    """Static description of how to find one sort control."""
    type: SortType
    candidate_selectors: Tuple[str, ...]
    candidate_labels: Tuple[str, ...]


@dataclass(frozen=True)
class SortNavigationResult:
    success: bool
    sort_type: SortType
    method: str
    elapsed_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class PaginationResult:
    reviews_collected: int
    pages_traversed: int
    stopped_reason: StoppedReason
    elapsed_ms: float
    reviews: Tuple[RawReview, ...] = ()
    scroll_attempts: int = 0
    click_attempts: int = 0
    adaptive_adjustments: int = 0


@dataclass(frozen=True)
class PhaseResult:
    """How one category phase went."""
    category: SortType
    collected: int
    target: int
    success: bool
    elapsed_ms: float = 0.0
    stopped_reason: Optional[StoppedReason] = None
    sort_method: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "collected": self.collected,
            "target": self.target,
            "success": self.success,
            "elapsed_ms": round(self.elapsed_ms, 1),
            "stopped_reason": self.stopped_reason.value if self.stopped_reason else None,
            "sort_method": self.sort_method,
            "error": self.error,
        }


# ── Progress ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class CollectionProgress:
    """Snapshot pushed to progress sinks."""
    session_id: str
    current_phase: CollectionPhase
    phase_current: int = 0
    phase_target: int = 0
    phase_percentage: int = 0
    reviews_collected: int = 0
    total_target: int = 0
    overall_percentage: int = 0
    time_elapsed_ms: float = 0.0
    estimated_time_remaining_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["current_phase"] = self.current_phase.value
        return data


@dataclass
class PhaseMetrics:
    phase: CollectionPhase
    target: int
    started_at: float = field(default_factory=time.monotonic)
    ended_at: Optional[float] = None
    reviews_collected: int = 0
    completed: bool = False

    @property
    def duration_ms(self) -> float:
        end = self.ended_at if self.ended_at is not None else time.monotonic()
        return (end - self.started_at) * 1000


@dataclass
class CollectionSession:
    """
    Root aggregate for one collection request. Mutated only by the
    orchestrator that created it.
    """
    session_id: str
    config: Any
    url: str = ""
    per_category_raw: Dict[SortType, List[RawReview]] = field(
        default_factory=lambda: {sort_type: [] for sort_type in SortType}
    )
    phase_results: Dict[SortType, PhaseResult] = field(default_factory=dict)
    progress: Optional[CollectionProgress] = None
    phase_metrics: Dict[CollectionPhase, PhaseMetrics] = field(default_factory=dict)
    phase: CollectionPhase = CollectionPhase.PENDING
    status: CollectionStatus = CollectionStatus.RUNNING
    resource_status: Optional[ResourceStatus] = None
    strategies_used: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    timed_out: bool = False
    error: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)


# ── Results ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DuplicateGroup:
    """Reviews dropped in favour of ``kept_review``."""
    kept_review: RawReview
    reviews: Tuple[RawReview, ...]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kept_review_id": self.kept_review.id,
            "duplicate_ids": [r.id for r in self.reviews],
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ResultMetadata:
    session_id: str
    status: CollectionStatus
    total_collected: int
    total_unique: int
    duplicates_removed: int
    collection_time_ms: float
    per_category_counts: Dict[str, Dict[str, int]]
    timed_out: bool = False
    warnings: Tuple[str, ...] = ()
    resource_status: Optional[ResourceStatus] = None
    strategies_used: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "total_collected": self.total_collected,
            "total_unique": self.total_unique,
            "duplicates_removed": self.duplicates_removed,
            "collection_time_ms": round(self.collection_time_ms, 1),
            "per_category_counts": {k: dict(v) for k, v in self.per_category_counts.items()},
            "timed_out": self.timed_out,
            "warnings": list(self.warnings),
            "resource_status": self.resource_status.to_dict() if self.resource_status else None,
            "strategies_used": dict(self.strategies_used),
            "error": self.error,
        }


@dataclass(frozen=True)
class ComprehensiveCollectionResult:
    unique_reviews: Tuple[RawReview, ...]
    per_category: Dict[SortType, Tuple[RawReview, ...]]
    phase_results: Dict[SortType, PhaseResult]
    duplicate_groups: Tuple[DuplicateGroup, ...]
    attribution: Dict[str, SortType]
    metadata: ResultMetadata

    @property
    def status(self) -> CollectionStatus:
        return self.metadata.status

    def category_of(self, review: RawReview) -> Optional[SortType]:
        return self.attribution.get(review.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unique_reviews": [
                {**r.to_dict(), "category": self.attribution[r.id].value}
                for r in self.unique_reviews
            ],
            "per_category": {
                sort_type.value: [r.to_dict() for r in reviews]
                for sort_type, reviews in self.per_category.items()
            },
            "phase_results": {
                sort_type.value: result.to_dict()
                for sort_type, result in self.phase_results.items()
            },
            "duplicate_groups": [g.to_dict() for g in self.duplicate_groups],
            "metadata": self.metadata.to_dict(),
        }
