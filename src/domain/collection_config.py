"""
Collection Config - Per-Request Collection Options
==================================================

Targets, timeouts and retry limits for one comprehensive collection.
Timeouts are held in seconds. ``from_dict`` also accepts the camelCase JSON
shape used by API clients, where timeouts are given in milliseconds.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ValidationError
from .models import DEFAULT_PRIORITY_ORDER, SortType

MAX_TARGET_PER_CATEGORY = 1000


class ScrollStrategy(Enum):
    AGGRESSIVE = "aggressive"
    CONSERVATIVE = "conservative"
    ADAPTIVE = "adaptive"


@dataclass(frozen=True)
class TargetCounts:
    recent: int = 100
    worst: int = 100
    best: int = 100

    def for_sort(self, sort_type: SortType) -> int:
        return getattr(self, sort_type.value)

    @property
    def total(self) -> int:
        return self.recent + self.worst + self.best


@dataclass(frozen=True)
class Timeouts:
    """All values in seconds."""
    sort_navigation: float = 10.0
    pagination: float = 30.0
    total_collection: float = 300.0


@dataclass(frozen=True)
class RetryLimits:
    sorting_attempts: int = 3
    pagination_attempts: int = 5


@dataclass(frozen=True)
class CollectionConfig:
    """
    Options for one collection run.

    ``max_reveals`` caps the number of scroll/click reveals per category;
    ``retry_limits.pagination_attempts`` is how many times a single failing
    reveal action is retried.
    """
    target_counts: TargetCounts = field(default_factory=TargetCounts)
    timeouts: Timeouts = field(default_factory=Timeouts)
    retry_limits: RetryLimits = field(default_factory=RetryLimits)
    scroll_strategy: ScrollStrategy = ScrollStrategy.ADAPTIVE
    max_reveals: int = 150
    priority_order: Tuple[SortType, ...] = DEFAULT_PRIORITY_ORDER
    min_confidence: float = 0.5

    def validate(self) -> None:
        """Raise ValidationError listing every problem found."""
        issues = []

        for sort_type in SortType:
            count = self.target_counts.for_sort(sort_type)
            if not isinstance(count, int) or count < 0:
                issues.append(f"target_counts.{sort_type.value} must be a non-negative integer")
            elif count > MAX_TARGET_PER_CATEGORY:
                issues.append(
                    f"target_counts.{sort_type.value} must be at most {MAX_TARGET_PER_CATEGORY}"
                )
        if self.target_counts.total == 0 and not issues:
            issues.append("at least one target count must be positive")

        for name in ("sort_navigation", "pagination", "total_collection"):
            if getattr(self.timeouts, name) <= 0:
                issues.append(f"timeouts.{name} must be positive")

        if self.retry_limits.sorting_attempts < 1:
            issues.append("retry_limits.sorting_attempts must be at least 1")
        if self.retry_limits.pagination_attempts < 1:
            issues.append("retry_limits.pagination_attempts must be at least 1")
        if self.max_reveals < 1:
            issues.append("max_reveals must be at least 1")

        if sorted(s.value for s in self.priority_order) != sorted(s.value for s in SortType):
            issues.append("priority_order must name each of recent, worst, best exactly once")

        if not 0.0 <= self.min_confidence <= 1.0:
            issues.append("min_confidence must be between 0 and 1")

        if issues:
            raise ValidationError(issues)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], defaults: Optional["CollectionConfig"] = None) -> "CollectionConfig":
        """
        Build a config from a JSON-style dict, filling gaps from ``defaults``.

        Accepts both snake_case and camelCase keys. The timeout unit follows
        the key: snake_case timeouts are seconds, camelCase ones milliseconds.
        ``pagination`` is spelled the same in both styles and is always
        seconds; ``paginationMs`` gives it in milliseconds:
            {"targetCounts": {"recent": 50}, "timeouts": {"paginationMs": 20000}}
        """
        base = defaults or cls()
        if not data:
            return base

        try:
            targets = _pick(data, "target_counts", "targetCounts") or {}
            target_counts = replace(
                base.target_counts,
                **{k: int(v) for k, v in targets.items() if k in ("recent", "worst", "best")},
            )

            timeouts = base.timeouts
            raw_timeouts = _pick(data, "timeouts") or {}
            for name, keys in _TIMEOUT_KEYS.items():
                for key, scale in keys:
                    if raw_timeouts.get(key) is not None:
                        timeouts = replace(timeouts, **{name: float(raw_timeouts[key]) / scale})
                        break

            retries = _pick(data, "retry_limits", "retryLimits") or {}
            retry_limits = replace(
                base.retry_limits,
                **{
                    snake: int(retries[key])
                    for snake, key in (
                        ("sorting_attempts", "sorting_attempts"),
                        ("sorting_attempts", "sortingAttempts"),
                        ("pagination_attempts", "pagination_attempts"),
                        ("pagination_attempts", "paginationAttempts"),
                    )
                    if key in retries
                },
            )

            strategy = _pick(data, "scroll_strategy", "scrollStrategy")
            scroll_strategy = ScrollStrategy(strategy) if strategy else base.scroll_strategy

            order = _pick(data, "priority_order", "priorityOrder")
            priority_order = tuple(SortType(s) for s in order) if order else base.priority_order

            max_reveals = _pick(data, "max_reveals", "maxReveals")
            min_confidence = _pick(data, "min_confidence", "minConfidence")
        except (TypeError, ValueError, AttributeError) as e:
            raise ValidationError(f"Invalid collection config: {e}") from e

        return cls(
            target_counts=target_counts,
            timeouts=timeouts,
            retry_limits=retry_limits,
            scroll_strategy=scroll_strategy,
            max_reveals=int(max_reveals) if max_reveals is not None else base.max_reveals,
            priority_order=priority_order,
            min_confidence=float(min_confidence) if min_confidence is not None else base.min_confidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_counts": {s.value: self.target_counts.for_sort(s) for s in SortType},
            "timeouts": {
                "sort_navigation": self.timeouts.sort_navigation,
                "pagination": self.timeouts.pagination,
                "total_collection": self.timeouts.total_collection,
            },
            "retry_limits": {
                "sorting_attempts": self.retry_limits.sorting_attempts,
                "pagination_attempts": self.retry_limits.pagination_attempts,
            },
            "scroll_strategy": self.scroll_strategy.value,
            "max_reveals": self.max_reveals,
            "priority_order": [s.value for s in self.priority_order],
            "min_confidence": self.min_confidence,
        }


# Accepted keys per timeout with the divisor that turns them into seconds
_TIMEOUT_KEYS = {
    "sort_navigation": (("sort_navigation", 1.0), ("sortNavigation", 1000.0)),
    "pagination": (("pagination", 1.0), ("paginationMs", 1000.0)),
    "total_collection": (("total_collection", 1.0), ("totalCollection", 1000.0)),
}


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None
