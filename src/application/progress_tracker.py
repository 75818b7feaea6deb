"""
Collection Progress Tracker
===========================

Turns raw ``(phase, current, target)`` updates into CollectionProgress
snapshots and pushes them to the sinks subscribed to a session.

DESIGN:
- One tracker per process, shared by every running session; all state is
  behind a lock
- Sinks are called outside the lock, one after another; a sink that
  raises is logged and skipped without affecting the others
- ETA comes from the observed collection rate (reviews per ms) applied to
  the reviews still missing
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Union

from ..domain.collection_config import TargetCounts
from ..domain.models import (
    CollectionPhase,
    CollectionProgress,
    CollectionStatus,
    PhaseMetrics,
    SortType,
)

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str, CollectionProgress], None]

_CATEGORY_PHASES = (CollectionPhase.RECENT, CollectionPhase.WORST, CollectionPhase.BEST)


@dataclass
class _SessionState:
    targets: Dict[CollectionPhase, int]
    started_at: float
    phase: CollectionPhase = CollectionPhase.PENDING
    counts: Dict[CollectionPhase, int] = field(default_factory=dict)
    metrics: Dict[CollectionPhase, PhaseMetrics] = field(default_factory=dict)
    sinks: List[ProgressSink] = field(default_factory=list)
    latest: Optional[CollectionProgress] = None
    status: CollectionStatus = CollectionStatus.RUNNING

    @property
    def total_target(self) -> int:
        return sum(self.targets.values())

    @property
    def collected(self) -> int:
        return sum(self.counts.values())


class ProgressTracker:
    """
    Usage:
        tracker = ProgressTracker()
        tracker.start_session(session_id, config.target_counts)
        tracker.subscribe(session_id, lambda sid, progress: print(progress.overall_percentage))
        tracker.update(session_id, CollectionPhase.RECENT, 40, 100)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.RLock()
        self._sessions: Dict[str, _SessionState] = {}

    # ── Session lifecycle ──────────────────────────────────────────

    def start_session(self, session_id: str, targets: Union[TargetCounts, Mapping[SortType, int]]) -> CollectionProgress:
        if isinstance(targets, TargetCounts):
            targets = {sort_type: targets.for_sort(sort_type) for sort_type in SortType}
        phase_targets = {CollectionPhase.for_sort(s): int(t) for s, t in targets.items()}

        with self._lock:
            existing = self._sessions.get(session_id)
            state = _SessionState(targets=phase_targets, started_at=self._clock())
            if existing is not None:
                # Sinks registered before the run started carry over
                state.sinks = list(existing.sinks)
            self._sessions[session_id] = state
        logger.debug(f"Tracking session {session_id} (target {sum(phase_targets.values())})")
        return self._publish(session_id)

    def subscribe(self, session_id: str, sink: ProgressSink) -> Callable[[], None]:
        """Register a sink. Returns a function that unsubscribes it."""
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                state = _SessionState(targets={}, started_at=self._clock())
                self._sessions[session_id] = state
            state.sinks.append(sink)

        def unsubscribe() -> None:
            with self._lock:
                current = self._sessions.get(session_id)
                if current is not None and sink in current.sinks:
                    current.sinks.remove(sink)

        return unsubscribe

    def start_phase(self, session_id: str, phase: CollectionPhase, target: int) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                logger.debug(f"start_phase for unknown session {session_id}")
                return None
            state.phase = phase
            state.targets[phase] = target
            state.counts.setdefault(phase, 0)
            state.metrics[phase] = PhaseMetrics(phase=phase, target=target, started_at=self._clock())
        return self._publish(session_id)

    def update(self, session_id: str, phase: CollectionPhase, current: int, target: int) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                logger.debug(f"Progress update for unknown session {session_id} ignored")
                return None
            state.phase = phase
            state.targets[phase] = target
            state.counts[phase] = max(0, min(current, target)) if target > 0 else 0
            metrics = state.metrics.get(phase)
            if metrics is not None:
                metrics.reviews_collected = state.counts[phase]
        return self._publish(session_id)

    def complete_phase(self, session_id: str, phase: CollectionPhase, collected: int) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return None
            state.counts[phase] = collected
            metrics = state.metrics.get(phase)
            if metrics is not None:
                metrics.reviews_collected = collected
                metrics.ended_at = self._clock()
                metrics.completed = True
        return self._publish(session_id)

    def set_phase(self, session_id: str, phase: CollectionPhase) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return None
            state.phase = phase
        return self._publish(session_id)

    def complete_session(self, session_id: str, status: CollectionStatus) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return None
            state.status = status
            state.phase = CollectionPhase.COMPLETE if status is CollectionStatus.COMPLETE else CollectionPhase.ERROR
        return self._publish(session_id)

    def remove_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    # ── Queries ────────────────────────────────────────────────────

    def get_progress(self, session_id: str) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            return state.latest if state else None

    def get_phase_metrics(self, session_id: str) -> Dict[CollectionPhase, PhaseMetrics]:
        with self._lock:
            state = self._sessions.get(session_id)
            return dict(state.metrics) if state else {}

    def active_sessions(self) -> List[str]:
        with self._lock:
            return [sid for sid, s in self._sessions.items() if s.status is CollectionStatus.RUNNING]

    # ── Internals ──────────────────────────────────────────────────

    def _publish(self, session_id: str) -> Optional[CollectionProgress]:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return None
            progress = self._snapshot(session_id, state)
            state.latest = progress
            sinks = list(state.sinks)

        for sink in sinks:
            try:
                sink(session_id, progress)
            except Exception as e:
                logger.warning(f"Progress sink failed for session {session_id}: {e}")
        return progress

    def _snapshot(self, session_id: str, state: _SessionState) -> CollectionProgress:
        elapsed_ms = max(0.0, (self._clock() - state.started_at) * 1000)
        total_target = state.total_target
        collected = state.collected
        finished = state.phase in (CollectionPhase.COMPLETE, CollectionPhase.ERROR)

        phase_target = state.targets.get(state.phase, 0) if state.phase in _CATEGORY_PHASES else 0
        phase_current = state.counts.get(state.phase, 0) if state.phase in _CATEGORY_PHASES else 0

        if state.phase is CollectionPhase.COMPLETE:
            overall = 100
        else:
            overall = _percentage(collected, total_target)

        remaining = max(0, total_target - collected)
        if finished or remaining == 0:
            eta_ms = 0.0
        elif collected > 0 and elapsed_ms > 0:
            rate = collected / elapsed_ms
            eta_ms = remaining / rate
        else:
            eta_ms = 0.0

        return CollectionProgress(
            session_id=session_id,
            current_phase=state.phase,
            phase_current=phase_current,
            phase_target=phase_target,
            phase_percentage=_percentage(phase_current, phase_target),
            reviews_collected=collected,
            total_target=total_target,
            overall_percentage=overall,
            time_elapsed_ms=elapsed_ms,
            estimated_time_remaining_ms=eta_ms,
        )


def _percentage(current: int, target: int) -> int:
    if target <= 0:
        return 0
    return max(0, min(100, int(round(current * 100 / target))))
