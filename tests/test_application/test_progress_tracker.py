"""
Unit tests for progress snapshots, ETA and sink delivery.
"""

import pytest

from src.application.progress_tracker import ProgressTracker
from src.domain.collection_config import TargetCounts
from src.domain.models import CollectionPhase, CollectionStatus, SortType


@pytest.fixture
def tracker(clock):
    return ProgressTracker(clock=clock)


def test_start_session_snapshot(tracker):
    progress = tracker.start_session("s1", TargetCounts(recent=100, worst=50, best=0))

    assert progress.current_phase is CollectionPhase.PENDING
    assert progress.total_target == 150
    assert progress.overall_percentage == 0
    assert progress.estimated_time_remaining_ms == 0.0
    assert tracker.get_progress("s1") == progress


def test_percentages_and_eta(tracker, clock):
    tracker.start_session("s1", TargetCounts())
    clock.advance(10)

    progress = tracker.update("s1", CollectionPhase.RECENT, 50, 100)

    assert progress.phase_current == 50
    assert progress.phase_target == 100
    assert progress.phase_percentage == 50
    assert progress.reviews_collected == 50
    assert progress.overall_percentage == 17
    assert progress.time_elapsed_ms == pytest.approx(10000)
    # 50 reviews in 10s, 250 to go
    assert progress.estimated_time_remaining_ms == pytest.approx(50000)


def test_counts_accumulate_across_phases(tracker):
    tracker.start_session("s1", {SortType.RECENT: 10, SortType.WORST: 10, SortType.BEST: 10})
    tracker.update("s1", CollectionPhase.RECENT, 10, 10)
    progress = tracker.update("s1", CollectionPhase.WORST, 5, 10)

    assert progress.reviews_collected == 15
    assert progress.overall_percentage == 50
    assert progress.phase_percentage == 50


def test_update_is_clamped(tracker):
    tracker.start_session("s1", TargetCounts())
    assert tracker.update("s1", CollectionPhase.RECENT, 250, 100).phase_current == 100
    assert tracker.update("s1", CollectionPhase.RECENT, -3, 100).phase_current == 0
    assert tracker.update("s1", CollectionPhase.RECENT, 5, 0).phase_current == 0


def test_unknown_session_is_ignored(tracker):
    assert tracker.update("nope", CollectionPhase.RECENT, 1, 10) is None
    assert tracker.get_progress("nope") is None
    assert tracker.get_phase_metrics("nope") == {}


def test_complete_session_reports_100(tracker):
    tracker.start_session("s1", TargetCounts())
    tracker.update("s1", CollectionPhase.RECENT, 40, 100)

    progress = tracker.complete_session("s1", CollectionStatus.COMPLETE)

    assert progress.current_phase is CollectionPhase.COMPLETE
    assert progress.overall_percentage == 100
    assert progress.estimated_time_remaining_ms == 0.0
    assert tracker.active_sessions() == []


def test_error_session_keeps_real_percentage(tracker):
    tracker.start_session("s1", TargetCounts())
    tracker.update("s1", CollectionPhase.RECENT, 30, 100)

    progress = tracker.complete_session("s1", CollectionStatus.ERROR)

    assert progress.current_phase is CollectionPhase.ERROR
    assert progress.overall_percentage == 10


def test_sinks_receive_every_snapshot(tracker):
    seen = []
    tracker.subscribe("s1", lambda sid, p: seen.append((sid, p.reviews_collected)))
    tracker.start_session("s1", TargetCounts())
    tracker.update("s1", CollectionPhase.RECENT, 20, 100)

    assert seen == [("s1", 0), ("s1", 20)]


def test_failing_sink_does_not_block_others(tracker):
    seen = []

    def broken(sid, progress):
        raise RuntimeError("socket closed")

    tracker.start_session("s1", TargetCounts())
    tracker.subscribe("s1", broken)
    tracker.subscribe("s1", lambda sid, p: seen.append(p.reviews_collected))

    progress = tracker.update("s1", CollectionPhase.RECENT, 5, 100)

    assert progress.reviews_collected == 5
    assert seen == [5]


def test_unsubscribe(tracker):
    seen = []
    tracker.start_session("s1", TargetCounts())
    unsubscribe = tracker.subscribe("s1", lambda sid, p: seen.append(p))

    tracker.update("s1", CollectionPhase.RECENT, 1, 100)
    unsubscribe()
    tracker.update("s1", CollectionPhase.RECENT, 2, 100)

    assert len(seen) == 1


def test_phase_metrics(tracker, clock):
    tracker.start_session("s1", TargetCounts())
    tracker.start_phase("s1", CollectionPhase.RECENT, 100)
    clock.advance(4)
    tracker.update("s1", CollectionPhase.RECENT, 60, 100)
    tracker.complete_phase("s1", CollectionPhase.RECENT, 60)

    metrics = tracker.get_phase_metrics("s1")[CollectionPhase.RECENT]
    assert metrics.completed
    assert metrics.reviews_collected == 60
    assert metrics.duration_ms == pytest.approx(4000)


def test_set_phase_and_remove(tracker):
    tracker.start_session("s1", TargetCounts())
    assert tracker.set_phase("s1", CollectionPhase.DEDUPLICATION).current_phase is CollectionPhase.DEDUPLICATION
    assert tracker.active_sessions() == ["s1"]

    tracker.remove_session("s1")
    assert tracker.active_sessions() == []
    assert tracker.set_phase("s1", CollectionPhase.COMPLETE) is None
