"""
Unit tests for page load classification.
"""

import pytest

from src.infrastructure.browser.page_handle import ResourceEvent
from src.infrastructure.scraper.resource_monitor import ResourceMonitor
from src.infrastructure.scraper.selectors import REVIEW_CONTAINER_SELECTORS
from tests.conftest import FakePage, review_card

MAPS_JS = "https://maps.googleapis.com/maps/api/js?key=abc"


def loaded_page(clock, events=(), ready_state="complete"):
    card = review_card("Dana Levi", "Fresh hummus", 5, "2 weeks ago")
    return FakePage(
        clock=clock,
        elements={REVIEW_CONTAINER_SELECTORS[0]: [card]},
        events=events,
        ready_state=ready_state,
    )


def failed_images(count):
    return [ResourceEvent(f"https://lh3.googleusercontent.com/p/{i}.jpg", "image", failed=True) for i in range(count)]


def test_healthy_page(clock):
    page = loaded_page(clock, events=[ResourceEvent(MAPS_JS, "script", status=200)])
    status = ResourceMonitor(clock=clock).observe(page)

    assert not status.degraded_mode
    assert status.critical_resources_loaded
    assert status.failed_resources == ()
    assert status.loading_time_ms == 0


def test_critical_failure_degrades(clock):
    page = loaded_page(clock, events=[ResourceEvent(MAPS_JS, "script", failed=True, error_text="net::ERR_FAILED")])
    status = ResourceMonitor(clock=clock).observe(page)

    assert status.degraded_mode
    assert not status.critical_resources_loaded
    assert status.failed_resources == (MAPS_JS,)


def test_failed_resource_count_threshold(clock):
    monitor = ResourceMonitor(clock=clock)

    few = monitor.observe(loaded_page(clock, events=failed_images(3)))
    assert not few.degraded_mode
    assert few.critical_resources_loaded
    assert len(few.failed_resources) == 3

    many = monitor.observe(loaded_page(clock, events=failed_images(6)))
    assert many.degraded_mode
    assert many.critical_resources_loaded


def test_repeated_failures_of_one_url_count_once(clock):
    events = [ResourceEvent("https://example.com/a.png", failed=True)] * 8
    status = ResourceMonitor(clock=clock).observe(loaded_page(clock, events=events))
    assert status.failed_resources == ("https://example.com/a.png",)
    assert not status.degraded_mode


def test_dom_never_ready_degrades_without_raising(clock):
    page = loaded_page(clock, ready_state="loading")
    status = ResourceMonitor(clock=clock).observe(page, timeout_ms=2000)

    assert status.degraded_mode
    assert status.critical_resources_loaded
    assert status.loading_time_ms == pytest.approx(2000)


def test_complete_document_without_review_cards_is_not_ready(clock):
    page = FakePage(clock=clock)
    status = ResourceMonitor(clock=clock).observe(page, timeout_ms=1000)
    assert status.degraded_mode


def test_dead_page_reports_degraded(clock):
    page = loaded_page(clock)
    page.alive = False

    status = ResourceMonitor(clock=clock).observe(page)

    assert status.degraded_mode
    assert not status.critical_resources_loaded


@pytest.mark.parametrize("url,critical", [
    ("https://maps.googleapis.com/maps/api/js?key=abc", True),
    ("https://www.google.com/maps/_/js/k=maps.m.en.abc/m=sc2", True),
    ("https://www.google.com/maps/preview/review/listentitiesreviews?pb=x", True),
    ("https://lh3.googleusercontent.com/p/photo.jpg", False),
    ("https://fonts.gstatic.com/s/roboto.woff2", False),
])
def test_critical_patterns(url, critical):
    assert ResourceMonitor().is_critical(url) is critical


def test_classify_is_pure():
    status = ResourceMonitor().classify(failed_images(2), dom_complete=True, elapsed_ms=321.0)
    assert status.loading_time_ms == 321.0
    assert not status.degraded_mode
