"""
Shared fixtures: a controllable clock and in-memory PageHandle fakes.

FakePage answers selector queries from a dict. MapsPage simulates a Maps
review panel with a sort menu and a review list that grows on every reveal.
"""

from typing import Dict, List, Optional, Sequence

import pytest

from src.domain.errors import PageUnavailableError
from src.domain.models import SortType
from src.infrastructure.browser.page_handle import ElementDescriptor, PageActionError, PageHandle
from src.infrastructure.scraper.selectors import (
    PANE_SELECTORS,
    PRIMARY_SELECTOR_SET,
    REVIEW_CONTAINER_SELECTORS,
    SORT_BUTTON_SELECTORS,
    SORT_MENU_ITEM_SELECTORS,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePage(PageHandle):
    """
    Selector -> elements lookup. Elements found ``within`` a container come
    from the container's ``ref`` dict.
    """

    def __init__(
        self,
        clock: Optional[FakeClock] = None,
        elements: Optional[Dict[str, List[ElementDescriptor]]] = None,
        text: str = "",
        viewport=(1920, 1080),
        user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
        language: str = "en",
        ready_state: str = "complete",
        events=None,
    ):
        self.clock = clock or FakeClock()
        self.elements = dict(elements or {})
        self.text = text
        self._viewport = viewport
        self._user_agent = user_agent
        self._language = language
        self._ready_state = ready_state
        self.events = list(events or [])
        self.alive = True
        self.navigated: List[str] = []
        self.clicked: List[ElementDescriptor] = []
        self.scrolls = 0
        self.closed = False

    def _check(self) -> None:
        if not self.alive:
            raise PageUnavailableError("page is gone")

    def navigate(self, url: str) -> None:
        self._check()
        self.navigated.append(url)

    def query_all(self, selector: str, within: Optional[ElementDescriptor] = None) -> List[ElementDescriptor]:
        self._check()
        if within is not None:
            children = within.ref if isinstance(within.ref, dict) else {}
            return list(children.get(selector, []))
        return list(self.elements.get(selector, []))

    def page_text(self) -> str:
        self._check()
        return self.text

    def click(self, element: ElementDescriptor) -> None:
        self._check()
        if element.attr("data-broken") == "true":
            raise PageActionError("element not interactable")
        self.clicked.append(element)

    def scroll_by(self, pixels: int) -> None:
        self._check()
        self.scrolls += 1

    def scroll_to_bottom(self, within: Optional[ElementDescriptor] = None) -> None:
        self._check()
        self.scrolls += 1

    def resource_events(self):
        self._check()
        return list(self.events)

    def ready_state(self) -> str:
        self._check()
        return self._ready_state

    def viewport(self):
        return self._viewport

    def user_agent(self) -> str:
        return self._user_agent

    def language(self) -> str:
        return self._language

    def pause(self, seconds: float) -> None:
        self.clock.advance(seconds)

    def is_alive(self) -> bool:
        return self.alive

    def close(self) -> None:
        self.closed = True
        self.alive = False


def review_card(author: str, text: str, rating: Optional[int], date: str,
                review_id: str = "", rating_label: Optional[str] = None) -> ElementDescriptor:
    """A review card in the current desktop layout."""
    s = PRIMARY_SELECTOR_SET
    label = rating_label if rating_label is not None else (f"{rating} stars" if rating else "")
    children = {
        s.author: [ElementDescriptor("div", text=author)] if author else [],
        s.text: [ElementDescriptor("span", text=text)] if text else [],
        s.date: [ElementDescriptor("span", text=date)] if date else [],
        s.rating: [ElementDescriptor("span", attributes={"aria-label": label, "role": "img"})] if label else [],
    }
    return ElementDescriptor(
        "div",
        text="\n".join(p for p in (author, date, text) if p),
        attributes={"class": "jftiEf", "data-review-id": review_id or f"{author}-{date}"},
        path="div.m6QErb > div.jftiEf",
        ref=children,
    )


def make_reviews(count: int, start: int = 0) -> List[dict]:
    return [
        {
            "author": f"Reviewer {i}",
            "text": f"Visit number {i} was memorable for the food and the staff",
            "rating": i % 5 + 1,
            "date": f"{i % 11 + 1} days ago",
            "id": f"r{i}",
        }
        for i in range(start, start + count)
    ]


class MapsPage(FakePage):
    """
    Review panel with a sort menu. Each sort shows its own pool; the list
    starts with ``batch`` cards and grows by ``batch`` per scroll.
    """

    MENU_LABELS = (
        (None, "Most relevant"),
        (SortType.RECENT, "Newest"),
        (SortType.BEST, "Highest rating"),
        (SortType.WORST, "Lowest rating"),
    )

    def __init__(
        self,
        pools: Dict[Optional[SortType], Sequence[dict]],
        batch: int = 10,
        sort_available: bool = True,
        die_after_scrolls: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.pools = pools
        self.batch = batch
        self.sort_available = sort_available
        self.die_after_scrolls = die_after_scrolls
        self.sort: Optional[SortType] = None
        self.visible = batch
        self.menu_open = False
        self.sort_button = ElementDescriptor("button", text="Sort", attributes={"aria-label": "Sort reviews"})
        self.pane = ElementDescriptor("div", attributes={"class": "m6QErb DxyBCb"})

    def current_pool(self) -> Sequence[dict]:
        if self.sort in self.pools:
            return self.pools[self.sort]
        if None in self.pools:
            return self.pools[None]
        return list(reversed(self.pools[SortType.RECENT]))

    def cards(self) -> List[ElementDescriptor]:
        return [
            review_card(r["author"], r["text"], r["rating"], r["date"], review_id=r["id"])
            for r in self.current_pool()[:self.visible]
        ]

    def menu_items(self) -> List[ElementDescriptor]:
        return [
            ElementDescriptor(
                "div",
                text=label,
                attributes={"role": "menuitemradio", "aria-checked": "true" if sort == self.sort else "false"},
                ref=sort,
            )
            for sort, label in self.MENU_LABELS
        ]

    def navigate(self, url: str) -> None:
        super().navigate(url)
        self.sort = None
        self.visible = self.batch
        self.menu_open = False

    def query_all(self, selector: str, within: Optional[ElementDescriptor] = None) -> List[ElementDescriptor]:
        self._check()
        if within is not None:
            return super().query_all(selector, within)
        if selector == PRIMARY_SELECTOR_SET.container or selector in REVIEW_CONTAINER_SELECTORS[:2]:
            return self.cards()
        if selector == SORT_BUTTON_SELECTORS[0]:
            return [self.sort_button] if self.sort_available else []
        if selector == SORT_MENU_ITEM_SELECTORS[0]:
            return self.menu_items() if self.menu_open else []
        if selector == PANE_SELECTORS[0]:
            return [self.pane]
        return super().query_all(selector)

    def click(self, element: ElementDescriptor) -> None:
        self._check()
        self.clicked.append(element)
        if element == self.sort_button:
            self.menu_open = True
        elif element.attr("role") == "menuitemradio":
            self.sort = element.ref
            self.visible = self.batch
            self.menu_open = False

    def scroll_to_bottom(self, within: Optional[ElementDescriptor] = None) -> None:
        self._check()
        self.scrolls += 1
        if self.die_after_scrolls is not None and self.scrolls > self.die_after_scrolls:
            self.alive = False
            raise PageUnavailableError("browser window closed")
        self.visible = min(self.visible + self.batch, len(self.current_pool()))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_page(clock):
    return FakePage(clock=clock)


def sorted_pools(reviews: Sequence[dict]) -> Dict[SortType, List[dict]]:
    """
    Recent keeps the given order. Worst and best sort the reversed list by
    rating, so each sort starts with a different review.
    """
    older_first = list(reversed(reviews))
    return {
        SortType.RECENT: list(reviews),
        SortType.WORST: sorted(older_first, key=lambda r: r["rating"]),
        SortType.BEST: sorted(older_first, key=lambda r: -r["rating"]),
    }
