"""
Sort Navigation Service
=======================

Switches the review list to one of the three sort orders.

Flow:
1. Detect the interface variant (desktop / mobile) and language.
2. If the requested order is already active, return immediately
   (``method='already-active'``).
3. Open the sort menu, match menu items by label (page language first,
   then every known language, then menu position) and click candidates in
   order. After each click wait for the list to settle and check that the
   sort indicator or the first review changed.
4. If nothing works, report ``method='fallback'``; the caller keeps
   collecting in the page's default order.
"""

import logging
import re
import time
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ...domain.models import SortingOption, SortNavigationResult, SortType
from ..browser.page_handle import ElementDescriptor, PageActionError, PageHandle
from .selectors import (
    MOBILE_SORT_BUTTON_SELECTORS,
    REVIEW_CONTAINER_SELECTORS,
    SORT_BUTTON_SELECTORS,
    SORT_MENU_ITEM_SELECTORS,
    SORT_MENU_POSITIONS,
    sort_labels_for,
)

logger = logging.getLogger(__name__)

METHOD_CLICK = "click"
METHOD_ALREADY_ACTIVE = "already-active"
METHOD_FALLBACK = "fallback"

MOBILE_BREAKPOINT = 768
_MOBILE_UA = re.compile(r"Mobi|Android|iPhone|iPad", re.IGNORECASE)


class InterfaceVariant(Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


@dataclass(frozen=True)
class InterfaceProfile:
    variant: InterfaceVariant
    language: str


def sorting_option(sort_type: SortType, profile: InterfaceProfile) -> SortingOption:
    """Selectors and labels to try for ``sort_type`` on this interface."""
    buttons = MOBILE_SORT_BUTTON_SELECTORS if profile.variant is InterfaceVariant.MOBILE else SORT_BUTTON_SELECTORS
    return SortingOption(
        type=sort_type,
        candidate_selectors=tuple(buttons),
        candidate_labels=sort_labels_for(sort_type, profile.language),
    )


class SortNavigationService:
    """
    Usage:
        service = SortNavigationService()
        result = service.navigate_to_sort(page, SortType.WORST)
        if not result.success:
            logger.warning(result.error)
    """

    def __init__(
        self,
        settle_seconds: float = 1.5,
        menu_open_seconds: float = 0.5,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settle_seconds = settle_seconds
        self.menu_open_seconds = menu_open_seconds
        self.timeout = timeout
        self._clock = clock
        # page -> (last sort applied, first review signature right after)
        self._applied: "weakref.WeakKeyDictionary[PageHandle, tuple]" = weakref.WeakKeyDictionary()

    def detect_interface(self, page: PageHandle) -> InterfaceProfile:
        width, _ = page.viewport()
        mobile = width <= MOBILE_BREAKPOINT or bool(_MOBILE_UA.search(page.user_agent() or ""))
        language = (page.language() or "en").split("-")[0].lower()
        return InterfaceProfile(InterfaceVariant.MOBILE if mobile else InterfaceVariant.DESKTOP, language)

    def navigate_to_sort(self, page: PageHandle, sort_type: SortType, timeout: Optional[float] = None) -> SortNavigationResult:
        start = self._clock()
        deadline = start + (self.timeout if timeout is None else timeout)

        profile = self.detect_interface(page)
        option = sorting_option(sort_type, profile)
        logger.debug(f"Sorting by {sort_type.value} ({profile.variant.value}, lang={profile.language})")

        if self.is_active(page, option):
            logger.info(f"Sort '{sort_type.value}' already active")
            return self._result(True, sort_type, METHOD_ALREADY_ACTIVE, start)

        tried = 0
        last_error = "sort control not found"
        while self._clock() < deadline:
            if not self._open_menu(page, option):
                break

            candidates = self._menu_candidates(page, option)
            if tried >= len(candidates):
                if not candidates:
                    last_error = "sort menu opened but no matching option"
                break

            candidate = candidates[tried]
            tried += 1
            before = first_review_signature(page)
            try:
                page.click(candidate)
            except PageActionError as e:
                last_error = f"could not click sort option: {e}"
                continue

            page.pause(self.settle_seconds)
            after = first_review_signature(page)
            if self._indicator_active(page, option) or (after and after != before):
                self._applied[page] = (sort_type, after)
                logger.info(f"Sorted reviews by {sort_type.value} via '{_label_of(candidate)}'")
                return self._result(True, sort_type, METHOD_CLICK, start)
            last_error = f"clicked '{_label_of(candidate)}' but the review list did not change"
        else:
            last_error = f"sort navigation timed out ({last_error})"

        logger.warning(f"Sort '{sort_type.value}' unavailable, using default order: {last_error}")
        return self._result(False, sort_type, METHOD_FALLBACK, start, last_error)

    def is_active(self, page: PageHandle, option: SortingOption) -> bool:
        """Sort indicator shows ``option``, or we applied it and the list is unchanged since."""
        if self._indicator_active(page, option):
            return True
        applied = self._applied.get(page)
        if applied is None or applied[0] is not option.type:
            return False
        signature = first_review_signature(page)
        return bool(signature) and signature == applied[1]

    def forget(self, page: PageHandle) -> None:
        """Drop the remembered sort, e.g. after navigating to another URL."""
        self._applied.pop(page, None)

    # ── Internals ──────────────────────────────────────────────────

    def _open_menu(self, page: PageHandle, option: SortingOption) -> bool:
        if self._menu_items(page):
            return True
        for selector in option.candidate_selectors:
            for button in page.query_all(selector):
                try:
                    page.click(button)
                except PageActionError as e:
                    logger.debug(f"Sort button {selector} not clickable: {e}")
                    continue
                page.pause(self.menu_open_seconds)
                if self._menu_items(page):
                    return True
        return False

    @staticmethod
    def _menu_items(page: PageHandle) -> List[ElementDescriptor]:
        for selector in SORT_MENU_ITEM_SELECTORS:
            items = page.query_all(selector)
            if items:
                return items
        return []

    def _menu_candidates(self, page: PageHandle, option: SortingOption) -> List[ElementDescriptor]:
        items = self._menu_items(page)
        matched = _match_labels(items, option.candidate_labels)
        if matched:
            return matched

        position = SORT_MENU_POSITIONS.get(option.type, -1)
        if 0 <= position < len(items):
            logger.info(f"No label matched, using menu position {position + 1} for {option.type.value}")
            return [items[position]]
        return []

    def _indicator_active(self, page: PageHandle, option: SortingOption) -> bool:
        selected = [
            item for item in self._menu_items(page)
            if item.attr("aria-checked") == "true" or item.attr("aria-selected") == "true"
        ]
        return bool(_match_labels(selected, option.candidate_labels))

    def _result(self, success: bool, sort_type: SortType, method: str, start: float,
                error: Optional[str] = None) -> SortNavigationResult:
        return SortNavigationResult(
            success=success,
            sort_type=sort_type,
            method=method,
            elapsed_ms=(self._clock() - start) * 1000,
            error=error,
        )


def first_review_signature(page: PageHandle) -> str:
    """Identity of the first visible review card, or '' when there is none."""
    for selector in REVIEW_CONTAINER_SELECTORS:
        cards = page.query_all(selector)
        if cards:
            first = cards[0]
            return first.attr("data-review-id") or first.text.strip()[:80]
    return ""


def _label_of(item: ElementDescriptor) -> str:
    lines = item.text.strip().splitlines()
    return (lines[0] if lines else "") or item.aria_label


def _match_labels(items: Sequence[ElementDescriptor], labels: Sequence[str]) -> List[ElementDescriptor]:
    """Items whose label matches one of ``labels``, in label order. Exact matches beat substrings."""
    matched: List[ElementDescriptor] = []
    seen = set()
    normalized = [(item, _label_of(item).strip().lower(), item.aria_label.strip().lower()) for item in items]

    for label in labels:
        wanted = label.lower()
        for item, text, aria in normalized:
            if (text == wanted or aria == wanted) and id(item) not in seen:
                seen.add(id(item))
                matched.append(item)
    for label in labels:
        wanted = label.lower()
        for item, text, aria in normalized:
            if (wanted in text or wanted in aria) and id(item) not in seen:
                seen.add(id(item))
                matched.append(item)
    return matched
