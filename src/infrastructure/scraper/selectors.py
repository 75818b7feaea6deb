"""
Review Page Selectors
=====================

CSS selectors and menu labels for the Google Maps review panel. Google
renames its obfuscated classes every few months, so every role has several
candidates and the extraction tiers fall back to selector-free strategies.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ...domain.models import SortType


@dataclass(frozen=True)
class SelectorSet:
    """Selectors for one review-card layout."""
    name: str
    container: str
    author: str
    rating: str
    text: str
    date: str
    expand_button: Optional[str] = None


PRIMARY_SELECTOR_SET = SelectorSet(
    name="maps-desktop",
    container="div.jftiEf[data-review-id]",
    author=".d4r55",
    rating="span.kvMYJc",
    text=".wiI7pd",
    date=".rsqaWe",
    expand_button="button.w8nwRe",
)

SECONDARY_SELECTOR_SETS: Tuple[SelectorSet, ...] = (
    SelectorSet(
        name="maps-legacy",
        container="div[data-review-id]",
        author=".d4r55, .TSUbDb, .WNxzHc",
        rating='.kvMYJc, .fzvQIb, span[role="img"][aria-label*="star" i]',
        text='span[jsname="bN97Pc"], .wiI7pd, .MyEned',
        date=".rsqaWe, .xRkPPb, .DU9Pgb",
        expand_button='button.w8nwRe, button[aria-label="See more"]',
    ),
    SelectorSet(
        name="maps-mobile",
        container='div.gws-localreviews__google-review, div[jscontroller="fIQYlf"]',
        author=".TSUbDb, .d4r55",
        rating='.lTi8oc, .z3HNkc, [aria-label*="Rated" i]',
        text=".Jtu6Td, .review-full-text",
        date=".dehysf, .rsqaWe",
    ),
)

# Any of these present means review cards have rendered
REVIEW_CONTAINER_SELECTORS = ("div[data-review-id]", "div.jftiEf", "div.gws-localreviews__google-review")

# Scrollable review list
PANE_SELECTORS = ("div.m6QErb.DxyBCb", "div.m6QErb[aria-label]", "div.m6QErb", 'div[role="feed"]')

LOAD_MORE_SELECTORS = (
    'button[jsaction*="pane.review.more"]',
    'button[aria-label*="More reviews" i]',
    ".section-expand-review button",
    "[data-expandable-section] button",
    ".load-more",
    ".show-more",
)

# Sort control
SORT_BUTTON_SELECTORS = (
    'button[aria-label*="Sort" i]',
    'button[data-value="Sort"]',
    "button.HQzyZ",
    'button[aria-label*="מיון"]',
    '[role="button"][aria-label*="sort" i]',
)
MOBILE_SORT_BUTTON_SELECTORS = (
    'button[aria-label*="Sort" i]',
    '[role="button"][aria-label*="sort" i]',
    '.mobile-menu [role="button"]',
    'button[aria-haspopup="true"]',
)
SORT_MENU_ITEM_SELECTORS = (
    'div[role="menu"] [role="menuitemradio"]',
    'div[role="menu"] [role="menuitem"]',
    '[role="menuitemradio"]',
    'div[role="listbox"] [role="option"]',
)

# Menu labels per interface language
SORT_LABELS: Dict[SortType, Dict[str, Tuple[str, ...]]] = {
    SortType.RECENT: {
        "en": ("Newest", "Most recent", "Latest", "Newest first"),
        "he": ("החדשות ביותר", "החדשים ביותר", "הכי חדש", "חדש ביותר"),
        "es": ("Más recientes",),
        "de": ("Neueste",),
        "fr": ("Plus récent", "Plus récents"),
        "it": ("Più recenti",),
        "pt": ("Mais recentes",),
        "ru": ("Новые",),
        "nl": ("Nieuwste",),
    },
    SortType.WORST: {
        "en": ("Lowest rating", "Lowest rated", "Worst rating", "Lowest first"),
        "he": ("הדירוג הנמוך ביותר", "דירוג נמוך ביותר", "דירוג נמוך"),
        "es": ("Calificación más baja",),
        "de": ("Niedrigste Bewertung",),
        "fr": ("Note la plus basse",),
        "it": ("Valutazione più bassa",),
        "pt": ("Pior avaliação",),
        "ru": ("Наименьший рейтинг",),
        "nl": ("Laagste waardering",),
    },
    SortType.BEST: {
        "en": ("Highest rating", "Highest rated", "Top rating", "Highest first"),
        "he": ("הדירוג הגבוה ביותר", "דירוג גבוה ביותר", "דירוג גבוה"),
        "es": ("Calificación más alta",),
        "de": ("Höchste Bewertung",),
        "fr": ("Note la plus élevée",),
        "it": ("Valutazione più alta",),
        "pt": ("Melhor avaliação",),
        "ru": ("Наивысший рейтинг",),
        "nl": ("Hoogste waardering",),
    },
}

# Menu position when no label matches (relevance is first)
SORT_MENU_POSITIONS = {SortType.RECENT: 1, SortType.BEST: 2, SortType.WORST: 3}


def sort_labels_for(sort_type: SortType, language: str) -> Tuple[str, ...]:
    """Labels for the page language first, then English, then every other language."""
    by_language = SORT_LABELS[sort_type]
    ordered = list(by_language.get(language, ()))
    for code in ("en", *sorted(by_language)):
        for label in by_language[code]:
            if label not in ordered:
                ordered.append(label)
    return tuple(ordered)
