"""
Content-Pattern Extractor
=========================

Last-resort extraction that works on the page's visible text alone, with no
CSS selectors. Used when Google ships a layout none of the selector sets
recognise.

How a review is found:
1. Every short line that reads like a date ("3 months ago", "לפני שבוע",
   "Mar 4, 2024") anchors one review.
2. Author: nearest name-like line above the anchor.
3. Rating: "N stars", "N out of 5", "N/5", "Rated N" or a bounded run of
   star glyphs near the anchor.
4. Body: the longest remaining line before the next review's author.

Each rule carries a confidence weight. A review is emitted only when its
author-or-text confidence plus its rating confidence clears
``min_combined_confidence``. Reviews without a parseable rating are kept
with ``rating=None``.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from ...domain.models import RawReview

logger = logging.getLogger(__name__)

# ── Confidence weights ─────────────────────────────────────────────

AUTHOR_CONFIDENCE = 0.4
TEXT_CONFIDENCE = 0.6
SHORT_TEXT_CONFIDENCE = 0.4
BOTH_FIELDS_BONUS = 0.1
DATE_BONUS = 0.1

RATING_RULES: Tuple[Tuple[str, "re.Pattern", float], ...] = (
    ("rated-n", re.compile(r"\bRated\s+([1-5])(?:[.,]0)?\b", re.IGNORECASE), 0.9),
    (
        "n-out-of-5",
        re.compile(r"(?<![\d.,])([1-5])(?:[.,]0)?\s*(?:out of|of|מתוך|de|von|sur)\s*5\b", re.IGNORECASE),
        0.9,
    ),
    (
        "n-stars",
        re.compile(
            r"(?<![\d.,])([1-5])(?:[.,]0)?\s*(?:stars?|כוכבים|כוכב|estrellas?|sterne?|étoiles?)(?!\w)",
            re.IGNORECASE,
        ),
        0.9,
    ),
    ("n-slash-5", re.compile(r"(?<![\d.,])([1-5])(?:[.,]0)?\s*/\s*5\b"), 0.85),
)

GLYPH_RUN = re.compile(r"^[★☆⭐\s]+$")
FULL_GLYPH_RUN_CONFIDENCE = 0.7
PARTIAL_GLYPH_RUN_CONFIDENCE = 0.45

# ── Dates ──────────────────────────────────────────────────────────

_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
    "year": 365 * 86400,
}

# word -> (unit, implied count); count 0 means "read the number"
_UNIT_WORDS: Dict[str, Tuple[str, int]] = {
    # English
    "second": ("second", 0), "minute": ("minute", 0), "hour": ("hour", 0), "day": ("day", 0),
    "week": ("week", 0), "month": ("month", 0), "year": ("year", 0),
    # Spanish
    "segundo": ("second", 0), "minuto": ("minute", 0), "hora": ("hour", 0), "día": ("day", 0),
    "dia": ("day", 0), "semana": ("week", 0), "mes": ("month", 0), "año": ("year", 0),
    # German
    "sekunde": ("second", 0), "stunde": ("hour", 0), "tag": ("day", 0),
    "woche": ("week", 0), "monat": ("month", 0), "jahr": ("year", 0),
    # French
    "seconde": ("second", 0), "heure": ("hour", 0), "jour": ("day", 0),
    "semaine": ("week", 0), "mois": ("month", 0), "an": ("year", 0), "année": ("year", 0),
    # Hebrew, including dual forms
    "שנייה": ("second", 1), "שניות": ("second", 0), "דקה": ("minute", 1), "דקות": ("minute", 0),
    "שעה": ("hour", 1), "שעות": ("hour", 0), "שעתיים": ("hour", 2),
    "יום": ("day", 1), "ימים": ("day", 0), "יומיים": ("day", 2),
    "שבוע": ("week", 1), "שבועות": ("week", 0), "שבועיים": ("week", 2),
    "חודש": ("month", 1), "חודשים": ("month", 0), "חודשיים": ("month", 2),
    "שנה": ("year", 1), "שנים": ("year", 0), "שנתיים": ("year", 2),
}

_ONE_WORDS = {"a", "an", "one", "un", "una", "une", "ein", "eine", "einer", "einem", "einen"}

_RELATIVE_PATTERNS = (
    ("en", re.compile(
        r"\b(a|an|one|\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago\b", re.IGNORECASE)),
    ("es", re.compile(
        r"\bhace\s+(un|una|\d+)\s+(segundo|minuto|hora|d[ií]a|semana|mes|año)(?:s|es)?\b", re.IGNORECASE)),
    ("de", re.compile(
        r"\bvor\s+(einer|einem|einen|\d+)\s+(Sekunde|Minute|Stunde|Tag|Woche|Monat|Jahr)(?:en|n|e)?\b",
        re.IGNORECASE)),
    ("fr", re.compile(
        r"\bil y a\s+(un|une|\d+)\s+(seconde|minute|heure|jour|semaine|mois|an|année)s?\b", re.IGNORECASE)),
    ("he", re.compile(r"לפני\s+(?:(\d+)\s+)?([\u0590-\u05FF]+)")),
)

_TODAY_WORDS = re.compile(r"^(?:today|just now|heute|hoy|aujourd'hui|היום|הרגע)$", re.IGNORECASE)
_YESTERDAY_WORDS = re.compile(r"^(?:yesterday|gestern|ayer|hier|אתמול)$", re.IGNORECASE)

_MONTHS = "jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec"
_ABSOLUTE_PATTERNS = (
    re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b"),
    re.compile(rf"\b(?:{_MONTHS})[a-z]*\.?\s+\d{{1,2}},?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}\s+(?:{_MONTHS})[a-z]*\.?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}[/.]\d{1,2}[/.]\d{2,4}\b"),
)

MAX_DATE_LINE_LENGTH = 60

# ── Noise ──────────────────────────────────────────────────────────

UI_NOISE = {
    "like", "share", "more", "see more", "report review", "translated by google",
    "see original", "new", "photos", "menu", "reviews", "write a review", "sort",
    "לייק", "שיתוף", "עוד", "תרגום של google", "me gusta", "compartir", "más",
    "gefällt mir", "teilen", "mehr", "j'aime", "partager", "plus",
    "more reviews", "all reviews", "search reviews", "local guide",
    "ביקורות", "reseñas", "rezensionen", "avis",
}

MAX_META_LINE_LENGTH = 60

# One "·"-separated part of a reviewer profile line, e.g. "Local Guide · 45 reviews · 120 photos"
_META_PART = re.compile(
    r"^(?:local guide|level \d+|\d[\d,.]*\s*(?:reviews?|photos?|ביקורות|ביקורת|תמונות|reseñas?|fotos|rezensionen|rezension|avis))$",
    re.IGNORECASE,
)
_OWNER_RESPONSE = re.compile(r"^(?:response from the owner|תגובה מהבעלים|respuesta del propietario)", re.IGNORECASE)
_SENTENCE_MARKS = re.compile(r"[.!?]\s|[!?]$")


@dataclass(frozen=True)
class RatingMatch:
    value: int
    confidence: float
    rule: str


@dataclass(frozen=True)
class ContentExtractionResult:
    reviews: Tuple[RawReview, ...]
    confidence: float
    pattern_matches: Dict[str, int] = field(default_factory=dict)
    review_confidences: Tuple[float, ...] = ()


def parse_rating_text(text: str, allow_glyphs: bool = True) -> Optional[RatingMatch]:
    """
    Rating from text such as "4 stars", "Rated 4.0 out of 5" or "5/5".
    Glyph runs ("★★★★☆") are only considered when ``allow_glyphs`` is set.
    """
    if not text:
        return None

    for rule, pattern, confidence in RATING_RULES:
        match = pattern.search(text)
        if match:
            return RatingMatch(int(match.group(1)), confidence, rule)

    if allow_glyphs:
        stripped = text.strip()
        if stripped and GLYPH_RUN.match(stripped):
            filled = stripped.count("★") + stripped.count("⭐")
            empty = stripped.count("☆")
            if 1 <= filled <= 5 and filled + empty == 5:
                return RatingMatch(filled, FULL_GLYPH_RUN_CONFIDENCE, "glyph-run")
            if 1 <= filled <= 5 and empty == 0:
                return RatingMatch(filled, PARTIAL_GLYPH_RUN_CONFIDENCE, "glyph-run")
    return None


def looks_like_date(text: str) -> bool:
    """True when ``text`` contains a relative or absolute review date."""
    if not text:
        return False
    stripped = text.strip()
    if _TODAY_WORDS.match(stripped) or _YESTERDAY_WORDS.match(stripped):
        return True
    if any(_relative_match(p, stripped) for _, p in _RELATIVE_PATTERNS):
        return True
    return any(p.search(stripped) for p in _ABSOLUTE_PATTERNS)


def resolve_review_date(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Turn a review date string into a datetime.

    Relative dates ("3 months ago", "לפני שבועיים", "hace 2 días") are
    resolved against ``now``; months count as 30 days and years as 365.
    Returns None when nothing date-like is found.
    """
    if not text:
        return None
    now = now or datetime.now()
    stripped = text.strip()

    if _TODAY_WORDS.match(stripped):
        return now
    if _YESTERDAY_WORDS.match(stripped):
        return now - timedelta(days=1)

    for _, pattern in _RELATIVE_PATTERNS:
        match = _relative_match(pattern, stripped)
        if match is None:
            continue
        count_text, unit_word = match.group(1), match.group(2)
        unit, implied = _UNIT_WORDS[unit_word.lower()]
        if count_text is None:
            count = implied or 1
        elif count_text.lower() in _ONE_WORDS:
            count = 1
        else:
            count = int(count_text)
        return now - timedelta(seconds=count * _SECONDS[unit])

    iso = _ABSOLUTE_PATTERNS[0].search(stripped)
    if iso:
        try:
            return datetime(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except ValueError:
            return None

    for pattern in _ABSOLUTE_PATTERNS[1:3]:
        match = pattern.search(stripped)
        if match:
            return _parse_month_name_date(match.group(0))
    return None


def _relative_match(pattern: "re.Pattern", text: str) -> Optional["re.Match"]:
    match = pattern.search(text)
    if match is None or match.group(2).lower() not in _UNIT_WORDS:
        return None
    return match


def _parse_month_name_date(text: str) -> Optional[datetime]:
    cleaned = re.sub(r"[.,]", " ", text)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    for fmt in ("%b %d %Y", "%B %d %Y", "%d %b %Y", "%d %B %Y"):
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    # "Sept" is not a strptime abbreviation
    if "sept" in cleaned.lower():
        return _parse_month_name_date(re.sub(r"(?i)sept", "Sep", cleaned))
    return None


class ContentExtractor:
    """
    Selector-free review extraction from page text.

    Usage:
        extractor = ContentExtractor()
        result = extractor.extract_by_content(page.page_text())
        for review in result.reviews:
            print(review.author, review.rating)
    """

    def __init__(self, min_combined_confidence: float = 0.5, author_lookback: int = 3):
        self.min_combined_confidence = min_combined_confidence
        self.author_lookback = author_lookback

    def extract_by_content(self, text: str, original_url: str = "") -> ContentExtractionResult:
        lines = [line.strip() for line in (text or "").splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            return ContentExtractionResult(reviews=(), confidence=0.0)

        anchors = [i for i, line in enumerate(lines) if self._is_review_date(lines, i)]
        if not anchors:
            logger.debug("Content extraction: no date anchors found")
            return ContentExtractionResult(reviews=(), confidence=0.0)

        authors = self._locate_authors(lines, anchors)
        matches: Dict[str, int] = {"date:anchor": len(anchors)}
        reviews: List[RawReview] = []
        confidences: List[float] = []
        seen_ids = set()

        for position, anchor in enumerate(anchors):
            author_index = authors[position]
            if position + 1 < len(anchors):
                next_start = authors[position + 1] if authors[position + 1] is not None else anchors[position + 1]
            else:
                next_start = len(lines)

            segment_start = author_index if author_index is not None else anchor
            review, confidence = self._build_review(
                lines, segment_start, anchor, next_start, author_index, matches, original_url
            )
            if review is None or review.id in seen_ids:
                continue
            seen_ids.add(review.id)
            reviews.append(review)
            confidences.append(confidence)

        overall = sum(confidences) / len(confidences) if confidences else 0.0
        logger.debug(f"Content extraction: {len(reviews)} reviews from {len(anchors)} date anchors")
        return ContentExtractionResult(
            reviews=tuple(reviews),
            confidence=round(overall, 3),
            pattern_matches=matches,
            review_confidences=tuple(confidences),
        )

    def parse_block(self, text: str, labels: Sequence[str] = (), original_url: str = "") -> Optional[RawReview]:
        """
        Parse one element's text as a single review. Used for repeated
        sibling blocks, where the block boundaries are already known.
        Star glyphs are ignored here; the rating must come from an aria
        label or a textual rating.
        """
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
        date_index = next((i for i, line in enumerate(lines) if self._is_date_line(line)), None)

        search_end = date_index if date_index is not None else len(lines)
        author_index = next((i for i in range(search_end) if self.is_name_line(lines[i])), None)

        rating_match = None
        for candidate in (*labels, *lines):
            rating_match = parse_rating_text(candidate, allow_glyphs=False)
            if rating_match:
                break

        body_start = date_index + 1 if date_index is not None else 0
        body = [
            line for index, line in enumerate(lines[body_start:], start=body_start)
            if index != author_index
            and not self._is_noise(line)
            and not self._is_date_line(line)
            and not parse_rating_text(line, allow_glyphs=False)
        ]
        review_text = max(body, key=len) if body else ""
        author = lines[author_index] if author_index is not None else ""

        if not author and not review_text:
            return None
        return RawReview.create(
            author=author,
            text=review_text,
            rating=rating_match.value if rating_match else None,
            date=lines[date_index] if date_index is not None else "",
            original_url=original_url,
        )

    def _locate_authors(self, lines: Sequence[str], anchors: Sequence[int]) -> List[Optional[int]]:
        authors: List[Optional[int]] = []
        previous_anchor = -1
        for anchor in anchors:
            found = None
            lower_bound = max(previous_anchor + 1, anchor - self.author_lookback)
            for index in range(anchor - 1, lower_bound - 1, -1):
                if self.is_name_line(lines[index]):
                    found = index
                    break
            authors.append(found)
            previous_anchor = anchor
        return authors

    def _build_review(
        self,
        lines: Sequence[str],
        segment_start: int,
        anchor: int,
        next_start: int,
        author_index: Optional[int],
        matches: Dict[str, int],
        original_url: str,
    ) -> Tuple[Optional[RawReview], float]:
        author = lines[author_index] if author_index is not None else ""
        author_confidence = AUTHOR_CONFIDENCE if author else 0.0

        # Rating sits between the author and the line after the date
        rating_match = None
        for index in range(segment_start, min(anchor + 2, next_start)):
            rating_match = parse_rating_text(lines[index])
            if rating_match:
                break

        body_lines = []
        for index in range(anchor + 1, next_start):
            line = lines[index]
            if _OWNER_RESPONSE.match(line):
                break
            if self._is_noise(line) or parse_rating_text(line) or self._is_date_line(line):
                continue
            body_lines.append(line)
        text = max(body_lines, key=len) if body_lines else ""

        if len(text) >= 20:
            text_confidence = TEXT_CONFIDENCE
        elif len(text) >= 10:
            text_confidence = SHORT_TEXT_CONFIDENCE
        else:
            text_confidence = 0.2 if text else 0.0

        identity = max(author_confidence, text_confidence)
        if author_confidence and text_confidence:
            identity += BOTH_FIELDS_BONUS
        rating_confidence = rating_match.confidence if rating_match else 0.0
        combined = identity + rating_confidence

        if combined < self.min_combined_confidence:
            return None, 0.0

        matches["author:name-line"] = matches.get("author:name-line", 0) + (1 if author else 0)
        if text:
            matches["text:longest-line"] = matches.get("text:longest-line", 0) + 1
        if rating_match:
            key = f"rating:{rating_match.rule}"
            matches[key] = matches.get(key, 0) + 1

        date = lines[anchor]
        review = RawReview.create(
            author=author,
            text=text,
            rating=rating_match.value if rating_match else None,
            date=date,
            original_url=original_url,
        )
        confidence = min(1.0, (combined + DATE_BONUS) / 1.6)
        return review, round(confidence, 3)

    def _is_review_date(self, lines: Sequence[str], index: int) -> bool:
        """Date lines, except the ones that date an owner response."""
        line = lines[index]
        if not self._is_date_line(line) or _OWNER_RESPONSE.match(line):
            return False
        return not (index > 0 and _OWNER_RESPONSE.match(lines[index - 1]))

    @staticmethod
    def _is_date_line(line: str) -> bool:
        return len(line) <= MAX_DATE_LINE_LENGTH and looks_like_date(line)

    def is_name_line(self, line: str) -> bool:
        if not 2 <= len(line) <= 60:
            return False
        if not line[0].isalpha():
            return False
        if len(line.split()) > 5 or _SENTENCE_MARKS.search(line):
            return False
        if sum(ch.isdigit() for ch in line) > 2:
            return False
        if self._is_noise(line) or self._is_date_line(line) or parse_rating_text(line):
            return False
        return True

    @staticmethod
    def _is_noise(line: str) -> bool:
        lowered = line.lower().strip()
        return (
            lowered in UI_NOISE
            or ContentExtractor._is_meta_line(lowered)
            or bool(GLYPH_RUN.match(line))
            or bool(_OWNER_RESPONSE.match(line))
        )

    @staticmethod
    def _is_meta_line(line: str) -> bool:
        if not line or len(line) > MAX_META_LINE_LENGTH:
            return False
        parts = [p.strip() for p in line.split("·") if p.strip()]
        return all(_META_PART.match(p) for p in parts)
