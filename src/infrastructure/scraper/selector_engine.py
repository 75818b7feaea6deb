"""
Progressive Selector Engine
===========================

Finds review cards on the page with four tiers, tried in strict order:

1. primary       - current selector set for the desktop layout
2. secondary     - alternate selector sets (legacy layout, mobile variant);
                   the set that last worked for this URL is tried first
3. content-based - selector-free text patterns (ContentExtractor)
4. brute-force   - repeated sibling blocks that carry both a rating-like
                   and a date-like token

Every tier's output passes the same validation gate before it is accepted:
enough reviews, every review has an author or text, ratings within 1-5 or
explicitly unrated. Selector tiers must also have parsed at least one
rating from an aria-label / data attribute / "N/5" text. Star glyphs alone
are never taken as a rating.

Confidence = tier base x (0.5 + 0.5 x field completeness), with a penalty
while the page is in degraded mode.

When every tier fails the result is empty with ``strategy_used = none`` and
a DiagnosticReport explaining what was found, which is also written to the
diagnostic store.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ...domain.errors import PageUnavailableError
from ...domain.models import (
    DiagnosticReport,
    ExtractionAttempt,
    ExtractionResult,
    RawReview,
    ResourceStatus,
    Strategy,
)
from ..browser.page_handle import ElementDescriptor, PageActionError, PageHandle
from ..diagnostics.diagnostic_store import DiagnosticStore, Priority
from .content_extractor import ContentExtractor, looks_like_date, parse_rating_text
from .selectors import (
    PRIMARY_SELECTOR_SET,
    REVIEW_CONTAINER_SELECTORS,
    SECONDARY_SELECTOR_SETS,
    SelectorSet,
)

logger = logging.getLogger(__name__)

TIER_CONFIDENCE = {
    Strategy.PRIMARY: 1.0,
    Strategy.SECONDARY: 0.85,
    Strategy.CONTENT_BASED: 0.6,
    Strategy.BRUTE_FORCE: 0.4,
}
TIER_PRIORITY = {
    Strategy.PRIMARY: 1,
    Strategy.SECONDARY: 2,
    Strategy.CONTENT_BASED: 3,
    Strategy.BRUTE_FORCE: 4,
}

BRUTE_FORCE_CANDIDATES = "div, li, article"
MAX_EXPAND_CLICKS = 50
STAR_GLYPHS = ("★", "☆", "⭐")


@dataclass(frozen=True)
class ExtractionContext:
    """Per-call inputs for SelectorEngine.extract."""
    url: str = ""
    resource_status: Optional[ResourceStatus] = None
    min_confidence: float = 0.5
    min_reviews: int = 1
    expand_truncated: bool = True

    @property
    def degraded(self) -> bool:
        return bool(self.resource_status and self.resource_status.degraded_mode)


@dataclass
class _TierOutcome:
    reviews: List[RawReview]
    elements_found: int
    failure_reason: Optional[str] = None
    selector_set: Optional[str] = None


def strategy_key(url: str) -> str:
    """Diagnostic store ID holding the strategy that last worked for ``url``."""
    return f"strategy:{url}"


class SelectorEngine:
    """
    Four-tier review extraction with validation and confidence scoring.

    Usage:
        engine = SelectorEngine(diagnostic_store=store)
        result = engine.extract(page, ExtractionContext(url=url))
        if result.strategy_used is Strategy.NONE:
            print(result.diagnostics.suggested_fixes)
    """

    def __init__(
        self,
        diagnostic_store: Optional[DiagnosticStore] = None,
        content_extractor: Optional[ContentExtractor] = None,
        primary: SelectorSet = PRIMARY_SELECTOR_SET,
        secondary: Sequence[SelectorSet] = SECONDARY_SELECTOR_SETS,
        degraded_penalty: float = 0.85,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.diagnostic_store = diagnostic_store
        self.content_extractor = content_extractor or ContentExtractor()
        self.primary = primary
        self.secondary = tuple(secondary)
        self.degraded_penalty = degraded_penalty
        self._clock = clock

    # ── Public API ─────────────────────────────────────────────────

    def extract(self, page: PageHandle, context: Optional[ExtractionContext] = None) -> ExtractionResult:
        context = context or ExtractionContext()
        attempts: List[ExtractionAttempt] = []

        tiers: List[Tuple[Strategy, str, Callable[[], _TierOutcome]]] = [
            (Strategy.PRIMARY, f"primary:{self.primary.name}",
             lambda: self._run_selector_set(page, self.primary, context)),
        ]
        for selector_set in self._ordered_secondary(context.url):
            tiers.append((
                Strategy.SECONDARY, f"secondary:{selector_set.name}",
                lambda s=selector_set: self._run_selector_set(page, s, context),
            ))
        tiers.append((Strategy.CONTENT_BASED, "content-based", lambda: self._run_content(page, context)))
        tiers.append((Strategy.BRUTE_FORCE, "brute-force", lambda: self._run_brute_force(page, context)))

        for strategy, name, run in tiers:
            started = self._clock()
            try:
                outcome = run()
            except PageUnavailableError:
                raise
            except Exception as e:
                logger.warning(f"Extraction tier {name} raised: {e}")
                outcome = _TierOutcome(reviews=[], elements_found=0, failure_reason=f"error: {e}")

            if outcome.failure_reason is None:
                outcome.failure_reason = self._validate(outcome.reviews, context.min_reviews)

            attempt = ExtractionAttempt(
                strategy_name=name,
                tier_priority=TIER_PRIORITY[strategy],
                elements_found=outcome.elements_found,
                succeeded=outcome.failure_reason is None,
                failure_reason=outcome.failure_reason,
                elapsed_ms=(self._clock() - started) * 1000,
            )
            attempts.append(attempt)

            if attempt.succeeded:
                return self._accept(page, strategy, outcome, attempts, context)
            logger.debug(f"Tier {name} failed: {outcome.failure_reason}")

        return self._exhausted(page, attempts, context)

    # ── Tiers ──────────────────────────────────────────────────────

    def _run_selector_set(self, page: PageHandle, selector_set: SelectorSet, context: ExtractionContext) -> _TierOutcome:
        if context.expand_truncated and selector_set.expand_button:
            self._expand_truncated(page, selector_set.expand_button)

        containers = page.query_all(selector_set.container)
        if not containers:
            return _TierOutcome([], 0, f"no elements matched {selector_set.container}", selector_set.name)

        reviews: List[RawReview] = []
        seen = set()
        rating_elements = 0
        ratings_parsed = 0
        glyphs_seen = False

        for container in containers:
            author = _first_text(page.query_all(selector_set.author, within=container))
            text = _first_text(page.query_all(selector_set.text, within=container))
            date = _first_text(page.query_all(selector_set.date, within=container))

            rating = None
            for element in page.query_all(selector_set.rating, within=container):
                rating_elements += 1
                rating = _rating_from_element(element)
                if rating is not None:
                    ratings_parsed += 1
                    break
                if any(glyph in element.text for glyph in STAR_GLYPHS):
                    glyphs_seen = True

            if not (author or text or date or rating):
                # Skeleton card still loading
                continue

            review = RawReview.create(author, text, rating, date, original_url=context.url)
            if review.id not in seen:
                seen.add(review.id)
                reviews.append(review)

        outcome = _TierOutcome(reviews, len(containers), None, selector_set.name)
        if reviews and ratings_parsed == 0:
            if glyphs_seen:
                outcome.failure_reason = "star glyphs present, rating attribute absent"
            elif rating_elements:
                outcome.failure_reason = f"rating elements found but unparseable ({selector_set.rating})"
            else:
                outcome.failure_reason = f"no rating elements matched {selector_set.rating}"
        return outcome

    def _run_content(self, page: PageHandle, context: ExtractionContext) -> _TierOutcome:
        result = self.content_extractor.extract_by_content(page.page_text(), original_url=context.url)
        anchors = result.pattern_matches.get("date:anchor", 0)
        if not result.reviews:
            reason = "no date anchors in page text" if not anchors else "date anchors found but no review cleared the confidence floor"
            return _TierOutcome([], anchors, reason)
        return _TierOutcome(list(result.reviews), anchors)

    def _run_brute_force(self, page: PageHandle, context: ExtractionContext) -> _TierOutcome:
        elements = page.query_all(BRUTE_FORCE_CANDIDATES)
        groups: Dict[str, List[ElementDescriptor]] = {}
        for element in elements:
            if element.path:
                groups.setdefault(element.path, []).append(element)

        best: List[ElementDescriptor] = []
        best_score = (0, 0.0)
        for members in groups.values():
            if len(members) < 2:
                continue
            qualifying = [m for m in members if _has_rating_token(m) and _has_date_token(m)]
            if len(qualifying) < 2:
                continue
            score = (len(qualifying), sum(len(m.text) for m in qualifying) / len(qualifying))
            if score > best_score:
                best, best_score = qualifying, score

        if not best:
            return _TierOutcome([], len(elements), "no repeated sibling blocks with rating and date tokens")

        reviews: List[RawReview] = []
        seen = set()
        for element in best:
            labels = tuple(label for label in (element.aria_label, *element.labels) if label)
            review = self.content_extractor.parse_block(element.text, labels, original_url=context.url)
            if review is not None and review.id not in seen:
                seen.add(review.id)
                reviews.append(review)
        return _TierOutcome(reviews, len(best))

    # ── Validation and scoring ─────────────────────────────────────

    @staticmethod
    def _validate(reviews: Sequence[RawReview], min_reviews: int) -> Optional[str]:
        if len(reviews) < max(1, min_reviews):
            return f"found {len(reviews)} reviews, need at least {max(1, min_reviews)}"
        for review in reviews:
            if not review.author and not review.text:
                return "candidate without author or text"
            if review.rating is not None and not 1 <= review.rating <= 5:
                return f"rating {review.rating} outside 1-5"
        return None

    def _confidence(self, strategy: Strategy, reviews: Sequence[RawReview], degraded: bool) -> float:
        completeness = sum(_completeness(r) for r in reviews) / len(reviews) if reviews else 0.0
        confidence = TIER_CONFIDENCE[strategy] * (0.5 + 0.5 * completeness)
        if degraded:
            confidence *= self.degraded_penalty
        return round(max(0.0, min(1.0, confidence)), 3)

    def _accept(
        self,
        page: PageHandle,
        strategy: Strategy,
        outcome: _TierOutcome,
        attempts: List[ExtractionAttempt],
        context: ExtractionContext,
    ) -> ExtractionResult:
        confidence = self._confidence(strategy, outcome.reviews, context.degraded)
        low_confidence = confidence < context.min_confidence
        diagnostics = None

        if low_confidence:
            diagnostics = self._build_report(page, attempts, context)
            diagnostics.suggested_fixes.append(
                f"Extraction succeeded via {strategy.value} with confidence {confidence:.2f}; "
                "refresh the primary selector set"
            )
            self._store(None, context.url, {"kind": "low-confidence", **diagnostics.to_dict()}, Priority.MEDIUM)
            logger.warning(f"Low-confidence extraction ({confidence:.2f}) via {strategy.value}")

        if context.url and strategy is not Strategy.NONE:
            self._store(
                strategy_key(context.url),
                context.url,
                {"kind": "strategy", "strategy": strategy.value, "selector_set": outcome.selector_set},
                Priority.HIGH,
            )

        logger.debug(
            f"Extracted {len(outcome.reviews)} reviews via {strategy.value}"
            f"{'/' + outcome.selector_set if outcome.selector_set else ''} (confidence {confidence:.2f})"
        )
        return ExtractionResult(
            reviews=tuple(outcome.reviews),
            strategy_used=strategy,
            confidence=confidence,
            diagnostics=diagnostics,
            low_confidence=low_confidence,
            selector_set=outcome.selector_set,
        )

    def _exhausted(self, page: PageHandle, attempts: List[ExtractionAttempt], context: ExtractionContext) -> ExtractionResult:
        report = self._build_report(page, attempts, context)
        self._store(None, context.url, {"kind": "exhausted", **report.to_dict()}, Priority.CRITICAL)
        logger.error(f"All extraction tiers failed for {context.url or 'page'}: "
                     f"{[a.failure_reason for a in attempts]}")
        return ExtractionResult(
            reviews=(),
            strategy_used=Strategy.NONE,
            confidence=0.0,
            diagnostics=report,
            low_confidence=True,
        )

    # ── Diagnostics ────────────────────────────────────────────────

    def _build_report(self, page: PageHandle, attempts: List[ExtractionAttempt], context: ExtractionContext) -> DiagnosticReport:
        summary = self._dom_summary(page)
        fixes: List[str] = []

        reasons = [a.failure_reason or "" for a in attempts]
        if any("star glyphs present" in r for r in reasons):
            fixes.append("Star glyphs are rendered without a rating attribute; "
                         "update the rating selector to the element carrying aria-label")
        if all(a.elements_found == 0 for a in attempts if a.tier_priority <= 2):
            fixes.append("No review containers matched; the review panel may not be open "
                         "or the container class changed")
        if context.degraded:
            fixes.append("Page resources failed to load; retry the collection when the network is stable")
        if summary.get("ready_state") not in (None, "complete"):
            fixes.append("Document was still loading; increase the resource observation timeout")
        if not summary.get("text_length"):
            fixes.append("Page has no visible text; check for a consent or captcha interstitial")

        return DiagnosticReport(
            attempts=list(attempts),
            dom_summary=summary,
            resource_status=context.resource_status,
            suggested_fixes=fixes,
        )

    @staticmethod
    def _dom_summary(page: PageHandle) -> Dict[str, object]:
        summary: Dict[str, object] = {}
        try:
            summary["ready_state"] = page.ready_state()
            summary["container_counts"] = {s: len(page.query_all(s)) for s in REVIEW_CONTAINER_SELECTORS}
            text = page.page_text()
            summary["text_length"] = len(text)
            summary["star_glyphs"] = sum(text.count(g) for g in STAR_GLYPHS)
            summary["date_like_lines"] = sum(1 for line in text.splitlines() if looks_like_date(line))
        except PageUnavailableError:
            raise
        except Exception as e:
            summary["error"] = str(e)
        return summary

    # ── Learning loop ──────────────────────────────────────────────

    def learned_selector_set(self, url: str) -> Optional[str]:
        if self.diagnostic_store is None or not url:
            return None
        entry = self.diagnostic_store.get(strategy_key(url))
        if entry is None or not isinstance(entry.payload, dict):
            return None
        return entry.payload.get("selector_set")

    def _ordered_secondary(self, url: str) -> List[SelectorSet]:
        ordered = list(self.secondary)
        learned = self.learned_selector_set(url)
        for index, selector_set in enumerate(ordered):
            if selector_set.name == learned:
                ordered.insert(0, ordered.pop(index))
                break
        return ordered

    def _store(self, entry_id: Optional[str], url: str, payload: dict, priority: Priority) -> None:
        if self.diagnostic_store is not None:
            self.diagnostic_store.store(entry_id, url, payload, priority)

    @staticmethod
    def _expand_truncated(page: PageHandle, selector: str) -> None:
        for button in page.query_all(selector)[:MAX_EXPAND_CLICKS]:
            try:
                page.click(button)
            except PageActionError as e:
                logger.debug(f"Could not expand review: {e}")


def _first_text(elements: Sequence[ElementDescriptor]) -> str:
    for element in elements:
        text = element.text.strip()
        if text:
            return text
    return ""


def _rating_from_element(element: ElementDescriptor) -> Optional[int]:
    """Rating from aria-label, data attributes or "N/5" text. Glyphs are ignored."""
    for value in (element.aria_label, element.attr("data-rating"), element.attr("data-value")):
        if not value:
            continue
        if value.strip().isdigit() and 1 <= int(value.strip()) <= 5:
            return int(value.strip())
        match = parse_rating_text(value, allow_glyphs=False)
        if match:
            return match.value
    for label in element.labels:
        match = parse_rating_text(label, allow_glyphs=False)
        if match:
            return match.value
    match = parse_rating_text(element.text, allow_glyphs=False)
    return match.value if match else None


def _completeness(review: RawReview) -> float:
    present = sum(1 for value in (review.author, review.text, review.date) if value)
    present += 1 if review.rating is not None else 0
    return present / 4


def _has_rating_token(element: ElementDescriptor) -> bool:
    candidates = (element.aria_label, *element.labels, *element.text.splitlines())
    return any(parse_rating_text(c, allow_glyphs=False) for c in candidates if c)


def _has_date_token(element: ElementDescriptor) -> bool:
    return any(looks_like_date(line) for line in element.text.splitlines() if line.strip())
