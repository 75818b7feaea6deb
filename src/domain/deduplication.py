"""
Review Deduplication
====================

Merges the recent / worst / best collections into one list of unique
reviews. Categories are walked in priority order (recent first by default)
and the first copy of a review wins; every later copy is kept aside in a
DuplicateGroup so the merge can be audited.

Identity is checked in this order:
1. exact review ID
2. content hash (lowercased, whitespace-collapsed text + rounded rating)
3. optional fuzzy match (Jaccard word overlap, same author and rating)

The service is pure: the input lists are never modified and the same input
always yields the same output.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .models import DEFAULT_PRIORITY_ORDER, DuplicateGroup, RawReview, SortType

logger = logging.getLogger(__name__)

REASON_EXACT_ID = "exact-id"
REASON_CONTENT_HASH = "content-hash"
REASON_NEAR_DUPLICATE = "near-duplicate"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class DeduplicationResult:
    unique_reviews: Tuple[RawReview, ...]
    duplicate_groups: Tuple[DuplicateGroup, ...]
    attribution: Dict[str, SortType]
    duplicates_removed: int
    total_input: int

    def by_category(self) -> Dict[SortType, Tuple[RawReview, ...]]:
        """Unique reviews grouped by the category they were kept from."""
        grouped: Dict[SortType, List[RawReview]] = {sort_type: [] for sort_type in SortType}
        for review in self.unique_reviews:
            grouped[self.attribution[review.id]].append(review)
        return {sort_type: tuple(reviews) for sort_type, reviews in grouped.items()}


class ReviewDeduplicationService:
    """
    Cross-category review deduplication.

    USAGE:
        service = ReviewDeduplicationService()
        result = service.deduplicate({"recent": recent, "worst": worst, "best": best})
        print(result.duplicates_removed)

    Short texts ("Great!") are hashed together with the author so two
    different people leaving the same one-word review are not merged.
    """

    def __init__(self, fuzzy_threshold: Optional[float] = None, short_text_length: int = 20):
        self.fuzzy_threshold = fuzzy_threshold
        self.short_text_length = short_text_length

    def deduplicate(
        self,
        collections: Mapping[Union[SortType, str], Sequence[RawReview]],
        priority_order: Iterable[Union[SortType, str]] = DEFAULT_PRIORITY_ORDER,
    ) -> DeduplicationResult:
        normalized = {SortType(key) if isinstance(key, str) else key: reviews for key, reviews in collections.items()}
        order = self._resolve_order(priority_order, normalized)

        unique: List[RawReview] = []
        attribution: Dict[str, SortType] = {}
        by_id: Dict[str, RawReview] = {}
        by_content: Dict[str, RawReview] = {}
        groups: Dict[Tuple[str, str], List[RawReview]] = {}
        kept_lookup: Dict[str, RawReview] = {}
        total = 0

        for category in order:
            for review in normalized.get(category, ()):
                total += 1
                kept, reason = self._find_existing(review, by_id, by_content, unique)

                if kept is not None:
                    groups.setdefault((kept.id, reason), []).append(review)
                    kept_lookup[kept.id] = kept
                    continue

                unique.append(review)
                attribution[review.id] = category
                by_id[review.id] = review
                content_key = self.content_key(review)
                if content_key is not None:
                    by_content.setdefault(content_key, review)

        duplicate_groups = tuple(
            DuplicateGroup(kept_review=kept_lookup[kept_id], reviews=tuple(reviews), reason=reason)
            for (kept_id, reason), reviews in groups.items()
        )
        removed = total - len(unique)
        logger.debug(f"Deduplication: {total} in, {len(unique)} unique, {removed} removed")

        return DeduplicationResult(
            unique_reviews=tuple(unique),
            duplicate_groups=duplicate_groups,
            attribution=attribution,
            duplicates_removed=removed,
            total_input=total,
        )

    def content_key(self, review: RawReview) -> Optional[str]:
        """Hash of normalized text and rounded rating, or None when there is nothing to hash."""
        text = _normalize(review.text)
        author = _normalize(review.author)
        if not text and not author:
            return None

        rating = "unrated" if review.rating is None else str(int(round(review.rating)))
        parts = [text, rating]
        if len(text) < self.short_text_length:
            parts.insert(0, author)
        return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()

    def _find_existing(
        self,
        review: RawReview,
        by_id: Dict[str, RawReview],
        by_content: Dict[str, RawReview],
        unique: List[RawReview],
    ) -> Tuple[Optional[RawReview], str]:
        if review.id in by_id:
            return by_id[review.id], REASON_EXACT_ID

        content_key = self.content_key(review)
        if content_key is not None and content_key in by_content:
            return by_content[content_key], REASON_CONTENT_HASH

        if self.fuzzy_threshold is not None:
            match = self._find_near_duplicate(review, unique)
            if match is not None:
                return match, REASON_NEAR_DUPLICATE

        return None, ""

    def _find_near_duplicate(self, review: RawReview, existing: List[RawReview]) -> Optional[RawReview]:
        author = _normalize(review.author)
        for candidate in existing:
            if _normalize(candidate.author) != author or candidate.rating != review.rating:
                continue
            if jaccard_similarity(review.text, candidate.text) >= self.fuzzy_threshold:
                return candidate
        return None

    @staticmethod
    def _resolve_order(priority_order, collections) -> List[SortType]:
        order: List[SortType] = []
        for item in priority_order:
            sort_type = SortType(item) if isinstance(item, str) else item
            if sort_type not in order:
                order.append(sort_type)
        # Categories missing from the priority order still get merged, last
        for sort_type in SortType:
            if sort_type in collections and sort_type not in order:
                order.append(sort_type)
        return order


def jaccard_similarity(text1: str, text2: str) -> float:
    """Word-set overlap between two texts, 0.0 to 1.0."""
    normalized1 = _normalize(text1)
    normalized2 = _normalize(text2)
    if normalized1 == normalized2:
        return 1.0

    words1 = {w for w in normalized1.split(" ") if len(w) > 1}
    words2 = {w for w in normalized2.split(" ") if len(w) > 1}
    if not words1 and not words2:
        return 1.0
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def _normalize(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()
