"""
Review IDs
==========

Stable identifiers for scraped reviews. The same review yields the same ID
no matter which sort order surfaced it, so IDs can be compared across
categories.
"""

import re
from typing import Optional

MAX_ID_LENGTH = 200
TEXT_PREFIX_LENGTH = 50

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def normalize_review_id(raw_id: str) -> str:
    """Strip control characters, collapse whitespace and cap the length."""
    cleaned = _CONTROL_CHARS.sub(" ", raw_id or "")
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:MAX_ID_LENGTH]


def create_review_id(author: Optional[str], text: Optional[str], rating: Optional[int]) -> str:
    """
    Build a review ID from its author, the first 50 characters of its text
    and its rating.
    """
    normalized_author = _CONTROL_CHARS.sub(" ", author or "unknown").strip()
    normalized_text = _CONTROL_CHARS.sub(" ", text or "no-text").strip()[:TEXT_PREFIX_LENGTH]
    normalized_rating = rating or 0
    return normalize_review_id(f"{normalized_author}_{normalized_text}_{normalized_rating}")


def is_valid_review_id(review_id: str) -> bool:
    return (
        bool(review_id)
        and len(review_id) <= MAX_ID_LENGTH
        and not _CONTROL_CHARS.search(review_id)
    )
