"""
Unit tests for selector-free content extraction and date/rating parsing.
"""

from datetime import datetime, timedelta

import pytest

from src.infrastructure.scraper.content_extractor import (
    ContentExtractor,
    looks_like_date,
    parse_rating_text,
    resolve_review_date,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.mark.parametrize("text,expected", [
    ("4 stars", 4),
    ("Rated 4.0 out of 5,", 4),
    ("3 out of 5", 3),
    ("5/5", 5),
    ("1 star", 1),
    ("4 כוכבים", 4),
])
def test_textual_ratings(text, expected):
    assert parse_rating_text(text).value == expected


def test_glyph_runs_only_when_allowed():
    assert parse_rating_text("★★★★☆").value == 4
    assert parse_rating_text("★★★★★").confidence == 0.7
    assert parse_rating_text("★★★").confidence < 0.7
    assert parse_rating_text("★★★★☆", allow_glyphs=False) is None


def test_non_ratings():
    assert parse_rating_text("") is None
    assert parse_rating_text("12 reviews") is None
    assert parse_rating_text("Open until 10 pm") is None
    assert parse_rating_text("7 stars") is None


@pytest.mark.parametrize("text", [
    "2 weeks ago", "a month ago", "לפני שבוע", "לפני 3 חודשים", "hace 2 días",
    "vor 3 Wochen", "il y a 2 mois", "Mar 4, 2024", "2024-01-15", "yesterday",
])
def test_dates_in_several_languages(text):
    assert looks_like_date(text)


def test_not_dates():
    assert not looks_like_date("Great food")
    assert not looks_like_date("Waited forty minutes for a table")


def test_resolve_relative_dates():
    assert resolve_review_date("3 days ago", now=NOW) == NOW - timedelta(days=3)
    assert resolve_review_date("a week ago", now=NOW) == NOW - timedelta(days=7)
    assert resolve_review_date("2 months ago", now=NOW) == NOW - timedelta(days=60)
    assert resolve_review_date("לפני שבועיים", now=NOW) == NOW - timedelta(days=14)
    assert resolve_review_date("לפני שנה", now=NOW) == NOW - timedelta(days=365)
    assert resolve_review_date("hace 2 días", now=NOW) == NOW - timedelta(days=2)
    assert resolve_review_date("today", now=NOW) == NOW


def test_resolve_absolute_dates():
    assert resolve_review_date("2024-01-15", now=NOW) == datetime(2024, 1, 15)
    assert resolve_review_date("Mar 4, 2024", now=NOW) == datetime(2024, 3, 4)
    assert resolve_review_date("4 March 2024", now=NOW) == datetime(2024, 3, 4)
    assert resolve_review_date("no date here", now=NOW) is None


def test_extract_by_content():
    text = """
    Dana Levi
    5 stars
    a week ago
    Wonderful staff and great coffee every morning.
    Like
    Share
    Avi Cohen
    2 months ago
    The parking situation is terrible on weekends here.
    """
    result = ContentExtractor().extract_by_content(text, original_url="https://maps/x")

    assert len(result.reviews) == 2
    dana, avi = result.reviews
    assert (dana.author, dana.rating, dana.date) == ("Dana Levi", 5, "a week ago")
    assert dana.text == "Wonderful staff and great coffee every morning."
    assert dana.original_url == "https://maps/x"

    # No rating found: kept, unrated
    assert avi.author == "Avi Cohen"
    assert avi.rating is None
    assert result.pattern_matches["date:anchor"] == 2
    assert result.pattern_matches["rating:n-stars"] == 1
    assert len(result.review_confidences) == 2


def test_owner_response_date_is_not_a_review():
    text = "\n".join([
        "Dana Levi",
        "5 stars",
        "a week ago",
        "Wonderful staff and great coffee every morning.",
        "Response from the owner",
        "3 days ago",
        "Thank you Dana, see you soon!",
    ])
    result = ContentExtractor().extract_by_content(text)

    assert len(result.reviews) == 1
    assert result.reviews[0].text == "Wonderful staff and great coffee every morning."


def test_low_confidence_candidates_are_dropped():
    # Date with nothing around it
    result = ContentExtractor().extract_by_content("3 days ago\nok")
    assert result.reviews == ()
    assert result.pattern_matches["date:anchor"] == 1


def test_empty_text():
    result = ContentExtractor().extract_by_content("")
    assert result.reviews == ()
    assert result.confidence == 0.0


def test_parse_block_uses_labels_for_rating():
    review = ContentExtractor().parse_block(
        "Noa\n★★★★★\n2 weeks ago\nBest shakshuka in town, will come back",
        labels=("Rated 5 out of 5",),
    )
    assert review.author == "Noa"
    assert review.rating == 5
    assert review.text == "Best shakshuka in town, will come back"


def test_parse_block_ignores_glyphs_without_label():
    review = ContentExtractor().parse_block("Noa\n★★★★★\n2 weeks ago\nBest shakshuka in town")
    assert review.rating is None


def test_review_text_mentioning_reviews_is_kept():
    text = "\n".join([
        "Dana Levi",
        "Local Guide · 45 reviews · 120 photos",
        "5 stars",
        "a week ago",
        "I read the reviews before coming and the pasta was even better than promised.",
        "Avi Cohen",
        "2 months ago",
        "Photos · honestly they do not do the terrace justice",
    ])
    result = ContentExtractor().extract_by_content(text)

    assert {r.author: r.text for r in result.reviews} == {
        "Dana Levi": "I read the reviews before coming and the pasta was even better than promised.",
        "Avi Cohen": "Photos · honestly they do not do the terrace justice",
    }


def test_parse_block_skips_profile_line_only():
    review = ContentExtractor().parse_block(
        "Noa\nLocal Guide · 12 reviews\n2 weeks ago\n3 photos\nGreat avis from friends, nice place",
        labels=("Rated 4 out of 5",),
    )
    assert review.author == "Noa"
    assert review.text == "Great avis from friends, nice place"
