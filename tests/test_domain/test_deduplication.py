"""
Unit tests for cross-category review deduplication.
"""

from src.domain.deduplication import (
    REASON_CONTENT_HASH,
    REASON_EXACT_ID,
    REASON_NEAR_DUPLICATE,
    ReviewDeduplicationService,
    jaccard_similarity,
)
from src.domain.models import RawReview, SortType


def review(author, text, rating, date=""):
    return RawReview.create(author, text, rating, date)


def test_recent_copy_wins_over_worst():
    """A review present in recent and worst is attributed to recent."""
    shared = review("Dana", "Slow service but the pasta was excellent", 2)
    result = ReviewDeduplicationService().deduplicate({
        SortType.RECENT: [shared],
        SortType.WORST: [shared],
        SortType.BEST: [],
    })

    assert len(result.unique_reviews) == 1
    assert result.attribution[shared.id] is SortType.RECENT
    assert result.duplicates_removed == 1
    assert result.duplicate_groups[0].reason == REASON_EXACT_ID
    assert result.duplicate_groups[0].kept_review == shared


def test_custom_priority_order():
    shared = review("Dana", "Slow service but the pasta was excellent", 2)
    result = ReviewDeduplicationService().deduplicate(
        {"recent": [shared], "worst": [shared]},
        priority_order=["worst", "recent", "best"],
    )
    assert result.attribution[shared.id] is SortType.WORST


def test_content_hash_catches_whitespace_and_case_variants():
    first = review("Dana", "Great coffee, friendly staff and quick service", 5)
    second = review("Dana K.", "great  coffee, FRIENDLY staff and quick service", 5)
    assert first.id != second.id

    result = ReviewDeduplicationService().deduplicate({SortType.RECENT: [first], SortType.BEST: [second]})
    assert len(result.unique_reviews) == 1
    assert result.duplicate_groups[0].reason == REASON_CONTENT_HASH


def test_short_texts_from_different_authors_are_kept():
    result = ReviewDeduplicationService().deduplicate({
        SortType.RECENT: [review("Dana", "Great!", 5)],
        SortType.BEST: [review("Avi", "Great!", 5)],
    })
    assert len(result.unique_reviews) == 2
    assert result.duplicates_removed == 0


def test_same_text_different_rating_is_not_a_duplicate():
    text = "The room was clean and the breakfast was fine"
    result = ReviewDeduplicationService().deduplicate({
        SortType.WORST: [review("Dana", text, 2)],
        SortType.BEST: [review("Dana", text, 4)],
    })
    assert len(result.unique_reviews) == 2


def test_invariants_hold():
    """unique + removed == input, and every unique review is attributed."""
    recent = [review(f"R{i}", f"Recent review number {i} with enough words", i % 5 + 1) for i in range(10)]
    worst = recent[:4] + [review("W", "Worst only review with plenty of words", 1)]
    best = recent[6:] + [review("B", "Best only review with plenty of words", 5)]

    result = ReviewDeduplicationService().deduplicate({"recent": recent, "worst": worst, "best": best})

    assert result.total_input == 10 + 5 + 5
    assert len(result.unique_reviews) + result.duplicates_removed == result.total_input
    assert len(result.unique_reviews) == 12
    assert set(result.attribution) == {r.id for r in result.unique_reviews}
    by_category = result.by_category()
    assert len(by_category[SortType.RECENT]) == 10
    assert len(by_category[SortType.WORST]) == 1
    assert len(by_category[SortType.BEST]) == 1


def test_deduplication_is_idempotent():
    recent = [review("Dana", "Lovely evening on the terrace with friends", 5)]
    worst = [review("Avi", "Cold food and a long wait for the bill", 1)] + recent
    service = ReviewDeduplicationService()

    first = service.deduplicate({"recent": recent, "worst": worst})
    second = service.deduplicate({"recent": list(first.unique_reviews)})

    assert second.unique_reviews == first.unique_reviews
    assert second.duplicates_removed == 0


def test_inputs_are_not_modified():
    recent = [review("Dana", "Lovely evening on the terrace with friends", 5)]
    worst = list(recent)
    ReviewDeduplicationService().deduplicate({"recent": recent, "worst": worst})
    assert len(recent) == 1 and len(worst) == 1


def test_near_duplicates_only_with_fuzzy_threshold():
    first = review("Dana", "Amazing pizza and a very friendly waiter tonight", 5)
    second = review("Dana", "Amazing pizza and a very friendly waiter", 5)

    strict = ReviewDeduplicationService().deduplicate({"recent": [first], "best": [second]})
    assert len(strict.unique_reviews) == 2

    fuzzy = ReviewDeduplicationService(fuzzy_threshold=0.8).deduplicate({"recent": [first], "best": [second]})
    assert len(fuzzy.unique_reviews) == 1
    assert fuzzy.duplicate_groups[0].reason == REASON_NEAR_DUPLICATE


def test_jaccard_similarity():
    assert jaccard_similarity("a b c", "A  B C") == 1.0
    assert jaccard_similarity("good food", "bad service") == 0.0
    assert jaccard_similarity("good food here", "good food there") == 0.5
