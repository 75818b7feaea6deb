"""
Review Exporter - Excel/CSV Export
==================================

Writes collection results to .xlsx or .csv with pandas.
One row per unique review, with the category it was attributed to and the
review date resolved to an absolute timestamp where possible.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ...domain.models import ComprehensiveCollectionResult
from ..scraper.content_extractor import resolve_review_date

logger = logging.getLogger(__name__)

REVIEW_COLUMNS = ['id', 'category', 'author', 'rating', 'text', 'date', 'resolved_date', 'original_url']
SUPPORTED_FORMATS = ['.xlsx', '.csv']


class ReviewExporter:
    """
    Export collected reviews to a spreadsheet.

    Usage:
        exporter = ReviewExporter()
        path = exporter.export(result, "exports/reviews.xlsx")
        # .xlsx gets a second "summary" sheet with per-category counts
    """

    def __init__(self, now: Optional[datetime] = None):
        # Reference time for relative dates ("3 weeks ago")
        self.now = now

    def to_frame(self, result: ComprehensiveCollectionResult) -> pd.DataFrame:
        """One row per unique review, in collection order."""
        now = self.now or datetime.now()
        rows: List[Dict] = []

        for review in result.unique_reviews:
            category = result.category_of(review)
            resolved = resolve_review_date(review.date, now=now)
            rows.append({
                'id': review.id,
                'category': category.value if category else '',
                'author': review.author,
                'rating': review.rating,
                'text': review.text,
                'date': review.date,
                'resolved_date': resolved.strftime('%Y-%m-%d') if resolved else '',
                'original_url': review.original_url,
            })

        return pd.DataFrame(rows, columns=REVIEW_COLUMNS)

    def summary_frame(self, result: ComprehensiveCollectionResult) -> pd.DataFrame:
        """Per-category target / collected / unique counts."""
        counts = result.metadata.per_category_counts
        rows = [
            {'category': category, **values}
            for category, values in counts.items()
        ]
        return pd.DataFrame(rows, columns=['category', 'target', 'collected', 'unique'])

    def export(self, result: ComprehensiveCollectionResult, file_path: str) -> Path:
        """
        Write ``result`` to ``file_path``.

        Args:
            result: Finished collection
            file_path: Destination (.xlsx or .csv)

        Returns:
            The written path
        """
        path = Path(file_path)
        ext = path.suffix.lower()
        if ext not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported file format: {ext}. Use .xlsx or .csv")

        path.parent.mkdir(parents=True, exist_ok=True)
        df = self.to_frame(result)

        try:
            if ext == '.csv':
                df.to_csv(path, index=False, encoding='utf-8')
            else:
                with pd.ExcelWriter(path, engine='openpyxl') as writer:
                    df.to_excel(writer, sheet_name='reviews', index=False)
                    self.summary_frame(result).to_excel(writer, sheet_name='summary', index=False)
        except Exception as e:
            logger.error(f"Failed to write export: {e}")
            raise

        logger.info(f"Exported {len(df)} reviews to {path}")
        return path


def export_reviews(result: ComprehensiveCollectionResult, file_path: str) -> Path:
    """Convenience wrapper around ReviewExporter.export."""
    return ReviewExporter().export(result, file_path)
