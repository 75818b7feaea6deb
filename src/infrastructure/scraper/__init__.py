from .content_extractor import ContentExtractor, resolve_review_date
from .pagination_engine import PaginationEngine, PaginationOptions
from .resource_monitor import ResourceMonitor
from .selector_engine import ExtractionContext, SelectorEngine
from .sort_navigation import SortNavigationService

__all__ = [
    "ContentExtractor",
    "ExtractionContext",
    "PaginationEngine",
    "PaginationOptions",
    "ResourceMonitor",
    "SelectorEngine",
    "SortNavigationService",
    "resolve_review_date",
]
