"""
Collection Errors
=================

Every failure the collection core can name. ``ValidationError`` is raised
to the caller before a session starts. ``PageUnavailableError`` ends the
session with status "error" and partial results. The rest are recoverable
and end up as warnings in the result metadata.
"""


class CollectionError(Exception):
    """Base exception for review collection errors."""

    recoverable = True


class ValidationError(CollectionError):
    """Raised when a collection config or target is invalid."""

    recoverable = False

    def __init__(self, issues):
        if isinstance(issues, str):
            issues = [issues]
        self.issues = list(issues)
        super().__init__("; ".join(self.issues))


class NavigationFailure(CollectionError):
    """Sort control not found or not clickable. Default order is used instead."""
    pass


class PaginationStall(CollectionError):
    """Reveal actions stopped producing new reviews."""
    pass


class ResourceDegraded(CollectionError):
    """Page resources failed to load; extraction runs with lower confidence."""
    pass


class CollectionTimeout(CollectionError):
    """A phase or the whole session ran out of time."""
    pass


class ExtractionExhausted(CollectionError):
    """All selector tiers failed for one extraction call."""
    pass


class PageUnavailableError(CollectionError):
    """The page handle was destroyed or can no longer be reached."""

    recoverable = False
