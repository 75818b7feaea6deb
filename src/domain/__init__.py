# Domain Layer
# ============
# Pure review-collection logic with no browser or framework dependencies:
# - models.py: reviews, extraction diagnostics, progress and results
# - collection_config.py: per-request targets, timeouts and retry limits
# - deduplication.py: cross-category merge with deterministic priority
# - maps_url.py: checks that a URL is a Google Maps place link
# - errors.py: the CollectionError hierarchy
