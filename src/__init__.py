# Review Collector - Maps Review Collection Core
# =============================================
# Collects a target number of reviews for each of three sort orders
# (most recent, lowest rated, highest rated) and merges them without
# duplicates, using Layered Architecture:
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI app and CLI runner
# - Application:    Collection orchestration and progress tracking
# - Domain:         Models, config validation and deduplication
# - Infrastructure: Browser pages, selector tiers, pagination, diagnostics
#
# The browser sits behind the PageHandle interface, so Selenium can be
# swapped for another driver without touching the layers above.
