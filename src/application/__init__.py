# Application Layer
# =================
# Use cases that wire the domain to the browser-facing infrastructure:
# - collection_orchestrator.py: recent / worst / best phases, then deduplication
# - progress_tracker.py: per-session progress snapshots and subscriber sinks
