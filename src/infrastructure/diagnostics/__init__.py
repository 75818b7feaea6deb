from .diagnostic_store import DiagnosticEntry, DiagnosticStore, DiagnosticStoreStats, Priority

__all__ = ["DiagnosticEntry", "DiagnosticStore", "DiagnosticStoreStats", "Priority"]
