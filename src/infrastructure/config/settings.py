"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (.env supported)
- Settings are immutable dataclasses for safety and clarity
- Single source of truth for process-wide values; per-request options
  live in CollectionConfig and take their defaults from here

EXTENSIBILITY:
- To add a browser backend: add a BrowserSettings field and read it in
  the new PageHandle implementation
- To tune extraction per deployment: override the EXTRACTION_* variables
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Tuple

from dotenv import load_dotenv

from ...domain.collection_config import CollectionConfig, RetryLimits, ScrollStrategy, TargetCounts, Timeouts
from ..scraper.resource_monitor import DEFAULT_CRITICAL_PATTERNS

# Load .env file if present (development convenience)
load_dotenv()


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    try:
        return float(value) if value not in (None, "") else default
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BrowserSettings:
    """Chrome / Selenium settings."""

    headless: bool = field(default_factory=lambda: _env_bool("BROWSER_HEADLESS", True))
    window_size: str = field(default_factory=lambda: _env_str("BROWSER_WINDOW_SIZE", "1920,1080"))
    language: str = field(default_factory=lambda: _env_str("BROWSER_LANGUAGE", "en"))
    page_load_timeout: int = field(default_factory=lambda: _env_int("BROWSER_PAGE_LOAD_TIMEOUT", 30))

    # User agent to avoid blocking
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )


@dataclass(frozen=True)
class ExtractionSettings:
    """Selector engine and resource monitor settings."""

    # Minimum reviews a tier must return to pass validation
    min_reviews_per_tier: int = field(default_factory=lambda: _env_int("EXTRACTION_MIN_REVIEWS", 1))
    min_confidence: float = field(default_factory=lambda: _env_float("EXTRACTION_MIN_CONFIDENCE", 0.5))

    # Confidence multiplier applied while the page is degraded
    degraded_penalty: float = 0.85

    resource_timeout_ms: int = field(default_factory=lambda: _env_int("RESOURCE_TIMEOUT_MS", 10000))
    max_failed_resources: int = 5
    critical_resource_patterns: Tuple[str, ...] = DEFAULT_CRITICAL_PATTERNS


@dataclass(frozen=True)
class DiagnosticSettings:
    """Diagnostic store bounds."""

    max_entries: int = field(default_factory=lambda: _env_int("DIAGNOSTICS_MAX_ENTRIES", 1000))
    max_memory_mb: float = field(default_factory=lambda: _env_float("DIAGNOSTICS_MAX_MEMORY_MB", 100.0))

    # Retention per priority, in hours
    retention_hours: Dict[str, float] = field(
        default_factory=lambda: {"critical": 24.0, "high": 12.0, "medium": 6.0, "low": 1.0}
    )


@dataclass(frozen=True)
class CollectionDefaults:
    """Defaults for CollectionConfig when a request leaves a field out."""

    target_per_category: int = field(default_factory=lambda: _env_int("COLLECTION_TARGET_PER_CATEGORY", 100))
    sort_navigation_timeout: float = field(default_factory=lambda: _env_float("COLLECTION_SORT_TIMEOUT", 10.0))
    pagination_timeout: float = field(default_factory=lambda: _env_float("COLLECTION_PAGINATION_TIMEOUT", 30.0))
    total_timeout: float = field(default_factory=lambda: _env_float("COLLECTION_TOTAL_TIMEOUT", 300.0))
    sorting_attempts: int = 3
    pagination_attempts: int = 5
    scroll_strategy: str = field(default_factory=lambda: _env_str("COLLECTION_SCROLL_STRATEGY", "adaptive"))
    max_reveals: int = field(default_factory=lambda: _env_int("COLLECTION_MAX_REVEALS", 150))

    def strategy(self) -> ScrollStrategy:
        """The configured scroll strategy; unknown names fall back to adaptive."""
        try:
            return ScrollStrategy(self.scroll_strategy)
        except ValueError:
            return ScrollStrategy.ADAPTIVE

    def to_config(self, min_confidence: float = 0.5) -> CollectionConfig:
        target = self.target_per_category
        return CollectionConfig(
            target_counts=TargetCounts(recent=target, worst=target, best=target),
            timeouts=Timeouts(
                sort_navigation=self.sort_navigation_timeout,
                pagination=self.pagination_timeout,
                total_collection=self.total_timeout,
            ),
            retry_limits=RetryLimits(
                sorting_attempts=self.sorting_attempts,
                pagination_attempts=self.pagination_attempts,
            ),
            scroll_strategy=self.strategy(),
            max_reveals=self.max_reveals,
            min_confidence=min_confidence,
        )


@dataclass(frozen=True)
class WebSettings:
    """Web server settings."""

    host: str = field(default_factory=lambda: _env_str("WEB_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("WEB_PORT", 8000))
    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO"))

    # Finished sessions kept in memory for result lookups
    max_sessions: int = field(default_factory=lambda: _env_int("WEB_MAX_SESSIONS", 50))


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from src.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.browser.headless)
    """

    # Sub-settings groups
    browser: BrowserSettings = field(default_factory=BrowserSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    diagnostics: DiagnosticSettings = field(default_factory=DiagnosticSettings)
    collection: CollectionDefaults = field(default_factory=CollectionDefaults)
    web: WebSettings = field(default_factory=WebSettings)

    # File paths
    export_dir: Path = field(
        default_factory=lambda: Path(os.getenv("EXPORT_DIR", "exports"))
    )

    def default_collection_config(self) -> CollectionConfig:
        return self.collection.to_config(min_confidence=self.extraction.min_confidence)

    def validate(self) -> list:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if self.collection.scroll_strategy not in {s.value for s in ScrollStrategy}:
            issues.append(
                f"WARNING: COLLECTION_SCROLL_STRATEGY '{self.collection.scroll_strategy}' is not one of "
                "aggressive, conservative, adaptive; using adaptive."
            )

        if not 0.0 <= self.extraction.min_confidence <= 1.0:
            issues.append("ERROR: EXTRACTION_MIN_CONFIDENCE must be between 0 and 1.")

        if self.collection.total_timeout < self.collection.pagination_timeout:
            issues.append(
                "WARNING: COLLECTION_TOTAL_TIMEOUT is shorter than one pagination phase. "
                "Later categories will be skipped."
            )

        if not self.browser.headless:
            issues.append("WARNING: BROWSER_HEADLESS is off. A visible Chrome window will open.")

        if self.diagnostics.max_entries < 1:
            issues.append("ERROR: DIAGNOSTICS_MAX_ENTRIES must be at least 1.")

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
