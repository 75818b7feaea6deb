from .settings import (
    BrowserSettings,
    CollectionDefaults,
    DiagnosticSettings,
    ExtractionSettings,
    Settings,
    WebSettings,
    get_settings,
)

__all__ = [
    "BrowserSettings",
    "CollectionDefaults",
    "DiagnosticSettings",
    "ExtractionSettings",
    "Settings",
    "WebSettings",
    "get_settings",
]
