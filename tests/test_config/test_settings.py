"""
Unit tests for environment-driven settings and the CLI option mapping.
"""

from src.domain.collection_config import ScrollStrategy
from src.infrastructure.config import Settings

from run_collection import build_parser, config_from_args


def test_defaults(monkeypatch):
    for name in ("COLLECTION_TARGET_PER_CATEGORY", "COLLECTION_SCROLL_STRATEGY", "COLLECTION_TOTAL_TIMEOUT",
                 "COLLECTION_PAGINATION_TIMEOUT", "EXTRACTION_MIN_CONFIDENCE", "DIAGNOSTICS_MAX_ENTRIES",
                 "BROWSER_HEADLESS"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()

    config = settings.default_collection_config()
    assert config.target_counts.recent == 100
    assert config.scroll_strategy is ScrollStrategy.ADAPTIVE
    assert config.timeouts.total_collection == 300.0
    assert settings.validate() == []


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("COLLECTION_TARGET_PER_CATEGORY", "40")
    monkeypatch.setenv("COLLECTION_SCROLL_STRATEGY", "conservative")
    monkeypatch.setenv("DIAGNOSTICS_MAX_ENTRIES", "not-a-number")

    settings = Settings()
    config = settings.default_collection_config()

    assert config.target_counts.best == 40
    assert config.scroll_strategy is ScrollStrategy.CONSERVATIVE
    # Unparseable values fall back to the default
    assert settings.diagnostics.max_entries == 1000


def test_validate_reports_problems(monkeypatch):
    monkeypatch.setenv("COLLECTION_SCROLL_STRATEGY", "sideways")
    monkeypatch.setenv("COLLECTION_TOTAL_TIMEOUT", "10")
    monkeypatch.setenv("BROWSER_HEADLESS", "false")

    issues = Settings().validate()

    assert any("COLLECTION_SCROLL_STRATEGY" in i for i in issues)
    assert any("COLLECTION_TOTAL_TIMEOUT" in i for i in issues)
    assert any("BROWSER_HEADLESS" in i for i in issues)


def test_unknown_scroll_strategy_falls_back_to_adaptive(monkeypatch):
    monkeypatch.setenv("COLLECTION_SCROLL_STRATEGY", "sideways")

    config = Settings().default_collection_config()

    assert config.scroll_strategy is ScrollStrategy.ADAPTIVE


def test_cli_options_override_defaults(monkeypatch):
    monkeypatch.delenv("COLLECTION_TARGET_PER_CATEGORY", raising=False)
    monkeypatch.delenv("COLLECTION_SCROLL_STRATEGY", raising=False)
    defaults = Settings().default_collection_config()
    args = build_parser().parse_args([
        "https://www.google.com/maps/place/Cafe+Noa",
        "--worst", "25", "--timeout", "120", "--strategy", "aggressive",
    ])

    config = config_from_args(args, defaults)

    assert config.target_counts.recent == 100
    assert config.target_counts.worst == 25
    assert config.timeouts.total_collection == 120.0
    assert config.scroll_strategy is ScrollStrategy.AGGRESSIVE


def test_cli_rejects_non_maps_url(capsys):
    from run_collection import run_collection

    assert run_collection(["https://example.com/restaurant"]) == 2
    assert "Google Maps" in capsys.readouterr().out
