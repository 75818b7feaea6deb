"""
Collection Runner - Single Review Collection
============================================

Opens Chrome, collects the most recent, worst and best reviews of one Maps
place and exports the unique reviews to Excel or CSV.

Usage:
    python run_collection.py "https://www.google.com/maps/place/..." \
        --recent 50 --worst 50 --best 50 --output exports/reviews.xlsx
"""

import argparse
import logging
import sys
from datetime import datetime

from src.application.collection_orchestrator import CollectionOrchestrator
from src.application.progress_tracker import ProgressTracker
from src.domain.collection_config import CollectionConfig, ScrollStrategy
from src.domain.errors import ValidationError
from src.domain.maps_url import require_maps_url
from src.domain.models import CollectionStatus
from src.infrastructure.browser.selenium_page import SeleniumPageHandle
from src.infrastructure.config import get_settings
from src.infrastructure.exporter import ReviewExporter

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Collect Google Maps reviews for one place.")
    parser.add_argument("url", help="Maps place URL")
    parser.add_argument("--recent", type=int, help="Target for most recent reviews")
    parser.add_argument("--worst", type=int, help="Target for lowest rated reviews")
    parser.add_argument("--best", type=int, help="Target for highest rated reviews")
    parser.add_argument("--timeout", type=float, help="Total collection timeout in seconds")
    parser.add_argument("--strategy", choices=[s.value for s in ScrollStrategy], help="Scroll strategy")
    parser.add_argument("--output", help="Export path (.xlsx or .csv)")
    parser.add_argument("--show-browser", action="store_true", help="Run Chrome with a visible window")
    return parser


def config_from_args(args, defaults: CollectionConfig) -> CollectionConfig:
    data = {"target_counts": {}}
    for category in ("recent", "worst", "best"):
        value = getattr(args, category)
        if value is not None:
            data["target_counts"][category] = value
    if args.timeout is not None:
        data["timeouts"] = {"total_collection": args.timeout}
    if args.strategy:
        data["scroll_strategy"] = args.strategy
    return CollectionConfig.from_dict(data, defaults=defaults)


def print_progress(session_id, progress):
    print(
        f"\r   {progress.current_phase.value:<14} "
        f"{progress.phase_current}/{progress.phase_target} "
        f"| overall {progress.overall_percentage:3d}%",
        end="",
        flush=True,
    )


def run_collection(argv=None) -> int:
    """Run one collection. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    for issue in settings.validate():
        logger.warning(issue)

    try:
        url = require_maps_url(args.url)
        config = config_from_args(args, settings.default_collection_config())
        config.validate()
    except ValidationError as e:
        for issue in e.issues:
            print(f"Invalid option: {issue}")
        return 2

    print("\n" + "=" * 60)
    print("   Review Collector")
    print("=" * 60 + "\n")
    print(f"Collecting up to {config.target_counts.total} reviews from {url}\n")

    tracker = ProgressTracker()
    orchestrator = CollectionOrchestrator.from_settings(settings, progress_tracker=tracker)
    session_id = f"cli-{datetime.now().strftime('%Y%m%d-%H%M%S')}"
    tracker.subscribe(session_id, print_progress)

    page = SeleniumPageHandle(headless=not args.show_browser, settings=settings.browser)
    try:
        result = orchestrator.collect(page, config, url=url, session_id=session_id)
    except KeyboardInterrupt:
        print("\n\nInterrupted!")
        return 130
    finally:
        page.close()

    meta = result.metadata
    print("\n\n" + "=" * 60)
    print(f"Collection {meta.status.value}")
    for category, counts in meta.per_category_counts.items():
        print(f"   {category:<7} {counts['collected']:>4}/{counts['target']:<4} ({counts['unique']} unique)")
    print(f"   Unique: {meta.total_unique} | Duplicates removed: {meta.duplicates_removed}")
    for warning in meta.warnings:
        print(f"   ! {warning}")
    print("=" * 60 + "\n")

    output = args.output or str(settings.export_dir / f"{session_id}.xlsx")
    path = ReviewExporter().export(result, output)
    print(f"Saved to {path}\n")

    return 0 if meta.status is CollectionStatus.COMPLETE else 1


if __name__ == "__main__":
    sys.exit(run_collection())
