#!/usr/bin/env python3
"""
Quran Ghareeb System Launcher

Serve the API, validate the dataset against the page corpus, run the page
audit, or print the ghareeb words found on one page.
"""

import sys
import argparse
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from quran_ghareeb.config import load_settings
from quran_ghareeb.data_sources import DataSourceError, load_quran_data
from quran_ghareeb.ghareeb_index import render_page
from quran_ghareeb.matching_validator import translate_reason, validate_matching, write_report
from quran_ghareeb.overrides import resolve_meaning
from quran_ghareeb.page_audit import export_audit_results, get_audit_summary, run_global_audit

logger = logging.getLogger(__name__)


def _load(settings):
    return load_quran_data(
        settings.pages_source,
        settings.dataset_source,
        timeout=settings.request_timeout
    )


def run_fastapi_server(settings):
    """Launch the FastAPI backend server."""
    from quran_ghareeb.fastapi_server import run_server

    logger.info(f"Starting FastAPI server on {settings.host}:{settings.port}...")
    try:
        run_server(host=settings.host, port=settings.port)
    except KeyboardInterrupt:
        logger.info("FastAPI server stopped by user")
    return True


def run_validation(settings, json_path=None, csv_path=None):
    pages, index = _load(settings)
    report = validate_matching(index, pages, workers=settings.validation_workers)

    print(f"Total words:   {report.total_entries}")
    print(f"Matched:       {report.matched_count}")
    print(f"Unmatched:     {report.unmatched_count}")
    print(f"Coverage:      {report.coverage_percent}%")
    print(f"Mismatches:    {len(report.mismatches)}")
    print(f"Low confidence: {len(report.low_confidence)}")
    for strategy, count in sorted(report.strategy_counts.items()):
        print(f"  {strategy}: {count}")

    for mismatch in report.mismatches[:settings.report_display_limit]:
        entry = mismatch.entry
        print(
            f"  p{entry.page_number} {entry.surah_name}:{entry.verse_number} "
            f"{entry.word_text} - {translate_reason(mismatch.reason)}"
        )

    write_report(report, json_path=json_path, csv_path=csv_path)
    return True


def run_audit(settings, json_path=None):
    pages, index = _load(settings)
    result = run_global_audit(pages, index)
    summary = get_audit_summary(result)

    print(f"Health score: {summary.health_score}")
    print(f"Errors: {summary.critical_issues}, warnings: {summary.warning_issues}, info: {summary.info_issues}")
    for item in summary.top_issue_types:
        print(f"  {item['type']}: {item['count']}")

    if json_path:
        Path(json_path).write_text(export_audit_results(result), encoding="utf-8")
        logger.info(f"Wrote audit report to {json_path}")
    return True


def show_page(settings, page_number):
    pages, index = _load(settings)
    page = next((p for p in pages if p.page_number == page_number), None)
    if page is None:
        logger.error(f"Page {page_number} not found in corpus")
        return False

    rendered = render_page(index, page)
    print(f"Page {page_number}: {len(rendered.words)} ghareeb words")
    for word in rendered.words:
        meaning, source = resolve_meaning(word)
        print(f"{word.order + 1}. {word.word_text} ({word.surah_name}:{word.verse_number}) - {meaning} [{source.value}]")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Quran Ghareeb System Launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_system.py serve                           # Launch API server
  python run_system.py validate --csv report.csv       # Validate the dataset
  python run_system.py audit --json audit.json         # Audit every page
  python run_system.py page 582                        # Words on page 582
        """
    )
    parser.add_argument("--pages", help="Page corpus path or URL (GHAREEB_PAGES_SOURCE)")
    parser.add_argument("--dataset", help="Ghareeb dataset path or URL (GHAREEB_DATASET_SOURCE)")
    parser.add_argument("--log-level", help="Logging level (GHAREEB_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Launch the API server")

    validate_parser = subparsers.add_parser("validate", help="Validate the dataset against the pages")
    validate_parser.add_argument("--json", dest="json_path", help="Write the full report as JSON")
    validate_parser.add_argument("--csv", dest="csv_path", help="Write the mismatches as CSV")
    validate_parser.add_argument("--workers", type=int, help="Pages validated in parallel")

    audit_parser = subparsers.add_parser("audit", help="Audit every page")
    audit_parser.add_argument("--json", dest="json_path", help="Write the audit report as JSON")

    page_parser = subparsers.add_parser("page", help="Show the ghareeb words on one page")
    page_parser.add_argument("page_number", type=int)

    args = parser.parse_args()

    settings = load_settings(
        pages_source=args.pages,
        dataset_source=args.dataset,
        log_level=args.log_level,
        validation_workers=getattr(args, "workers", None)
    )
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == "serve":
            success = run_fastapi_server(settings)
        elif args.command == "validate":
            success = run_validation(settings, args.json_path, args.csv_path)
        elif args.command == "audit":
            success = run_audit(settings, args.json_path)
        else:
            success = show_page(settings, args.page_number)
    except DataSourceError as e:
        logger.error(f"Could not load data: {e}")
        success = False

    if not success:
        sys.exit(1)

    logger.info("Operation completed successfully!")


if __name__ == "__main__":
    main()
