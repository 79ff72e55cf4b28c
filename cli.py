# cli.py

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

from components.customer_manager import CustomerManager
from components.exporter import CustomerExporter
from components.similarity_search import SimilaritySearchEngine, collect_candidates
from config import SystemConfig, SignalWeights
from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from core.image_signals import ImageDecodeError
from core.models import DATE_RANGES
from core.similarity_scorer import SimilarityScorer
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def open_stores(config: SystemConfig):
    database = CustomerDatabase(config.storage.database_path).open()
    blob_store = ImageBlobStore(
        root_dir=config.storage.uploads_dir,
        max_dimension=config.storage.max_image_dimension,
        jpeg_quality=config.storage.jpeg_quality,
        max_upload_bytes=config.storage.max_upload_bytes,
    )
    return database, blob_store


def similarity_search_command(args, config: SystemConfig):
    """Search stored customer photos for ones resembling a query image"""
    print(f"Searching for photos similar to: {args.query}")
    query_bytes = Path(args.query).read_bytes()

    if args.basic:
        config.similarity_search.weights = SignalWeights.basic()

    database, blob_store = open_stores(config)
    try:
        months = args.months or config.similarity_search.recent_months
        candidates = collect_candidates(database, blob_store, months=months)
        engine = SimilaritySearchEngine(config.similarity_search, show_progress=True)
        report = engine.run(query_bytes, candidates,
                            threshold=args.threshold, max_results=args.top_k)
    finally:
        database.close()

    print(f"Scanned {report.candidates_scanned} photos "
          f"({report.failed_candidates} unreadable)")

    if report.no_matches:
        print("No similar images found.")
    else:
        print(f"\nTop {len(report.results)} matches:")
        for i, result in enumerate(report.results, 1):
            record = result.record
            marker = " *" if result.high_confidence else ""
            print(f"{i}. {record.customer_id} {record.name} [{result.match_type.value}] "
                  f"{result.percent}% {result.label}{marker}")

    # Save results to JSON if requested
    if args.output:
        output_data = [
            {
                "customer": result.record.to_dict(),
                "match_type": result.match_type.value,
                "image": result.image_ref,
                "similarity": result.similarity_score,
                "high_confidence": result.high_confidence,
            }
            for result in report.results
        ]
        with open(args.output, 'w') as f:
            json.dump(output_data, f, indent=2, ensure_ascii=False)
        print(f"\nResults saved to: {args.output}")


def compare_command(args, config: SystemConfig):
    """Score two image files and show every signal"""
    weights = SignalWeights.basic() if args.basic else config.similarity_search.weights
    scorer = SimilarityScorer(
        weights=weights,
        working_size=config.similarity_search.working_size,
        rescue_factor=config.similarity_search.rescue_factor
    )

    try:
        breakdown = scorer.compare(Path(args.first).read_bytes(),
                                   Path(args.second).read_bytes())
    except ImageDecodeError as e:
        print(f"Error: {e}")
        return 1

    for name, value in breakdown.signals.items():
        shown = "abstained" if value is None else f"{value:.4f}"
        print(f"  {name:<20} {shown}")
    print(f"Combined similarity: {breakdown.score:.4f}")
    return 0


def export_command(args, config: SystemConfig):
    """Write customers registered in a date range to CSV"""
    database, blob_store = open_stores(config)
    try:
        content = CustomerExporter(database, blob_store).export_csv(args.range)
    finally:
        database.close()

    output = args.output or f"customers_{args.range}_{date.today():%Y%m%d}.csv"
    # BOM so spreadsheet apps pick up UTF-8 names
    Path(output).write_text(content, encoding='utf-8-sig')
    print(f"Exported to: {output}")


def archive_command(args, config: SystemConfig):
    """Bundle stored photos for a work-date range into a ZIP"""
    start = date.fromisoformat(args.start)
    end = date.fromisoformat(args.end)

    database, blob_store = open_stores(config)
    try:
        archive = CustomerExporter(database, blob_store).build_image_archive(start, end)
    finally:
        database.close()

    output = args.output or f"images_{start:%Y%m%d}_{end:%Y%m%d}.zip"
    Path(output).write_bytes(archive)
    print(f"Archive saved to: {output}")


def check_images_command(args, config: SystemConfig):
    """Report missing and orphaned photo files"""
    database, blob_store = open_stores(config)
    try:
        status = CustomerManager(database, blob_store).check_images()
    finally:
        database.close()

    print(f"Referenced in database: {status['total_in_database']}")
    print(f"Files in uploads:       {status['total_in_folder']}")

    for title, key in (("Missing files", 'missing_files'), ("Orphan files", 'orphan_files')):
        if status[key]:
            print(f"\n{title} ({len(status[key])}):")
            for name in status[key]:
                print(f"  - {name}")

    return 1 if status['missing_files'] else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Studio customer tools - Command Line Interface"
    )
    parser.add_argument('-c', '--config', default='config.yaml', help='Path to YAML config')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Similarity search command
    search_parser = subparsers.add_parser('search', help='Find customers by photo')
    search_parser.add_argument('query', help='Path to query image')
    search_parser.add_argument('-k', '--top-k', type=int, default=None,
                               help='Number of results to return')
    search_parser.add_argument('-t', '--threshold', type=float, default=None,
                               help='Minimum similarity to keep')
    search_parser.add_argument('-m', '--months', type=int, default=None,
                               help='Only search customers registered this recently')
    search_parser.add_argument('--basic', action='store_true',
                               help='Use the three-signal weighting')
    search_parser.add_argument('-o', '--output', help='Output JSON file for results')
    search_parser.set_defaults(func=similarity_search_command)

    compare_parser = subparsers.add_parser('compare', help='Score two images')
    compare_parser.add_argument('first')
    compare_parser.add_argument('second')
    compare_parser.add_argument('--basic', action='store_true',
                                help='Use the three-signal weighting')
    compare_parser.set_defaults(func=compare_command)

    export_parser = subparsers.add_parser('export', help='Export customers to CSV')
    export_parser.add_argument('-r', '--range', default='all',
                               choices=DATE_RANGES)
    export_parser.add_argument('-o', '--output', help='Output CSV path')
    export_parser.set_defaults(func=export_command)

    archive_parser = subparsers.add_parser('archive', help='ZIP photos by work date')
    archive_parser.add_argument('start', help='First work date (YYYY-MM-DD)')
    archive_parser.add_argument('end', help='Last work date (YYYY-MM-DD)')
    archive_parser.add_argument('-o', '--output', help='Output ZIP path')
    archive_parser.set_defaults(func=archive_command)

    check_parser = subparsers.add_parser('check-images',
                                         help='Compare database references with files')
    check_parser.set_defaults(func=check_images_command)

    return parser


def main_cli(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    config = SystemConfig.load(args.config)
    setup_logging(config.log_level, config.log_dir, config.json_logs)

    try:
        return args.func(args, config) or 0
    except (OSError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main_cli())
