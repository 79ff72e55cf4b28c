# scripts/maintenance.py

import argparse
import logging
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path

from components.customer_manager import CustomerManager
from config import SystemConfig
from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from utils.file_utils import format_file_size
from utils.logging_config import setup_logging
from utils.performance_monitor import PerformanceMonitor

logger = logging.getLogger(__name__)


def clean_orphans(config: SystemConfig, dry_run: bool = False) -> int:
    """Delete image files no customer record points at"""
    database = CustomerDatabase(config.storage.database_path).open()
    blob_store = ImageBlobStore(root_dir=config.storage.uploads_dir)
    try:
        orphans = CustomerManager(database, blob_store).check_images()['orphan_files']
    finally:
        database.close()

    for name in orphans:
        if dry_run:
            print(f"Would remove {name}")
        else:
            blob_store.delete(name)

    print(f"{'Found' if dry_run else 'Removed'} {len(orphans)} orphan files")
    return len(orphans)


def compact_database(config: SystemConfig) -> str:
    """Back up, then VACUUM the SQLite database"""
    db_path = config.storage.database_path
    backup_path = f"{db_path}.backup.{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    # Backup
    shutil.copy(db_path, backup_path)
    print(f"Backup created: {backup_path}")

    # Compact
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("VACUUM")
    finally:
        conn.close()

    logger.info("Compacted %s", db_path)
    print("Database compacted")
    return backup_path


def generate_report(config: SystemConfig, reports_dir: str = "reports") -> str:
    """Write a plain-text health report and return it"""
    database = CustomerDatabase(config.storage.database_path).open()
    blob_store = ImageBlobStore(root_dir=config.storage.uploads_dir)
    try:
        customers = database.count()
        images = CustomerManager(database, blob_store).check_images()
    finally:
        database.close()

    system = PerformanceMonitor.get_system_info()
    db_file = Path(config.storage.database_path)
    uploads_size = sum(blob_store.resolve(name).stat().st_size for name in images['actual_files'])

    report = "\n".join([
        "Studio - System Report",
        "",
        "Database:",
        f"  Customers: {customers}",
        f"  Database size: {format_file_size(db_file.stat().st_size) if db_file.exists() else 'n/a'}",
        "",
        "Images:",
        f"  Referenced: {images['total_in_database']}",
        f"  On disk: {images['total_in_folder']} ({format_file_size(uploads_size)})",
        f"  Missing: {len(images['missing_files'])}",
        f"  Orphaned: {len(images['orphan_files'])}",
        "",
        "System Resources:",
        f"  Memory usage: {system['memory_percent']}%",
        f"  Available memory: {system['memory_available_gb']:.2f} GB",
        "",
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
    ])

    print(report)

    # Save to file
    Path(reports_dir).mkdir(parents=True, exist_ok=True)
    with open(Path(reports_dir) / f"health_report_{datetime.now().strftime('%Y%m%d')}.txt", 'w') as f:
        f.write(report)

    return report


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Maintenance utilities")
    parser.add_argument('action', choices=['clean', 'compact', 'report'])
    parser.add_argument('-c', '--config', default='config.yaml', help='Path to YAML config')
    parser.add_argument('--dry-run', action='store_true', help='List orphans without deleting')

    args = parser.parse_args()
    config = SystemConfig.load(args.config)
    setup_logging(config.log_level, config.log_dir, config.json_logs)

    if args.action == 'clean':
        clean_orphans(config, args.dry_run)
    elif args.action == 'compact':
        compact_database(config)
    elif args.action == 'report':
        generate_report(config)
