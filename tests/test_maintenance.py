# tests/test_maintenance.py

from pathlib import Path

import pytest

from config import SystemConfig
from core.blob_store import ImageBlobStore
from core.database import CustomerDatabase
from core.models import MatchType
from scripts.maintenance import clean_orphans, compact_database, generate_report
from conftest import solid_image, vase_image


@pytest.fixture
def config(tmp_path):
    config = SystemConfig()
    config.storage.database_path = str(tmp_path / "studio.db")
    config.storage.uploads_dir = str(tmp_path / "uploads")
    return config


@pytest.fixture
def stored(config):
    """One referenced photo and one orphan on disk"""
    store = ImageBlobStore(root_dir=config.storage.uploads_dir).initialize()
    with CustomerDatabase(config.storage.database_path) as db:
        record = db.create({'name': 'Jane', 'phone': '010', 'work_date': '2025-06-11'})
        referenced = store.save(vase_image(), MatchType.WORK, record.customer_id, record.work_date)
        db.update(record.id, {'work_image': referenced})
    orphan = store.save(solid_image((10, 10, 10)), MatchType.CUSTOMER)
    return store, referenced, orphan


def test_clean_orphans_dry_run_keeps_files(config, stored):
    store, referenced, orphan = stored

    assert clean_orphans(config, dry_run=True) == 1
    assert store.exists(orphan)
    assert store.exists(referenced)


def test_clean_orphans_removes_only_unreferenced(config, stored):
    store, referenced, orphan = stored

    assert clean_orphans(config) == 1
    assert not store.exists(orphan)
    assert store.exists(referenced)
    assert clean_orphans(config) == 0


def test_compact_database_backs_up_and_stays_readable(config, stored):
    backup = compact_database(config)

    assert Path(backup).exists()
    with CustomerDatabase(backup) as copy:
        assert copy.count() == 1
    with CustomerDatabase(config.storage.database_path) as db:
        assert db.list()[0].name == 'Jane'


def test_generate_report_counts_images(config, stored, tmp_path):
    reports_dir = tmp_path / "reports"

    report = generate_report(config, str(reports_dir))

    assert "Customers: 1" in report
    assert "Referenced: 1" in report
    assert "On disk: 2" in report
    assert "Missing: 0" in report
    assert "Orphaned: 1" in report
    written = list(reports_dir.glob("health_report_*.txt"))
    assert len(written) == 1
    assert written[0].read_text() == report
