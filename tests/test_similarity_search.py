# tests/test_similarity_search.py

import io
from datetime import datetime, timedelta

import numpy as np
import pytest
from PIL import Image

from config import SimilaritySearchConfig
from components.similarity_search import (
    SearchCandidate,
    SimilaritySearchEngine,
    collect_candidates,
    match_label,
)
from core.models import MatchType
from conftest import encode, noise_image, sideways_photo, solid_image, vase_image


@pytest.fixture
def engine():
    return SimilaritySearchEngine(SimilaritySearchConfig(n_workers=2))


def candidate(data, label, match_type=MatchType.WORK):
    return SearchCandidate(record=label, match_type=match_type,
                           image_ref=f"{label}.png", image_bytes=data)


@pytest.fixture
def mixed_candidates():
    return [
        candidate(noise_image(i), f"noise-{i}") for i in range(5)
    ] + [
        candidate(solid_image((255, 0, 0)), "red"),
        candidate(solid_image((0, 0, 255)), "blue"),
        candidate(vase_image(), "vase"),
    ]


def test_empty_candidates_give_no_results(engine):
    """Test that an empty candidate set is not an error"""
    assert engine.search(solid_image((255, 0, 0)), []) == []


def test_missing_query_gives_no_results(engine, mixed_candidates):
    assert engine.search(None, mixed_candidates) == []
    assert engine.search(b"", mixed_candidates) == []


def test_undecodable_query_gives_no_results(engine, mixed_candidates):
    report = engine.run(b"not an image", mixed_candidates)

    assert report.no_matches
    assert report.candidates_scanned == len(mixed_candidates)


def test_red_query_keeps_red_and_drops_blue(engine, mixed_candidates):
    results = engine.search(solid_image((255, 0, 0), size=(500, 500)), mixed_candidates)
    labels = [r.record for r in results]

    assert labels[0] == "red"
    assert results[0].similarity_score >= 0.85
    assert results[0].high_confidence
    assert "blue" not in labels


def test_results_sorted_and_bounded(engine, mixed_candidates):
    report = engine.run(vase_image(), mixed_candidates, max_results=3)
    scores = [r.similarity_score for r in report.results]

    assert len(scores) <= min(len(mixed_candidates), 3)
    assert len(scores) <= report.above_threshold
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert all(s > 0.45 for s in scores)


def test_threshold_zero_keeps_every_decodable_candidate(engine, mixed_candidates):
    everything = engine.search(vase_image(), mixed_candidates, threshold=0)
    capped = engine.search(vase_image(), mixed_candidates, threshold=0, max_results=4)

    assert len(everything) == len(mixed_candidates)
    assert len(capped) == 4


def test_one_undecodable_candidate_is_skipped(engine):
    candidates = [candidate(noise_image(i), f"noise-{i}") for i in range(9)]
    candidates.append(candidate(b"corrupt bytes", "broken"))

    report = engine.run(noise_image(0), candidates, threshold=0)

    assert report.failed_candidates == 1
    assert len(report.results) == 9
    assert "broken" not in [r.record for r in report.results]


def test_loader_errors_count_as_failures(engine):
    def missing():
        raise FileNotFoundError("gone")

    candidates = [
        candidate(solid_image((255, 0, 0)), "red"),
        SearchCandidate(record="lost", match_type=MatchType.CUSTOMER,
                        image_ref="lost.jpg", loader=missing),
    ]
    report = engine.run(solid_image((255, 0, 0)), candidates)

    assert report.failed_candidates == 1
    assert [r.record for r in report.results] == ["red"]


def test_sequential_engine_matches_parallel(mixed_candidates):
    sequential = SimilaritySearchEngine(SimilaritySearchConfig(n_workers=1))
    parallel = SimilaritySearchEngine(SimilaritySearchConfig(n_workers=4))
    query = vase_image(width=30)

    a = [(r.record, r.similarity_score) for r in sequential.search(query, mixed_candidates, threshold=0)]
    b = [(r.record, r.similarity_score) for r in parallel.search(query, mixed_candidates, threshold=0)]

    assert a == b


def test_result_presentation():
    assert match_label(0.95) == "Excellent Match"
    assert match_label(0.72) == "Good Match"
    assert match_label(0.6) == "Fair Match"
    assert match_label(0.46) == "Possible Match"


def test_collect_candidates_uses_recent_records(database, blob_store, customer_fields):
    now = datetime(2025, 6, 20, 12, 0, 0)

    recent = database.create(customer_fields, created_at=now - timedelta(days=10))
    old = database.create(customer_fields, created_at=now - timedelta(days=120))
    bare = database.create(customer_fields, created_at=now - timedelta(days=1))

    work = blob_store.save(vase_image(), MatchType.WORK, recent.customer_id, recent.work_date)
    form = blob_store.save(solid_image((200, 200, 200)), MatchType.CUSTOMER)
    database.update(recent.id, {'work_image': work, 'customer_image': form})
    old_work = blob_store.save(vase_image(), MatchType.WORK, old.customer_id, old.work_date)
    database.update(old.id, {'work_image': old_work})

    candidates = collect_candidates(database, blob_store, months=3, now=now)

    assert {c.record.id for c in candidates} == {recent.id}
    assert bare.id not in {c.record.id for c in candidates}
    assert {c.match_type for c in candidates} == {MatchType.WORK, MatchType.CUSTOMER}
    assert all(c.read() for c in candidates)


def test_phone_photo_matches_its_stored_copy(engine, blob_store):
    """Test that the query is turned upright like the stored copy is"""
    photo = sideways_photo()
    stored = blob_store.read(blob_store.save(photo, MatchType.WORK))
    with Image.open(io.BytesIO(photo)) as img:
        raw_pixels = encode(Image.fromarray(np.asarray(img.convert('RGB'))), 'JPEG')

    upright = engine.search(photo, [candidate(stored, "stored")], threshold=0)[0]
    sideways = engine.search(raw_pixels, [candidate(stored, "stored")], threshold=0)[0]

    assert upright.similarity_score >= 0.8
    assert upright.similarity_score > sideways.similarity_score
