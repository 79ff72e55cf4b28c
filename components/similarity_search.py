# components/similarity_search.py

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence
import logging
import time

from config import SimilaritySearchConfig
from core.batch_processor import BatchProcessor
from core.image_signals import ImageDecodeError, ImageFeatures
from core.models import MatchType
from core.similarity_scorer import SimilarityScorer
from utils.date_utils import months_ago

logger = logging.getLogger(__name__)

# (lower bound, label), checked in order
MATCH_LABELS = (
    (0.85, "Excellent Match"),
    (0.70, "Good Match"),
    (0.55, "Fair Match"),
    (0.0, "Possible Match"),
)


def match_label(score: float) -> str:
    """Qualitative band for a similarity score"""
    for bound, label in MATCH_LABELS:
        if score >= bound:
            return label
    return MATCH_LABELS[-1][1]


@dataclass
class SearchCandidate:
    """A stored photo eligible for comparison"""
    record: Any
    match_type: MatchType
    image_ref: Optional[str] = None
    image_bytes: Optional[bytes] = None
    loader: Optional[Callable[[], bytes]] = None

    def read(self) -> bytes:
        if self.image_bytes is not None:
            return self.image_bytes
        if self.loader is not None:
            return self.loader()
        raise ValueError("Candidate has neither image bytes nor a loader")


@dataclass
class SearchResult:
    """Container for search results"""
    record: Any
    match_type: MatchType
    similarity_score: float
    image_ref: Optional[str] = None
    high_confidence: bool = False

    @property
    def percent(self) -> int:
        return int(round(self.similarity_score * 100))

    @property
    def label(self) -> str:
        return match_label(self.similarity_score)


@dataclass
class SearchReport:
    """Ranked matches plus what happened to the rest of the batch"""
    results: List[SearchResult] = field(default_factory=list)
    candidates_scanned: int = 0
    failed_candidates: int = 0
    above_threshold: int = 0
    elapsed_seconds: float = 0.0

    @property
    def no_matches(self) -> bool:
        return not self.results


class SimilaritySearchEngine:
    """
    Rank stored photos by visual similarity to a query photo

    Every candidate is scored on its own against the prepared query, so the
    batch fans out over a thread pool; ordering is re-established by sorting.
    Nothing is cached or written back.
    """

    def __init__(self, config: SimilaritySearchConfig = None,
                 scorer: SimilarityScorer = None,
                 show_progress: bool = False):
        self.config = config or SimilaritySearchConfig()
        self.scorer = scorer or SimilarityScorer(
            weights=self.config.weights,
            working_size=self.config.working_size,
            rescue_factor=self.config.rescue_factor
        )
        self.batch_processor = BatchProcessor(
            n_workers=self.config.n_workers,
            show_progress=show_progress
        )

    def search(self,
               query_bytes: Optional[bytes],
               candidates: Sequence[SearchCandidate],
               threshold: float = None,
               max_results: int = None) -> List[SearchResult]:
        """Top matches for a query image, best first"""
        return self.run(query_bytes, candidates, threshold, max_results).results

    def run(self,
            query_bytes: Optional[bytes],
            candidates: Sequence[SearchCandidate],
            threshold: float = None,
            max_results: int = None) -> SearchReport:
        """
        Score every candidate against the query and rank them

        Args:
            query_bytes: Encoded query image; empty or None gives no results
            candidates: Stored photos to compare against
            threshold: Minimum score to keep; 0 or below keeps every
                       decodable candidate
            max_results: Result cap K

        Returns:
            SearchReport with results sorted by descending score
        """
        start = time.time()
        threshold = self.config.similarity_threshold if threshold is None else threshold
        max_results = self.config.max_results if max_results is None else max_results
        report = SearchReport(candidates_scanned=len(candidates))

        if not query_bytes:
            logger.info("Image search called without a query image")
            return report

        if not candidates:
            return report

        try:
            query = self.scorer.prepare(query_bytes)
        except ImageDecodeError as e:
            logger.warning("Query image could not be decoded: %s", e)
            return report

        scores = self.batch_processor.process_items_parallel(
            list(candidates),
            lambda candidate: self._score_candidate(query, candidate),
            desc="Comparing images"
        )

        matches = []
        for candidate, score in zip(candidates, scores):
            if score is None:
                report.failed_candidates += 1
                continue
            if score > threshold or threshold <= 0:
                matches.append(SearchResult(
                    record=candidate.record,
                    match_type=candidate.match_type,
                    similarity_score=score,
                    image_ref=candidate.image_ref,
                    high_confidence=score >= self.config.high_confidence_threshold
                ))

        # Near-duplicates first, then by score; sort is stable for ties
        matches.sort(key=lambda r: (r.high_confidence, r.similarity_score), reverse=True)

        report.above_threshold = len(matches)
        report.results = matches[:max(0, max_results)]
        report.elapsed_seconds = time.time() - start

        logger.info(
            "Image search: %d candidates, %d failed, %d above %.2f, returning %d (%.2fs)",
            report.candidates_scanned, report.failed_candidates,
            report.above_threshold, threshold, len(report.results),
            report.elapsed_seconds
        )
        return report

    def _score_candidate(self, query: ImageFeatures,
                         candidate: SearchCandidate) -> Optional[float]:
        """Score one candidate; None when its image cannot be loaded or decoded"""
        try:
            features = self.scorer.prepare(candidate.read())
        except (ImageDecodeError, OSError, ValueError) as e:
            logger.warning("Skipping %s image %s: %s",
                           candidate.match_type.value, candidate.image_ref, e)
            return None
        return self.scorer.score(query, features)


def collect_candidates(database, blob_store,
                       months: int = 3,
                       now: datetime = None) -> List[SearchCandidate]:
    """
    Stored photos of customers registered in the last `months` months

    Each record contributes its intake form photo and its artwork photo,
    whichever exist. Image bytes are read lazily inside the scoring workers.
    """
    since = months_ago(now or datetime.now(), months)
    candidates = []

    for record in database.list_recent_with_images(since):
        for match_type in (MatchType.CUSTOMER, MatchType.WORK):
            name = record.image_for(match_type)
            if not name:
                continue
            candidates.append(SearchCandidate(
                record=record,
                match_type=match_type,
                image_ref=name,
                loader=lambda name=name: blob_store.read(name)
            ))

    logger.debug("Collected %d candidate images since %s", len(candidates), since)
    return candidates
