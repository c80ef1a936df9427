"""
Similarity search engine.

Orchestrates the three-signal pipeline over a feature store:
    1. Perceptual hash (Hamming similarity), cheap and checked first
    2. RGB color histogram (Bhattacharyya coefficient)
    3. Sobel edge grid (cosine similarity)

Per-signal similarities are combined with weighted_combine() and every
stored record is scored (linear scan). Records whose blobs were written
under another configuration are skipped and reported as stale rather
than compared.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np

from .config import Configuration, FeatureWeights, validate_threshold
from .edges import EdgeFeatureExtractor
from .errors import ConfigurationError
from .histograms import ColorHistogramExtractor
from .models import (
    FeatureRecord, IndexStats, RebuildReport, RecordState, SearchQuery, SearchResult,
)
from .phash import PerceptualHashExtractor
from .scoring import rank_results, weighted_combine
from .store import Store

logger = logging.getLogger(__name__)

# Absorbs float rounding when comparing a score bound to the threshold.
BOUND_EPSILON = 1e-9


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SimilaritySearchEngine:
    """
    Index images into a Store and rank them against query images.

    The engine keeps no state besides the store, the configuration and
    its extractors, so several engines (or workers) may share a store.
    """

    def __init__(self,
                 store: Store,
                 config: Optional[Configuration] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            store: Backend holding one FeatureRecord per media item.
            config: Corpus-wide settings. Defaults to Configuration().
            clock: Returns the timestamp stamped on indexed records.
        """
        self.store = store
        self.config = config or Configuration()
        self.clock = clock or _utcnow

        # Order matters: the hash is compared first so the pre-filter can
        # skip the costlier vector comparisons.
        self.extractors = [
            PerceptualHashExtractor(),
            ColorHistogramExtractor(
                bins=self.config.bins,
                resize_dim=self.config.resize_dim,
                alpha_threshold=self.config.alpha_threshold,
            ),
            EdgeFeatureExtractor(
                grid_size=self.config.grid_size,
                resize_dim=self.config.resize_dim,
            ),
        ]

    def _extract(self, image_np: np.ndarray) -> Dict[str, object]:
        return {ex.name: ex.compute(image_np) for ex in self.extractors}

    def _decode(self, record: FeatureRecord) -> Dict[str, object]:
        return {
            ex.name: ex.decode(getattr(record, ex.record_field))
            for ex in self.extractors
        }

    # ------------------------------------------------------------------
    # Indexing

    def index_image(self, media_ref: str, image_np: np.ndarray) -> FeatureRecord:
        """
        Extract all signatures of an image and upsert its record.

        Re-indexing replaces every feature field; the record id and
        creation time of an existing record are kept.

        Raises:
            ExtractionError: Includes InvalidImage for unusable buffers.
            StoreError: If the backend fails.
        """
        signatures = self._extract(image_np)
        now = self.clock()

        existing = self.store.get(media_ref)
        fields = {
            ex.record_field: ex.encode(signatures[ex.name]) for ex in self.extractors
        }
        record = FeatureRecord(
            id=existing.id if existing else uuid.uuid4().hex,
            media_ref=media_ref,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            **fields,
        )
        self.store.upsert(record)

        logger.debug(f"Indexed {media_ref} (phash={record.phash})")
        return record

    def remove_index(self, media_ref: str) -> None:
        """Delete the record for media_ref. No-op if it is not indexed."""
        self.store.delete(media_ref)
        logger.debug(f"Removed {media_ref} from index")

    def rebuild_index(self,
                      media_refs: Iterable[str],
                      image_loader: Callable[[str], np.ndarray]) -> RebuildReport:
        """
        Re-extract signatures for every reference.

        Each reference is loaded and indexed independently; a failure is
        recorded in the report and the batch continues.

        Args:
            media_refs: References to (re-)index.
            image_loader: Returns the image buffer for a reference.

        Returns:
            RebuildReport with indexed references and failure reasons.
        """
        report = RebuildReport()

        for i, media_ref in enumerate(media_refs):
            try:
                self.index_image(media_ref, image_loader(media_ref))
            except Exception as e:  # noqa: BLE001 - one bad item must not stop the batch
                logger.warning(f"Failed to index {media_ref}: {e}")
                report.failed[media_ref] = f"{type(e).__name__}: {e}"
            else:
                report.indexed.append(media_ref)
            finally:
                if (i + 1) % 500 == 0:
                    logger.info(f"Rebuild progress: {i + 1} references processed")

        logger.info(
            f"Rebuild complete: {len(report.indexed)} indexed, "
            f"{len(report.failed)} failed"
        )
        return report

    # ------------------------------------------------------------------
    # Search

    def _can_reach(self, phash_score: float, weights: FeatureWeights,
                   threshold: float) -> bool:
        """
        Upper bound of the combined score given only the hash similarity.

        Color and edge similarities are at most 1, so a record whose bound
        is below the threshold cannot appear in the results.
        """
        total = weights.total
        if total == 0:
            return threshold <= 0
        bound = (weights.phash * phash_score + weights.color + weights.edge) / total
        return bound >= threshold - BOUND_EPSILON

    def search(self, query: SearchQuery) -> List[SearchResult]:
        """
        Rank stored records by similarity to the query image.

        Args:
            query: Query image, optional threshold/weights overrides and
                pagination (offset, limit).

        Returns:
            Results with score >= threshold, highest first, ties broken
            by most recently updated record then media reference. Empty
            when nothing clears the threshold.

        Raises:
            ExtractionError: If the query image is unusable.
            ConfigurationError: If threshold or pagination is invalid.
        """
        threshold = validate_threshold(
            self.config.threshold if query.threshold is None else query.threshold
        )
        weights = query.weights or self.config.weights
        if query.offset < 0:
            raise ConfigurationError(f"offset must be non-negative, got {query.offset}")
        if query.limit is not None and query.limit < 0:
            raise ConfigurationError(f"limit must be non-negative, got {query.limit}")

        signatures = self._extract(query.image)
        weight_map = weights.as_dict()
        phash_extractor, vector_extractors = self.extractors[0], self.extractors[1:]

        results = []
        scanned = skipped = pruned = 0

        for record in self.store.iterate():
            scanned += 1
            try:
                stored_hash = phash_extractor.decode(record.phash)
            except ConfigurationError as e:
                skipped += 1
                logger.warning(f"Skipping {record.media_ref}, needs re-index: {e}")
                continue

            scores = {
                phash_extractor.name: phash_extractor.similarity(
                    signatures[phash_extractor.name], stored_hash
                )
            }
            if self.config.prefilter and not self._can_reach(
                    scores[phash_extractor.name], weights, threshold):
                pruned += 1
                continue

            # Vector blobs are only unpacked for records the hash did not rule out.
            try:
                stored = {
                    ex.name: ex.decode(getattr(record, ex.record_field))
                    for ex in vector_extractors
                }
            except ConfigurationError as e:
                skipped += 1
                logger.warning(f"Skipping {record.media_ref}, needs re-index: {e}")
                continue

            for ex in vector_extractors:
                scores[ex.name] = ex.similarity(signatures[ex.name], stored[ex.name])

            score = weighted_combine(scores, weight_map)
            if score >= threshold:
                results.append(SearchResult(record=record, score=score, scores=scores))

        ranked = rank_results(results)
        end = None if query.limit is None else query.offset + query.limit
        page = ranked[query.offset:end]

        logger.info(
            f"Search complete: {scanned} records scanned, {pruned} pruned, "
            f"{skipped} stale → {len(ranked)} matches, returning {len(page)}"
        )
        return page

    # ------------------------------------------------------------------
    # Maintenance

    def record_state(self, media_ref: str) -> RecordState:
        """PENDING if not indexed, STALE if unreadable or written under other settings."""
        try:
            record = self.store.get(media_ref)
            if record is None:
                return RecordState.PENDING
            self._decode(record)
        except ConfigurationError:
            return RecordState.STALE
        return RecordState.INDEXED

    def find_stale(self) -> List[str]:
        """References whose stored signatures must be re-indexed."""
        stale = []
        for record in self.store.iterate():
            try:
                self._decode(record)
            except ConfigurationError:
                stale.append(record.media_ref)
        return stale

    def get_stats(self) -> IndexStats:
        """
        Count records searchable under the current configuration.

        Stale records are reported separately and do not contribute to
        total_indexed or last_updated.
        """
        total = stale = 0
        last_updated = None
        for record in self.store.iterate():
            try:
                self._decode(record)
            except ConfigurationError:
                stale += 1
                continue
            total += 1
            if last_updated is None or record.updated_at > last_updated:
                last_updated = record.updated_at
        return IndexStats(total_indexed=total, last_updated=last_updated, stale=stale)
