"""
Data records passed between the engine, the store and callers.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import numpy as np

from .config import FeatureWeights


class RecordState(enum.Enum):
    """Lifecycle of an indexed media item."""

    PENDING = "pending"
    INDEXED = "indexed"
    STALE = "stale"
    FAILED = "failed"


@dataclass
class FeatureRecord:
    """
    Persisted signatures of one media item.

    phash is 16 hex characters; color_histogram and edge_features are
    versioned blobs produced by cbir.encoding.
    """

    id: str
    media_ref: str
    phash: str
    color_histogram: bytes
    edge_features: bytes
    created_at: datetime
    updated_at: datetime


@dataclass
class SearchQuery:
    """A query image plus optional overrides of the engine defaults."""

    image: np.ndarray
    threshold: Optional[float] = None
    weights: Optional[FeatureWeights] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class SearchResult:
    record: FeatureRecord
    score: float
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def media_ref(self) -> str:
        return self.record.media_ref


@dataclass
class IndexStats:
    total_indexed: int
    last_updated: Optional[datetime] = None
    stale: int = 0


@dataclass
class RebuildReport:
    """Outcome of a bulk re-index: successes and per-reference failures."""

    indexed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def failed_refs(self) -> List[str]:
        return list(self.failed)
