"""
cbir: content-based image retrieval core.

Extracts a perceptual hash, an RGB color histogram and a Sobel edge grid
from each image, stores them as versioned fixed-width signatures, and
ranks a corpus by weighted similarity to a query image.

Modules:
    engine          SimilaritySearchEngine (index, search, rebuild, stats)
    phash           DCT perceptual hash
    histograms      RGB histogram + Bhattacharyya coefficient
    edges           Sobel gradient grid + cosine similarity
    scoring         Vector metrics, weighted combination, ranking
    preprocessing   Validation, resize, grayscale, decoding
    encoding        Versioned blob codec for stored signatures
    store           Store interface, in-memory and SQLite backends
    index_builder   Directory batch indexing
"""

from .config import Configuration, FeatureWeights
from .engine import SimilaritySearchEngine
from .errors import (
    CBIRError, ConfigurationError, ExtractionError, InvalidImage,
    RecordFormatError, StoreError,
)
from .models import (
    FeatureRecord, IndexStats, RebuildReport, RecordState, SearchQuery, SearchResult,
)
from .store import InMemoryStore, SQLiteStore, Store

__version__ = "1.0.0"

__all__ = [
    "CBIRError",
    "Configuration",
    "ConfigurationError",
    "ExtractionError",
    "FeatureRecord",
    "FeatureWeights",
    "InMemoryStore",
    "IndexStats",
    "InvalidImage",
    "RebuildReport",
    "RecordFormatError",
    "RecordState",
    "SQLiteStore",
    "SearchQuery",
    "SearchResult",
    "SimilaritySearchEngine",
    "Store",
    "StoreError",
]
