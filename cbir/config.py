"""
Engine configuration.

All tunables live on an immutable Configuration value handed to the
engine at construction time. Bin count, grid size and resize dimension
are corpus-wide: they are stamped into every stored blob, and changing
them forces re-indexing.

Environment variables are only consulted by Configuration.from_env().
"""

import os
from dataclasses import dataclass, field
from typing import Dict

from .errors import ConfigurationError

HASH_SIZE = 64
MIN_BINS, MAX_BINS = 2, 256
MIN_RESIZE_DIM, MAX_RESIZE_DIM = 3, 4096


@dataclass(frozen=True)
class FeatureWeights:
    """Relative importance of each signal in the combined score."""

    phash: float = 0.34
    color: float = 0.33
    edge: float = 0.33

    def __post_init__(self):
        for name, value in self.as_dict().items():
            if value < 0:
                raise ConfigurationError(f"Weight '{name}' must be non-negative, got {value}")

    def as_dict(self) -> Dict[str, float]:
        return {"phash": self.phash, "color": self.color, "edge": self.edge}

    @property
    def total(self) -> float:
        return self.phash + self.color + self.edge


@dataclass(frozen=True)
class Configuration:
    """
    Corpus-wide extraction settings and search defaults.

    Args:
        bins: Histogram bins per color channel (2-256).
        grid_size: Edge grid cells per side (1..resize_dim).
        hash_size: Perceptual hash width. Fixed at 64.
        weights: Default per-signal weights for search().
        threshold: Default minimum combined score, in [0, 1].
        resize_dim: Square size images are resampled to before
            histogram and edge extraction.
        alpha_threshold: Pixels with alpha at or below this value are
            ignored by the color histogram.
        prefilter: Skip records whose perceptual hash alone proves they
            cannot reach the threshold.
    """

    bins: int = 32
    grid_size: int = 16
    hash_size: int = HASH_SIZE
    weights: FeatureWeights = field(default_factory=FeatureWeights)
    threshold: float = 0.6
    resize_dim: int = 256
    alpha_threshold: int = 0
    prefilter: bool = True

    def __post_init__(self):
        if not MIN_BINS <= self.bins <= MAX_BINS:
            raise ConfigurationError(
                f"bins must be in [{MIN_BINS}, {MAX_BINS}], got {self.bins}"
            )
        if self.hash_size != HASH_SIZE:
            raise ConfigurationError(f"hash_size is fixed at {HASH_SIZE}, got {self.hash_size}")
        if not MIN_RESIZE_DIM <= self.resize_dim <= MAX_RESIZE_DIM:
            raise ConfigurationError(
                f"resize_dim must be in [{MIN_RESIZE_DIM}, {MAX_RESIZE_DIM}], "
                f"got {self.resize_dim}"
            )
        if not 1 <= self.grid_size <= self.resize_dim:
            raise ConfigurationError(
                f"grid_size must be in [1, {self.resize_dim}], got {self.grid_size}"
            )
        validate_threshold(self.threshold)
        if not 0 <= self.alpha_threshold < 255:
            raise ConfigurationError(
                f"alpha_threshold must be in [0, 254], got {self.alpha_threshold}"
            )

    @classmethod
    def from_env(cls) -> "Configuration":
        """Build a configuration from CBIR_* environment variables."""
        weights = FeatureWeights(
            phash=float(os.environ.get("CBIR_WEIGHT_PHASH", "0.34")),
            color=float(os.environ.get("CBIR_WEIGHT_COLOR", "0.33")),
            edge=float(os.environ.get("CBIR_WEIGHT_EDGE", "0.33")),
        )
        return cls(
            bins=int(os.environ.get("CBIR_BINS", "32")),
            grid_size=int(os.environ.get("CBIR_GRID_SIZE", "16")),
            resize_dim=int(os.environ.get("CBIR_RESIZE_DIM", "256")),
            threshold=float(os.environ.get("CBIR_THRESHOLD", "0.6")),
            weights=weights,
            prefilter=os.environ.get("CBIR_PREFILTER", "1").lower() not in ("0", "false", "no"),
        )


def validate_threshold(threshold: float) -> float:
    if not 0.0 <= threshold <= 1.0:
        raise ConfigurationError(f"threshold must be in [0, 1], got {threshold}")
    return threshold
