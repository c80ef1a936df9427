"""
Common interface for the signature extractors used by the engine.
"""

from abc import ABC, abstractmethod
from typing import Any


class FeatureExtractor(ABC):
    """
    One signal of the multi-signal search.

    Subclasses set ``name`` (the key used for weights and per-feature
    scores) and ``record_field`` (the FeatureRecord attribute holding the
    persisted form).
    """

    name: str
    record_field: str

    @abstractmethod
    def compute(self, image_np) -> Any:
        """Return the signature of an RGB/RGBA/grayscale uint8 image."""

    @abstractmethod
    def similarity(self, a, b) -> float:
        """Return a similarity in [0, 1]. Symmetric in its arguments."""

    @abstractmethod
    def encode(self, signature) -> Any:
        """Return the persisted form of a signature."""

    @abstractmethod
    def decode(self, stored) -> Any:
        """
        Inverse of encode().

        Raises ConfigurationError when the stored value was produced
        under different settings.
        """
