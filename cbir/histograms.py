"""
Normalized 3-D RGB color histogram and Bhattacharyya comparison.

The image is first resampled to resize_dim x resize_dim so extraction
cost does not depend on the source resolution. Each channel is split
into ``bins`` equal ranges; the histogram is flattened in
r * bins^2 + g * bins + b order and divided by the number of pixels
counted, so it sums to 1. Pixels whose alpha does not exceed the
transparency threshold are not counted; an image with no opaque pixel
yields an all-zero histogram.
"""

import logging

import numpy as np

from .base import FeatureExtractor
from .config import MAX_BINS, MIN_BINS
from .encoding import KIND_COLOR_HISTOGRAM, decode_vector, encode_vector
from .errors import ConfigurationError, ExtractionError
from .preprocessing import ensure_image, resize
from .scoring import bhattacharyya_coefficient

logger = logging.getLogger(__name__)

DEFAULT_BINS = 32
DEFAULT_RESIZE_DIM = 256


def _validate_bins(bins: int) -> int:
    if not MIN_BINS <= bins <= MAX_BINS:
        raise ConfigurationError(f"bins must be in [{MIN_BINS}, {MAX_BINS}], got {bins}")
    return bins


def extract_color_histogram(image_np: np.ndarray,
                            bins: int = DEFAULT_BINS,
                            resize_dim: int = DEFAULT_RESIZE_DIM,
                            alpha_threshold: int = 0) -> np.ndarray:
    """
    Extract a normalized RGB histogram from an image.

    Args:
        image_np: RGB, RGBA or grayscale uint8 image.
        bins: Bins per channel (2-256).
        resize_dim: Square size the image is resampled to first.
        alpha_threshold: Pixels with alpha <= this value are skipped.

    Returns:
        Float32 vector with bins**3 values.

    Raises:
        InvalidImage: If the image is unusable.
        ConfigurationError: If bins is out of range.
    """
    _validate_bins(bins)
    image_np = resize(ensure_image(image_np), resize_dim, resize_dim)

    if image_np.ndim == 2:
        rgb = np.repeat(image_np[:, :, None], 3, axis=2)
        mask = np.ones(image_np.shape, dtype=bool)
    else:
        rgb = image_np[:, :, :3]
        if image_np.shape[2] == 4:
            mask = image_np[:, :, 3] > alpha_threshold
        else:
            mask = np.ones(image_np.shape[:2], dtype=bool)

    pixels = rgb[mask].astype(np.int64)
    counted = pixels.shape[0]
    size = bins ** 3
    if counted == 0:
        logger.debug("No opaque pixels; returning empty histogram")
        return np.zeros(size, dtype=np.float32)

    cells = np.clip(pixels * bins // 256, 0, bins - 1)
    index = cells[:, 0] * bins * bins + cells[:, 1] * bins + cells[:, 2]
    hist = np.bincount(index, minlength=size).astype(np.float64) / counted

    if not np.all(np.isfinite(hist)):
        raise ExtractionError("Color histogram contains non-finite values")
    return hist.astype(np.float32)


def histogram_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Bhattacharyya coefficient of two histograms, in [0, 1]."""
    return bhattacharyya_coefficient(a, b)


class ColorHistogramExtractor(FeatureExtractor):
    name = "color"
    record_field = "color_histogram"

    def __init__(self, bins: int = DEFAULT_BINS,
                 resize_dim: int = DEFAULT_RESIZE_DIM,
                 alpha_threshold: int = 0):
        self.bins = _validate_bins(bins)
        self.resize_dim = resize_dim
        self.alpha_threshold = alpha_threshold

    @property
    def dimensions(self) -> int:
        return self.bins ** 3

    def compute(self, image_np: np.ndarray) -> np.ndarray:
        return extract_color_histogram(
            image_np, self.bins, self.resize_dim, self.alpha_threshold
        )

    def similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        return histogram_similarity(a, b)

    def encode(self, signature: np.ndarray) -> bytes:
        return encode_vector(signature, KIND_COLOR_HISTOGRAM, self.bins, self.resize_dim)

    def decode(self, stored: bytes) -> np.ndarray:
        return decode_vector(
            stored, KIND_COLOR_HISTOGRAM, self.bins, self.resize_dim, self.dimensions
        )
