"""
Sobel gradient-magnitude grid.

Captures where in the frame the structure is, independently of color.

Process:
    1. Bilinear resize to resize_dim x resize_dim, luminance grayscale
    2. 3x3 Sobel Gx / Gy (cv2.Sobel) with zero padding outside the
       image, so the image frame itself registers as an edge
    3. Magnitude sqrt(gx^2 + gy^2)
    4. grid_size x grid_size cells with boundaries floor(k * H / grid_size),
       so a non-divisible remainder is spread across cells
    5. Mean magnitude per cell, divided by the largest cell mean

Only an all-black image has no gradient and yields an all-zero vector;
any other flat image still produces a frame outline.
"""

import logging

import cv2
import numpy as np

from .base import FeatureExtractor
from .encoding import KIND_EDGE_FEATURES, decode_vector, encode_vector
from .errors import ConfigurationError, ExtractionError
from .preprocessing import ensure_image, resize, to_grayscale
from .scoring import cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_GRID_SIZE = 16
DEFAULT_RESIZE_DIM = 256


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """Gradient magnitude of a float image, pixels outside it taken as 0."""
    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3, borderType=cv2.BORDER_CONSTANT)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3, borderType=cv2.BORDER_CONSTANT)
    return np.sqrt(gx * gx + gy * gy)


def grid_means(values: np.ndarray, grid_size: int) -> np.ndarray:
    """Average a 2-D map over a grid_size x grid_size partition."""
    h, w = values.shape
    if h < grid_size or w < grid_size:
        raise ConfigurationError(
            f"Cannot split a {w}x{h} map into {grid_size}x{grid_size} cells"
        )
    rows = (np.arange(grid_size) * h) // grid_size
    cols = (np.arange(grid_size) * w) // grid_size

    sums = np.add.reduceat(np.add.reduceat(values, rows, axis=0), cols, axis=1)
    row_counts = np.diff(np.append(rows, h))
    col_counts = np.diff(np.append(cols, w))
    return sums / np.outer(row_counts, col_counts)


def extract_edge_features(image_np: np.ndarray,
                          grid_size: int = DEFAULT_GRID_SIZE,
                          resize_dim: int = DEFAULT_RESIZE_DIM) -> np.ndarray:
    """
    Extract a max-normalized edge-density grid.

    Args:
        image_np: RGB, RGBA or grayscale uint8 image.
        grid_size: Cells per side.
        resize_dim: Square size the image is resampled to first.

    Returns:
        Float32 vector with grid_size**2 values in [0, 1].

    Raises:
        InvalidImage: If the image is unusable.
        ExtractionError: If the result is not finite.
    """
    image_np = ensure_image(image_np)
    gray = to_grayscale(resize(image_np, resize_dim, resize_dim))

    cells = grid_means(sobel_magnitude(gray), grid_size).ravel()

    peak = cells.max()
    if not np.isfinite(peak):
        raise ExtractionError("Edge magnitudes are not finite")
    if peak == 0:
        logger.debug("Image has no gradient; returning empty edge vector")
        return np.zeros(grid_size * grid_size, dtype=np.float32)

    return (cells / peak).astype(np.float32)


def edge_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two edge grids, in [0, 1]."""
    return cosine_similarity(a, b)


class EdgeFeatureExtractor(FeatureExtractor):
    name = "edge"
    record_field = "edge_features"

    def __init__(self, grid_size: int = DEFAULT_GRID_SIZE,
                 resize_dim: int = DEFAULT_RESIZE_DIM):
        if not 1 <= grid_size <= resize_dim:
            raise ConfigurationError(f"grid_size must be in [1, {resize_dim}], got {grid_size}")
        self.grid_size = grid_size
        self.resize_dim = resize_dim

    @property
    def dimensions(self) -> int:
        return self.grid_size * self.grid_size

    def compute(self, image_np: np.ndarray) -> np.ndarray:
        return extract_edge_features(image_np, self.grid_size, self.resize_dim)

    def similarity(self, a: np.ndarray, b: np.ndarray) -> float:
        return edge_similarity(a, b)

    def encode(self, signature: np.ndarray) -> bytes:
        return encode_vector(signature, KIND_EDGE_FEATURES, self.grid_size, self.resize_dim)

    def decode(self, stored: bytes) -> np.ndarray:
        return decode_vector(
            stored, KIND_EDGE_FEATURES, self.grid_size, self.resize_dim, self.dimensions
        )
