"""
DCT-based 64-bit perceptual hash.

Process:
    1. Bilinear resize to 32x32
    2. Luminance grayscale
    3. Second bilinear resize to 8x8
    4. 8x8 2-D DCT (cv2.dct)
    5. Mean of the 63 AC coefficients (DC term at (0, 0) excluded)
    6. Coefficient i in row-major order sets bit 63 - i when it is above
       the mean

The DC position maps to the most significant bit, which is always 0,
so every hash is exactly 64 bits wide and fits in 16 hex characters.
"""

import logging

import cv2
import numpy as np

from .base import FeatureExtractor
from .config import HASH_SIZE
from .encoding import decode_hash, encode_hash
from .preprocessing import ensure_image, resize, to_grayscale
from .scoring import hamming_distance

logger = logging.getLogger(__name__)

PRE_RESIZE = 32
DCT_SIZE = 8
DC_BIT_VALUE = 0


def compute_phash(image_np: np.ndarray) -> int:
    """
    Compute the 64-bit perceptual hash of an image.

    Args:
        image_np: RGB, RGBA or grayscale uint8 image, at least 2x2.

    Returns:
        Integer in [0, 2**64).

    Raises:
        InvalidImage: If the image is smaller than 2px in either dimension.
    """
    image_np = ensure_image(image_np)

    small = resize(image_np, PRE_RESIZE, PRE_RESIZE)
    gray = to_grayscale(small)
    block = resize(gray, DCT_SIZE, DCT_SIZE)

    coefficients = cv2.dct(np.ascontiguousarray(block, dtype=np.float32)).ravel()
    mean = float(coefficients[1:].mean())

    bits = coefficients > mean
    bits[0] = bool(DC_BIT_VALUE)

    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return value


def phash_similarity(h1: int, h2: int) -> float:
    """1 - hamming_distance / 64."""
    return 1.0 - hamming_distance(h1, h2) / HASH_SIZE


class PerceptualHashExtractor(FeatureExtractor):
    name = "phash"
    record_field = "phash"

    def compute(self, image_np: np.ndarray) -> int:
        return compute_phash(image_np)

    def similarity(self, a: int, b: int) -> float:
        return phash_similarity(a, b)

    def encode(self, signature: int) -> str:
        return encode_hash(signature)

    def decode(self, stored: str) -> int:
        return decode_hash(stored)
