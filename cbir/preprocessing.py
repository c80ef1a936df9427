"""
Image preprocessing shared by every feature extractor.

The resampling and luminance choices below are frozen: stored
signatures were computed with them, so changing either one requires a
new FORMAT_VERSION in cbir.encoding and a full re-index.

    resize        OpenCV bilinear (cv2.INTER_LINEAR)
    to_grayscale  0.299 R + 0.587 G + 0.114 B, float32, no rounding
"""

import cv2
import numpy as np
import logging

from .errors import InvalidImage

logger = logging.getLogger(__name__)

MIN_DIMENSION = 2

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 (floats in [0, 1] are rescaled)."""
    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).round().astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)
    return image_np


def ensure_image(image_np) -> np.ndarray:
    """
    Validate an image buffer and return it as uint8.

    Accepts (H, W) grayscale, (H, W, 3) RGB and (H, W, 4) RGBA arrays.

    Raises:
        InvalidImage: If the buffer is not an array of a supported
            shape, or either dimension is below MIN_DIMENSION pixels.
    """
    if not isinstance(image_np, np.ndarray):
        raise InvalidImage(f"Expected a numpy array, got {type(image_np).__name__}")
    if image_np.ndim == 3 and image_np.shape[2] not in (3, 4):
        raise InvalidImage(f"Unsupported channel count: {image_np.shape[2]}")
    if image_np.ndim not in (2, 3):
        raise InvalidImage(f"Unsupported image shape: {image_np.shape}")

    h, w = image_np.shape[:2]
    if h < MIN_DIMENSION or w < MIN_DIMENSION:
        raise InvalidImage(
            f"Image is {w}x{h}; both dimensions must be at least {MIN_DIMENSION}px"
        )
    return normalize_image(image_np)


def resize(image_np: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resample to width x height with bilinear interpolation."""
    return cv2.resize(image_np, (width, height), interpolation=cv2.INTER_LINEAR)


def to_grayscale(image_np: np.ndarray) -> np.ndarray:
    """
    Convert to a single float32 luminance channel.

    Alpha is ignored. Two-dimensional input is already grayscale and is
    only cast to float32.
    """
    if image_np.ndim == 2:
        return image_np.astype(np.float32)
    rgb = image_np[:, :, :3].astype(np.float32)
    return rgb @ LUMA_WEIGHTS


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes (PNG, JPEG, ...) into an RGB/RGBA buffer.

    Raises:
        InvalidImage: If the bytes are empty or cannot be decoded.
    """
    if not data:
        raise InvalidImage("Empty image data")

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise InvalidImage("Could not decode image data")

    # 16-bit PNG/TIFF
    if image.dtype == np.uint16:
        image = (image // 257).astype(np.uint8)

    if image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    elif image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

    return ensure_image(image)
