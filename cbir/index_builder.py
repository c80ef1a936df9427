"""
Batch indexing of an image directory.

Walks a directory of images, uses each file name as the media reference
and drives SimilaritySearchEngine.rebuild_index() so a corrupt or
unreadable file is reported without stopping the batch.
"""

import os
import logging
from typing import Iterable, Optional

import numpy as np

from .engine import SimilaritySearchEngine
from .preprocessing import decode_image

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({'.jpg', '.jpeg', '.png', '.bmp', '.webp', '.tif', '.tiff'})


def list_images(image_dir: str, extensions: Iterable[str] = IMAGE_EXTENSIONS) -> list:
    """Sorted file names in image_dir with a known image extension."""
    extensions = {e.lower() for e in extensions}
    return sorted(
        f for f in os.listdir(image_dir)
        if os.path.splitext(f)[1].lower() in extensions
        and os.path.isfile(os.path.join(image_dir, f))
    )


def build_index(engine: SimilaritySearchEngine,
                image_dir: str,
                filenames: Optional[Iterable[str]] = None) -> dict:
    """
    Index every image in a directory.

    Args:
        engine: Engine whose store receives the records.
        image_dir: Directory containing images.
        filenames: Optional subset of file names (relative to image_dir).
            Defaults to every image found by list_images().

    Returns:
        Dict with 'success', 'processed', 'errors' counts and the
        'failed' mapping of file name to failure reason.
    """
    if filenames is None:
        filenames = list_images(image_dir)
    filenames = list(filenames)

    def load(filename: str) -> np.ndarray:
        with open(os.path.join(image_dir, filename), 'rb') as f:
            return decode_image(f.read())

    logger.info(f"Building index from {len(filenames)} images in {image_dir}")
    report = engine.rebuild_index(filenames, load)

    logger.info(
        f"Index built: {len(report.indexed)} images, {len(report.failed)} errors"
    )

    return {
        "success": bool(report.indexed) or not filenames,
        "processed": len(report.indexed),
        "errors": len(report.failed),
        "failed": dict(report.failed),
    }
