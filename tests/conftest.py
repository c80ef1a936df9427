"""Shared test fixtures for retrieval core tests."""

from datetime import datetime, timedelta, timezone

import numpy as np
import cv2
import pytest

from cbir import Configuration, InMemoryStore, SimilaritySearchEngine


def _encode_png(image_rgb: np.ndarray) -> bytes:
    """PNG-encode an RGB image (OpenCV expects BGR)."""
    ok, buf = cv2.imencode(".png", cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR))
    assert ok
    return buf.tobytes()


class TickingClock:
    """Deterministic clock: each call is one second after the previous."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]  # Red square
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def green_rectangle_image():
    """Generate a 200x200 green rectangle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[30:170, 60:140] = [30, 180, 30]  # Tall green rectangle
    return img


@pytest.fixture
def textured_image():
    """Generate a 200x200 checkerboard (strong edges everywhere)."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 200
    for y in range(0, 200, 20):
        for x in range(0, 200, 20):
            if (x // 20 + y // 20) % 2 == 0:
                img[y:y+20, x:x+20] = [50, 50, 50]
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image (stands in for a photograph)."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def flat_image():
    """Uniform gray image with no gradient at all."""
    return np.full((64, 64, 3), 128, dtype=np.uint8)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def engine(store, clock):
    return SimilaritySearchEngine(store, Configuration(), clock=clock)


@pytest.fixture
def encode_png():
    return _encode_png
