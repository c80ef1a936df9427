"""Tests for the DCT perceptual hash."""

import numpy as np
import pytest

from cbir.errors import InvalidImage, RecordFormatError
from cbir.phash import PerceptualHashExtractor, compute_phash, phash_similarity
from cbir.preprocessing import decode_image


class TestComputePhash:

    def test_fits_in_64_bits(self, noise_image):
        h = compute_phash(noise_image)
        assert 0 <= h < 1 << 64

    def test_dc_bit_always_zero(self, red_square_image, noise_image, textured_image):
        for img in (red_square_image, noise_image, textured_image):
            assert compute_phash(img) >> 63 == 0

    def test_deterministic_from_same_bytes(self, noise_image, encode_png):
        data = encode_png(noise_image)
        assert compute_phash(decode_image(data)) == compute_phash(decode_image(data))

    def test_different_images_different_hashes(self, red_square_image, noise_image):
        assert compute_phash(red_square_image) != compute_phash(noise_image)

    def test_rgba_and_grayscale_inputs(self, red_square_image):
        rgba = np.dstack([red_square_image, np.full((200, 200), 255, dtype=np.uint8)])
        gray = red_square_image[:, :, 0]
        assert compute_phash(rgba) == compute_phash(red_square_image)
        assert 0 <= compute_phash(gray) < 1 << 64

    def test_too_small_image_raises(self):
        with pytest.raises(InvalidImage):
            compute_phash(np.zeros((1, 50, 3), dtype=np.uint8))

    def test_two_pixel_image_accepted(self):
        img = np.array([[[0, 0, 0], [255, 255, 255]],
                        [[255, 255, 255], [0, 0, 0]]], dtype=np.uint8)
        assert 0 <= compute_phash(img) < 1 << 64


class TestPhashSimilarity:

    def test_self_similarity(self, noise_image):
        h = compute_phash(noise_image)
        assert phash_similarity(h, h) == 1.0

    def test_symmetry(self, red_square_image, noise_image):
        a = compute_phash(red_square_image)
        b = compute_phash(noise_image)
        assert phash_similarity(a, b) == phash_similarity(b, a)

    def test_single_bit_difference(self):
        assert phash_similarity(0b1010, 0b1011) == 1 - 1 / 64

    def test_opposite_hashes(self):
        assert phash_similarity(0, (1 << 64) - 1) == 0.0


class TestPerceptualHashExtractor:

    def test_encode_is_sixteen_hex_chars(self, noise_image):
        ex = PerceptualHashExtractor()
        encoded = ex.encode(ex.compute(noise_image))
        assert len(encoded) == 16
        int(encoded, 16)

    def test_decode_inverts_encode(self, textured_image):
        ex = PerceptualHashExtractor()
        h = ex.compute(textured_image)
        assert ex.decode(ex.encode(h)) == h

    def test_decode_rejects_malformed(self):
        ex = PerceptualHashExtractor()
        with pytest.raises(RecordFormatError):
            ex.decode("xyz")
        with pytest.raises(RecordFormatError):
            ex.decode("zzzzzzzzzzzzzzzz")
