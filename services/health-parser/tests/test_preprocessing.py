"""Tests for page image normalization."""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from preprocessing import _decode, _encode, _resize, is_image, normalize_page


class TestDecode:
    def test_valid_jpeg(self, sample_image_bytes: bytes):
        img = _decode(sample_image_bytes)
        assert img is not None
        assert img.ndim == 3
        assert img.shape[2] == 3  # BGR

    def test_invalid_bytes(self, invalid_bytes: bytes):
        img = _decode(invalid_bytes)
        assert img is None

    def test_empty_bytes(self):
        assert _decode(b"") is None


class TestResize:
    def test_large_image_downscaled(self):
        img = np.zeros((2000, 3000, 3), dtype=np.uint8)
        result = _resize(img, 1536)
        assert max(result.shape[:2]) == 1536

    def test_small_image_unchanged(self):
        img = np.zeros((300, 200, 3), dtype=np.uint8)
        result = _resize(img, 1536)
        assert result.shape == img.shape

    def test_aspect_ratio_preserved(self):
        img = np.zeros((1000, 2000, 3), dtype=np.uint8)
        result = _resize(img, 1000)
        h, w = result.shape[:2]
        assert w == 1000
        assert h == 500


class TestEncode:
    def test_png_output(self):
        img = np.ones((100, 100, 3), dtype=np.uint8) * 128
        result = _encode(img)
        assert result is not None
        assert result[:8] == b"\x89PNG\r\n\x1a\n"


class TestNormalizePage:
    def test_jpeg_becomes_png(self, sample_image_bytes: bytes):
        result = normalize_page(sample_image_bytes)
        assert result[:8] == b"\x89PNG\r\n\x1a\n"

    def test_large_image_capped(self, large_image_bytes: bytes):
        result = normalize_page(large_image_bytes, max_dimension=1024)
        img = cv2.imdecode(np.frombuffer(result, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert max(img.shape[:2]) == 1024

    def test_never_upscaled(self, sample_image_bytes: bytes):
        result = normalize_page(sample_image_bytes, max_dimension=4096)
        img = cv2.imdecode(np.frombuffer(result, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert img.shape[:2] == (300, 200)

    def test_invalid_bytes_raise(self, invalid_bytes: bytes):
        with pytest.raises(ValueError):
            normalize_page(invalid_bytes)


class TestIsImage:
    def test_image(self, sample_image_bytes: bytes):
        assert is_image(sample_image_bytes) is True

    def test_not_image(self, invalid_bytes: bytes):
        assert is_image(invalid_bytes) is False
