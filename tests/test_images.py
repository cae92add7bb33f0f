"""
Tests for capture image normalization.
"""
import base64
import io

import pytest
from PIL import Image

from jurissign.exceptions import MediaProcessingError
from jurissign.pdf.images import (
    decode_data_url,
    is_decodable,
    normalize_image,
    sniff_image_type,
    strip_white_background,
)

from conftest import make_jpeg, make_png


def pixel(png: bytes, xy):
    with Image.open(io.BytesIO(png)) as img:
        return img.convert("RGBA").getpixel(xy)


class TestSniffImageType:
    """Test sniff_image_type()."""

    def test_png(self):
        assert sniff_image_type(make_png()) == "png"

    def test_jpeg(self):
        assert sniff_image_type(make_jpeg()) == "jpeg"

    def test_unknown_and_empty(self):
        assert sniff_image_type(b"GIF89a....") is None
        assert sniff_image_type(b"") is None
        assert sniff_image_type(None) is None


class TestStripWhiteBackground:
    """Test strip_white_background()."""

    def test_white_becomes_transparent(self):
        """Pure white background pixels get alpha 0."""
        result = strip_white_background(make_png())

        assert pixel(result, (0, 0))[3] == 0

    def test_all_white_image_is_fully_transparent(self):
        """A blank capture leaves no opaque pixel behind."""
        result = strip_white_background(make_png(stroke=False))

        with Image.open(io.BytesIO(result)) as img:
            assert img.getchannel("A").getextrema() == (0, 0)

    def test_stroke_is_kept(self):
        """Dark stroke pixels stay opaque and unchanged."""
        result = strip_white_background(make_png())

        r, g, b, a = pixel(result, (70, 60))
        assert a == 255
        assert (r, g, b) == (10, 10, 60)

    def test_threshold_is_strict(self):
        """A channel equal to the threshold is not considered white."""
        png = make_png(background=(240, 250, 250, 255), stroke=False)

        result = strip_white_background(png, threshold=240)

        assert pixel(result, (5, 5))[3] == 255

    def test_near_white_above_threshold(self):
        """Off-white paper scans above the threshold are stripped."""
        png = make_png(background=(245, 248, 250, 255), stroke=False)

        result = strip_white_background(png, threshold=240)

        assert pixel(result, (5, 5))[3] == 0

    def test_jpeg_input_outputs_png(self):
        """JPEG captures are converted to PNG with an alpha channel."""
        result = strip_white_background(make_jpeg(color=(255, 255, 255)))

        assert sniff_image_type(result) == "png"

    def test_undecodable_raises(self):
        """Garbage bytes raise MediaProcessingError."""
        with pytest.raises(MediaProcessingError):
            strip_white_background(b"\x89PNG\r\n\x1a\nnot really a png")


class TestNormalizeImage:
    """Test normalize_image()."""

    def test_no_strip_returns_input(self):
        """Without stripping the bytes are returned untouched."""
        jpeg = make_jpeg()

        assert normalize_image(jpeg, strip_background=False) is jpeg

    def test_no_strip_keeps_pixel_values(self):
        """White background pixels stay white and opaque when not stripping."""
        png = make_png()

        result = normalize_image(png, strip_background=False)

        with Image.open(io.BytesIO(png)) as before, Image.open(io.BytesIO(result)) as after:
            assert list(after.convert("RGBA").getdata()) == list(before.convert("RGBA").getdata())
        assert pixel(result, (0, 0)) == (255, 255, 255, 255)

    def test_failed_strip_returns_original(self):
        """A decode failure falls back to the original bytes."""
        raw = b"\x89PNG\r\n\x1a\ncorrupted"

        assert normalize_image(raw, strip_background=True) == raw

    def test_is_decodable(self):
        assert is_decodable(make_png()) is True
        assert is_decodable(b"\x89PNG\r\n\x1a\ncorrupted") is False
        assert is_decodable(None) is False


class TestDecodeDataUrl:
    """Test decode_data_url()."""

    def test_plain_base64(self):
        png = make_png()

        assert decode_data_url(base64.b64encode(png).decode()) == png

    def test_data_url_prefix(self):
        jpeg = make_jpeg()
        payload = "data:image/jpeg;base64," + base64.b64encode(jpeg).decode()

        assert decode_data_url(payload) == jpeg

    @pytest.mark.parametrize("payload", [
        "not base64 at all!",
        base64.b64encode(b"GIF89a" * 4).decode(),
    ])
    def test_rejected(self, payload):
        with pytest.raises(ValueError):
            decode_data_url(payload)
