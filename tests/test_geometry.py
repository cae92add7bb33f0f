"""
Tests for placement geometry (percent fields -> PDF points).
"""
import pytest

from jurissign.exceptions import ValidationError
from jurissign.models import SignatureField
from jurissign.pdf.geometry import (
    FALLBACK_BOTTOM,
    FALLBACK_HEIGHT,
    FALLBACK_WIDTH,
    fallback_rect,
    to_absolute_rect,
    validate_field,
    validate_fields,
)

LETTER_WIDTH = 612.0
LETTER_HEIGHT = 792.0


def make_field(**overrides) -> SignatureField:
    data = dict(
        id="field-1",
        signature_request_id="req-1",
        page_number=1,
        x_percent=10,
        y_percent=80,
        w_percent=25,
        h_percent=8,
    )
    data.update(overrides)
    return SignatureField(**data)


class TestToAbsoluteRect:
    """Test to_absolute_rect()."""

    def test_letter_page_mapping(self):
        """10/80/25/8 percent on a Letter page maps to bottom-left points."""
        rect = to_absolute_rect(LETTER_WIDTH, LETTER_HEIGHT, make_field())

        assert rect.x == pytest.approx(61.2)
        assert rect.w == pytest.approx(153.0)
        assert rect.h == pytest.approx(63.36)
        assert rect.y == pytest.approx(LETTER_HEIGHT - 633.6 - 63.36)

    def test_top_left_corner(self):
        """A field at 0/0 touches the top edge of the page."""
        rect = to_absolute_rect(LETTER_WIDTH, LETTER_HEIGHT, make_field(x_percent=0, y_percent=0, w_percent=50, h_percent=10))

        assert rect.x == 0
        assert rect.y + rect.h == pytest.approx(LETTER_HEIGHT)

    def test_bottom_right_corner_stays_inside(self):
        """A field ending at 100/100 ends exactly at the page edge."""
        rect = to_absolute_rect(LETTER_WIDTH, LETTER_HEIGHT, make_field(x_percent=75, y_percent=90, w_percent=25, h_percent=10))

        assert rect.x + rect.w == pytest.approx(LETTER_WIDTH)
        assert rect.y == pytest.approx(0)

    def test_fitz_rect_uses_top_left_origin(self):
        """Conversion to PyMuPDF puts y0 at y_percent of the page height."""
        rect = to_absolute_rect(LETTER_WIDTH, LETTER_HEIGHT, make_field())
        fitz_rect = rect.to_fitz_rect(LETTER_HEIGHT)

        assert fitz_rect.x0 == pytest.approx(61.2)
        assert fitz_rect.y0 == pytest.approx(633.6)
        assert fitz_rect.y1 == pytest.approx(633.6 + 63.36)

    @pytest.mark.parametrize("page_size", [(LETTER_WIDTH, LETTER_HEIGHT), (595.28, 841.89), (842.0, 595.0)])
    def test_valid_fields_stay_on_page(self, page_size):
        """Every valid field on a grid of positions and sizes maps inside the page."""
        width, height = page_size
        steps = [0, 10, 37.5, 50, 90]
        sizes = [0.5, 10, 33.3, 50, 100]
        checked = 0
        for x in steps:
            for y in steps:
                for w in sizes:
                    for h in sizes:
                        if x + w > 100 or y + h > 100:
                            continue
                        field = make_field(x_percent=x, y_percent=y, w_percent=w, h_percent=h)
                        validate_field(field)

                        rect = to_absolute_rect(width, height, field)

                        assert rect.x >= -1e-6 and rect.y >= -1e-6
                        assert rect.x + rect.w <= width + 1e-6
                        assert rect.y + rect.h <= height + 1e-6
                        checked += 1
        assert checked > 100


class TestFallbackRect:
    """Test fallback_rect()."""

    def test_bottom_right_position(self):
        """Fallback box sits 80pt from the right edge, 120pt above the bottom."""
        rect = fallback_rect(LETTER_WIDTH)

        assert rect.w == FALLBACK_WIDTH
        assert rect.h == FALLBACK_HEIGHT
        assert rect.y == FALLBACK_BOTTOM
        assert rect.x == pytest.approx(LETTER_WIDTH - 150 - 80)


class TestValidateField:
    """Test validate_field()."""

    def test_valid_field_accepted(self):
        """A field inside the page passes."""
        validate_field(make_field())

    def test_full_page_field_accepted(self):
        """Exactly 100 percent in both directions is allowed."""
        validate_field(make_field(x_percent=0, y_percent=0, w_percent=100, h_percent=100))

    @pytest.mark.parametrize("overrides", [
        {"page_number": 0},
        {"x_percent": -1},
        {"y_percent": -0.5},
        {"w_percent": 0},
        {"h_percent": -3},
        {"x_percent": 80, "w_percent": 25},
        {"y_percent": 95, "h_percent": 8},
    ])
    def test_invalid_geometry_rejected(self, overrides):
        """Out-of-page or degenerate fields raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_field(make_field(**overrides))

        assert exc_info.value.details["field_id"] == "field-1"
        assert exc_info.value.details["errors"]

    @pytest.mark.parametrize("name", ["x_percent", "y_percent", "w_percent", "h_percent"])
    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rejected(self, name, value):
        """NaN and infinite coordinates never pass validation."""
        with pytest.raises(ValidationError) as exc_info:
            validate_field(make_field(**{name: value}))

        assert exc_info.value.details["errors"] == [f"{name} must be a finite number, got {value}"]

    def test_all_errors_reported(self):
        """Every violated rule is listed."""
        with pytest.raises(ValidationError) as exc_info:
            validate_field(make_field(page_number=0, w_percent=0))

        assert len(exc_info.value.details["errors"]) == 2

    def test_validate_fields_stops_at_first_bad_field(self):
        """validate_fields() raises for the first invalid field."""
        fields = [make_field(), make_field(id="field-2", h_percent=0)]

        with pytest.raises(ValidationError) as exc_info:
            validate_fields(fields)

        assert exc_info.value.details["field_id"] == "field-2"
