"""
Placement geometry.

Fields are stored as percentages of the page with a top-left origin
(how the placement editor renders pages). PDF drawing uses points with a
bottom-left origin; PyMuPDF uses points with a top-left origin.
"""
import math
from dataclasses import dataclass
from typing import Iterable

import fitz  # PyMuPDF

from jurissign.exceptions import ValidationError
from jurissign.models import SignatureField

# Fallback signature box when a request has no signature fields,
# drawn on the last page of the original document.
FALLBACK_WIDTH = 150.0
FALLBACK_HEIGHT = 60.0
FALLBACK_RIGHT_MARGIN = 80.0
FALLBACK_BOTTOM = 120.0


@dataclass(frozen=True)
class AbsoluteRect:
    """Rectangle in PDF points, origin at bottom-left, Y increases upward."""
    x: float
    y: float
    w: float
    h: float

    def to_fitz_rect(self, page_height: float) -> fitz.Rect:
        """Convert to PyMuPDF's top-left coordinate system."""
        y_top = page_height - self.y - self.h
        return fitz.Rect(self.x, y_top, self.x + self.w, y_top + self.h)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


def to_absolute_rect(page_width: float, page_height: float, field: SignatureField) -> AbsoluteRect:
    """
    Map a percent-anchored field to absolute page coordinates.

        w = W * w% / 100
        h = H * h% / 100
        x = W * x% / 100
        y = H - H * y% / 100 - h

    No clamping: a field that is valid in percent space stays inside the page.
    """
    w = page_width * field.w_percent / 100
    h = page_height * field.h_percent / 100
    x = page_width * field.x_percent / 100
    y = page_height - (page_height * field.y_percent / 100) - h
    return AbsoluteRect(x=x, y=y, w=w, h=h)


def fallback_rect(page_width: float) -> AbsoluteRect:
    """Fixed signature box near the bottom-right of a page."""
    return AbsoluteRect(
        x=page_width - FALLBACK_WIDTH - FALLBACK_RIGHT_MARGIN,
        y=FALLBACK_BOTTOM,
        w=FALLBACK_WIDTH,
        h=FALLBACK_HEIGHT,
    )


def validate_field(field: SignatureField) -> None:
    """
    Enforce field invariants.

    Raises:
        ValidationError: page < 1, a non-finite coordinate, negative
            origin, non-positive size, or a rectangle leaving the page.
    """
    errors = [
        f"{name} must be a finite number, got {value}"
        for name, value in (
            ("x_percent", field.x_percent),
            ("y_percent", field.y_percent),
            ("w_percent", field.w_percent),
            ("h_percent", field.h_percent),
        )
        if not math.isfinite(value)
    ]
    if errors:
        raise ValidationError(
            "Invalid field geometry",
            details={"field_id": field.id, "errors": errors},
        )

    errors = []
    if field.page_number < 1:
        errors.append(f"page_number must be >= 1, got {field.page_number}")
    if field.x_percent < 0:
        errors.append(f"x_percent must be >= 0, got {field.x_percent}")
    if field.y_percent < 0:
        errors.append(f"y_percent must be >= 0, got {field.y_percent}")
    if field.w_percent <= 0:
        errors.append(f"w_percent must be > 0, got {field.w_percent}")
    if field.h_percent <= 0:
        errors.append(f"h_percent must be > 0, got {field.h_percent}")
    if field.x_percent + field.w_percent > 100:
        errors.append(f"x_percent + w_percent exceeds 100 ({field.x_percent + field.w_percent})")
    if field.y_percent + field.h_percent > 100:
        errors.append(f"y_percent + h_percent exceeds 100 ({field.y_percent + field.h_percent})")

    if errors:
        raise ValidationError(
            "Invalid field geometry",
            details={"field_id": field.id, "errors": errors},
        )


def validate_fields(fields: Iterable[SignatureField]) -> None:
    for field in fields:
        validate_field(field)
