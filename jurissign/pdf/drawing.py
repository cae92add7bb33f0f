"""
Drawing primitives shared by the footer stamp and the report pages.

Layouts are written in PDF bottom-left coordinates (points from the page
bottom); these helpers convert to PyMuPDF's top-left system.
"""
import io
import logging
import os
from typing import Optional, Tuple

import fitz  # PyMuPDF
import qrcode
from PIL import Image

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]

BLUE: Color = (0.15, 0.4, 0.85)
GREEN: Color = (0.2, 0.7, 0.3)
WHITE: Color = (1, 1, 1)
DARK: Color = (0.1, 0.1, 0.1)
TEXT: Color = (0.3, 0.3, 0.3)
MUTED: Color = (0.5, 0.5, 0.5)
LIGHT_LINE: Color = (0.85, 0.85, 0.85)

# Font paths for Portuguese diacritics support
# Installed in the runtime image: fonts-dejavu-core, fonts-freefont-ttf
FONT_PATHS = {
    "regular": [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    ],
    "bold": [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    ],
}

_TRANSLITERATION = {
    "á": "a", "à": "a", "â": "a", "ã": "a", "ä": "a",
    "é": "e", "ê": "e", "è": "e", "í": "i", "ó": "o",
    "ô": "o", "õ": "o", "ö": "o", "ú": "u", "ü": "u", "ç": "c",
    "Á": "A", "À": "A", "Â": "A", "Ã": "A", "Ä": "A",
    "É": "E", "Ê": "E", "È": "E", "Í": "I", "Ó": "O",
    "Ô": "O", "Õ": "O", "Ö": "O", "Ú": "U", "Ü": "U", "Ç": "C",
    "•": "-", "–": "-", "—": "-",
}


def find_font(style: str = "regular") -> Optional[str]:
    """Find a font file with diacritics support."""
    for path in FONT_PATHS.get(style, FONT_PATHS["regular"]):
        if os.path.exists(path):
            return path
    return None


def transliterate(text: str) -> str:
    """Replace characters the built-in Helvetica cannot render."""
    for src, dst in _TRANSLITERATION.items():
        text = text.replace(src, dst)
    return text.encode("latin-1", "replace").decode("latin-1")


class TextWriter:
    """
    Writes text with an embedded TTF when available, otherwise with the
    built-in Helvetica and transliterated text.
    """

    def __init__(self):
        self.font_regular = find_font("regular")
        self.font_bold = find_font("bold")
        self._measure_cache = {}

    def _font(self, bold: bool) -> Tuple[str, Optional[str]]:
        path = self.font_bold if bold else self.font_regular
        if path:
            return ("jsbold" if bold else "jsreg"), path
        return ("hebo" if bold else "helv"), None

    def text_width(self, text: str, size: float, bold: bool = False) -> float:
        fontname, fontfile = self._font(bold)
        if fontfile:
            font = self._measure_cache.get(fontfile)
            if font is None:
                font = fitz.Font(fontfile=fontfile)
                self._measure_cache[fontfile] = font
            return font.text_length(text, fontsize=size)
        return fitz.get_text_length(transliterate(text), fontname=fontname, fontsize=size)

    def draw(
        self,
        page: fitz.Page,
        x: float,
        y: float,
        text: str,
        size: float,
        color: Color = TEXT,
        bold: bool = False,
        opacity: float = 1.0,
    ) -> None:
        """Draw text with its baseline at (x, y) in bottom-left coordinates."""
        point = fitz.Point(x, page.rect.height - y)
        fontname, fontfile = self._font(bold)

        if fontfile:
            try:
                page.insert_text(
                    point,
                    text,
                    fontname=fontname,
                    fontfile=fontfile,
                    fontsize=size,
                    color=color,
                    fill_opacity=opacity,
                )
                return
            except Exception as e:
                logger.warning(f"Font {fontfile} failed: {e}")
                fontname = "hebo" if bold else "helv"

        page.insert_text(
            point,
            transliterate(text),
            fontname=fontname,
            fontsize=size,
            color=color,
            fill_opacity=opacity,
        )


def to_fitz_rect(page: fitz.Page, x: float, y: float, w: float, h: float) -> fitz.Rect:
    """Bottom-left (x, y, w, h) to a PyMuPDF rectangle."""
    top = page.rect.height - y - h
    return fitz.Rect(x, top, x + w, top + h)


def draw_box(
    page: fitz.Page,
    x: float,
    y: float,
    w: float,
    h: float,
    border: Optional[Color] = None,
    fill: Optional[Color] = None,
    width: float = 1.0,
    dashes: Optional[str] = None,
) -> None:
    shape = page.new_shape()
    shape.draw_rect(to_fitz_rect(page, x, y, w, h))
    shape.finish(color=border, fill=fill, width=width, dashes=dashes)
    shape.commit()


def draw_line(
    page: fitz.Page,
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    color: Color = LIGHT_LINE,
    width: float = 1.0,
) -> None:
    height = page.rect.height
    shape = page.new_shape()
    shape.draw_line(fitz.Point(x1, height - y1), fitz.Point(x2, height - y2))
    shape.finish(color=color, width=width)
    shape.commit()


def draw_circle(page: fitz.Page, cx: float, cy: float, radius: float, fill: Color) -> None:
    shape = page.new_shape()
    shape.draw_circle(fitz.Point(cx, page.rect.height - cy), radius)
    shape.finish(color=fill, fill=fill)
    shape.commit()


def generate_qr_code(url: str, size: int) -> bytes:
    """
    Generate QR code as PNG bytes.

    Args:
        url: URL to encode
        size: Size in points (approximate)
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=4,
        border=1,
    )
    qr.add_data(url)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    # Render at 2x for print quality
    img = img.resize((size * 2, size * 2), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def draw_qr(page: fitz.Page, url: str, x: float, y: float, size: float) -> bool:
    """Draw a QR code for url. Returns False (and logs) if it cannot be drawn."""
    try:
        qr_bytes = generate_qr_code(url, int(size))
        page.insert_image(to_fitz_rect(page, x, y, size, size), stream=qr_bytes)
        return True
    except Exception as e:
        logger.warning(f"Failed to generate QR code: {e}")
        return False


def draw_image(
    page: fitz.Page,
    image: Optional[bytes],
    rect: fitz.Rect,
    placeholder: str,
    writer: TextWriter,
) -> bool:
    """
    Embed image inside rect keeping its aspect ratio.

    When image is missing or cannot be embedded, a labeled placeholder is
    drawn instead. Returns True when the real image was embedded.
    """
    if image:
        try:
            page.insert_image(rect, stream=image, keep_proportion=True)
            return True
        except Exception as e:
            logger.warning(f"Image embed failed, drawing placeholder: {e}")

    shape = page.new_shape()
    shape.draw_rect(rect)
    shape.finish(color=(0.7, 0.7, 0.7), fill=(0.96, 0.96, 0.96), width=0.5, dashes="[2 2] 0")
    shape.commit()

    size = max(5.0, min(8.0, rect.height / 4))
    text_width = writer.text_width(placeholder, size)
    x = rect.x0 + max(2.0, (rect.width - text_width) / 2)
    baseline_from_top = rect.y0 + rect.height / 2 + size / 3
    writer.draw(page, x, page.rect.height - baseline_from_top, placeholder, size, color=MUTED)
    return False
