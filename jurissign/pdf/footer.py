"""
Footer stamp drawn at the bottom of every page of the original document.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import fitz  # PyMuPDF

from jurissign.pdf.drawing import BLUE, WHITE, TextWriter, draw_box, draw_qr
from jurissign.utils.datetime_utils import DEFAULT_DISPLAY_TIMEZONE, format_short

logger = logging.getLogger(__name__)

BANNER_TEXT = "DOCUMENTO ASSINADO DIGITALMENTE - Valido conforme MP 2.200-2/2001 e Lei 14.063/2020"

BOX_X = 5.0
BOX_Y = 10.0
BOX_HEIGHT = 82.0
BANNER_HEIGHT = 18.0
QR_SIZE = 52.0

_LABEL = (0.12, 0.12, 0.12)
_DETAIL = (0.35, 0.35, 0.35)
_HASH = (0.4, 0.4, 0.4)
_LINK = (0.2, 0.35, 0.7)


@dataclass
class FooterInfo:
    """Signature details printed in the footer."""
    signer_name: str
    signer_email: Optional[str]
    signed_at: Optional[datetime]
    fingerprint: str
    verification_url: str
    signer_ip: Optional[str] = None
    timezone: str = DEFAULT_DISPLAY_TIMEZONE


def draw_footer(page: fitz.Page, info: FooterInfo, writer: TextWriter) -> None:
    """
    Draw the signature footer band across the bottom of a page.

    Layout (bottom-left coordinates): box at x 5, y 10, height 82, spanning
    the page width minus 10; blue banner across its top; signer details on
    the left; verification QR code on the right.
    """
    width = page.rect.width
    box_w = width - 2 * BOX_X
    top = BOX_Y + BOX_HEIGHT

    draw_box(page, BOX_X, BOX_Y, box_w, BOX_HEIGHT, border=BLUE, fill=(0.98, 0.98, 1.0), width=1.0)
    draw_box(page, BOX_X, top - BANNER_HEIGHT, box_w, BANNER_HEIGHT, fill=BLUE, width=0)
    writer.draw(page, BOX_X + 8, top - 12, BANNER_TEXT, 8, color=WHITE, bold=True)

    text_x = BOX_X + 10
    writer.draw(page, text_x, top - 28, f"Assinante: {info.signer_name}", 7, color=_LABEL, bold=True)
    writer.draw(page, text_x, top - 40, f"E-mail confirmado: {info.signer_email or 'N/A'}", 6, color=_DETAIL)
    if info.signer_ip:
        writer.draw(page, BOX_X + 200, top - 40, f"IP: {info.signer_ip}", 6, color=_DETAIL)
    writer.draw(
        page, text_x, top - 51,
        f"Data/hora: {format_short(info.signed_at, info.timezone)}",
        6, color=_DETAIL,
    )
    writer.draw(page, text_x, top - 62, f"Hash SHA256: {info.fingerprint[:32]}...", 5, color=_HASH)
    writer.draw(page, text_x, BOX_Y + 6, f"Verificar: {info.verification_url}", 5, color=_LINK)

    draw_qr(page, info.verification_url, BOX_X + box_w - 60, BOX_Y + 10, QR_SIZE)
