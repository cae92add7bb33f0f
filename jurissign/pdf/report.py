"""
Signature report pages appended after the original document.

Page A: document header, signer card with authentication evidence and a
large rendering of the handwritten signature.
Page B: facial capture with watermark, legal basis, fingerprint and
verification link.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import fitz  # PyMuPDF

from jurissign.models import AuthProvider, DeviceInfo, SignatureRequest, Signer
from jurissign.pdf.drawing import (
    BLUE,
    DARK,
    GREEN,
    LIGHT_LINE,
    MUTED,
    TEXT,
    WHITE,
    TextWriter,
    draw_box,
    draw_circle,
    draw_image,
    draw_line,
    draw_qr,
    to_fitz_rect,
)
from jurissign.utils.datetime_utils import (
    DEFAULT_DISPLAY_TIMEZONE,
    format_long,
    format_short,
    utc_offset_label,
)
from jurissign.utils.geolocation import format_coordinates

logger = logging.getLogger(__name__)

A4_WIDTH = 595.28
A4_HEIGHT = 841.89
MARGIN = 50.0

FACIAL_NOT_COLLECTED = "Selfie nao coletada"
SIGNATURE_UNAVAILABLE = "Assinatura indisponivel"
FACIAL_UNAVAILABLE = "Selfie indisponivel"
WATERMARK_TEXT = "C O N F I D E N T I A L"
WATERMARK_RULE = "- - - - - - - - - - - - - - - - - - - - - - - -"
WATERMARK_OPACITY = 0.22
_WATERMARK_COLOR = (0.45, 0.45, 0.45)

LEGAL_BASIS = [
    "- Medida Provisoria 2.200-2/2001 - Institui a Infraestrutura de Chaves Publicas Brasileira",
    "- Lei 14.063/2020 - Dispoe sobre o uso de assinaturas eletronicas em interacoes com entes publicos",
    "- Codigo Civil Brasileiro, Art. 219 - As declaracoes constantes de documentos assinados presumem-se verdadeiras",
    "- Codigo de Processo Civil, Art. 411 - Considera-se autentico o documento quando a autoria estiver identificada",
]


@dataclass
class ReportInfo:
    request: SignatureRequest
    signer: Signer
    fingerprint: str
    verification_url: str
    device: DeviceInfo
    signature_image: Optional[bytes] = None
    # None: not collected. Empty bytes: collected but could not be loaded.
    facial_image: Optional[bytes] = None
    app_name: str = "Juris CRM"
    timezone: str = DEFAULT_DISPLAY_TIMEZONE


def authentication_points(signer: Signer, device: DeviceInfo, facial_collected: bool) -> List[str]:
    """Evidence bullets listed under the signer card."""
    points = ["Assinatura manuscrita digital"]

    if signer.auth_provider == AuthProvider.GOOGLE:
        points.append(f"Autenticacao via Google ({signer.auth_email or 'nao informado'})")
        if signer.auth_google_sub:
            points.append(f"Google ID: {signer.auth_google_sub[:8]}...")
    elif signer.auth_provider == AuthProvider.EMAIL_LINK:
        points.append(f"Autenticacao via Link por E-mail ({signer.auth_email or 'nao informado'})")
    elif signer.auth_provider == AuthProvider.PHONE:
        points.append(f"Autenticacao via Telefone ({signer.phone or 'verificado'})")

    if signer.signer_ip:
        points.append(f"Endereco IP: {signer.signer_ip}")
    if signer.geolocation:
        points.append(f"Geolocalizacao: {format_coordinates(signer.geolocation)}")
    if facial_collected:
        points.append("Verificacao facial (selfie)")
    if signer.signer_user_agent:
        points.append(f"Dispositivo: {device.describe()}")
    return points


def draw_page_a(doc: fitz.Document, info: ReportInfo, writer: TextWriter) -> bool:
    """
    Append the signature summary page.

    Returns True when the signature image was embedded.
    """
    page = doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)
    width, height = A4_WIDTH, A4_HEIGHT
    lm = MARGIN
    request, signer = info.request, info.signer
    facial_collected = info.facial_image is not None

    # Header
    writer.draw(page, lm, height - 45, info.app_name, 20, color=(0.2, 0.4, 0.8), bold=True)
    writer.draw(page, lm + 95, height - 45, "Relatorio de Assinaturas", 14, color=(0.4, 0.4, 0.4))
    writer.draw(
        page, width - lm - 200, height - 30,
        f"Datas e horarios em {utc_offset_label(info.timezone, signer.signed_at)} ({info.timezone})",
        7, color=MUTED,
    )
    writer.draw(
        page, width - lm - 200, height - 42,
        f"Ultima atualizacao em {format_short(signer.signed_at, info.timezone)}",
        7, color=MUTED,
    )
    draw_line(page, lm, height - 60, width - lm, height - 60)

    # Document identification
    writer.draw(page, lm, height - 90, request.document_name.upper(), 16, color=DARK, bold=True)
    writer.draw(page, lm, height - 108, f"Documento numero {request.id}", 8, color=MUTED)
    draw_qr(page, info.verification_url, width - lm - 90, height - 45 - 85, 85)
    draw_line(page, lm, height - 145, width - lm, height - 145)

    # Signer card
    writer.draw(page, lm, height - 175, "Assinaturas", 16, color=DARK, bold=True)
    card_y = height - 210
    draw_circle(page, lm + 12, card_y + 5, 10, GREEN)
    writer.draw(page, lm + 8, card_y + 1, "v", 10, color=WHITE, bold=True)
    writer.draw(page, lm + 30, card_y + 8, signer.name.upper(), 11, color=GREEN, bold=True)
    writer.draw(page, lm + 30, card_y - 6, "Assinou", 9, color=GREEN)

    info_y = card_y - 35
    writer.draw(page, lm, info_y, "Pontos de autenticacao:", 8, color=(0.2, 0.2, 0.2), bold=True)
    info_y -= 14
    for point in authentication_points(signer, info.device, facial_collected):
        writer.draw(page, lm + 5, info_y, f"- {point}", 7, color=TEXT)
        info_y -= 10

    info_y -= 5
    writer.draw(page, lm, info_y, f"Data e hora: {format_long(signer.signed_at, info.timezone)}", 8, color=TEXT)
    info_y -= 10
    if signer.auth_email:
        writer.draw(page, lm, info_y, f"E-mail autenticado: {signer.auth_email}", 8, color=TEXT)
        info_y -= 10
    if signer.auth_provider == AuthProvider.PHONE and signer.phone:
        writer.draw(page, lm, info_y, f"Telefone autenticado: {signer.phone}", 8, color=TEXT)
        info_y -= 10
    if facial_collected:
        writer.draw(page, lm, info_y, "Foto do rosto (selfie) anexa.", 8, color=TEXT)

    # Handwritten signature, large
    sig_x = width - lm - 180
    sig_y = card_y - 30
    draw_box(page, sig_x, sig_y - 100, 175, 100, border=(0.8, 0.8, 0.8), width=1)
    embedded = draw_image(
        page,
        info.signature_image,
        to_fitz_rect(page, sig_x + 10, sig_y - 90, 155, 80),
        SIGNATURE_UNAVAILABLE,
        writer,
    )
    writer.draw(page, sig_x, sig_y - 115, f"Assinatura de {signer.name.upper()}", 7, color=MUTED)
    return embedded


def draw_page_b(doc: fitz.Document, info: ReportInfo, writer: TextWriter) -> bool:
    """
    Append the facial evidence and legal basis page.

    Returns True when the facial image was embedded.
    """
    page = doc.new_page(width=A4_WIDTH, height=A4_HEIGHT)
    width, height = A4_WIDTH, A4_HEIGHT
    lm = MARGIN
    request, signer = info.request, info.signer

    writer.draw(page, lm, height - 50, f"Foto do rosto (selfie) de {signer.name.upper()}:", 10, color=TEXT)

    photo_w = photo_h = 350.0
    photo_x = lm
    photo_y = height - 60 - photo_h
    draw_box(page, photo_x, photo_y, photo_w, photo_h, border=(0.6, 0.6, 0.6), width=1, dashes="[4 4] 0")

    embedded = False
    if info.facial_image is not None:
        embedded = draw_image(
            page,
            info.facial_image,
            to_fitz_rect(page, photo_x + 5, photo_y + 5, photo_w - 10, photo_h - 10),
            FACIAL_UNAVAILABLE,
            writer,
        )
        if embedded:
            wm_y = photo_y + photo_h / 2
            wm = dict(color=_WATERMARK_COLOR, opacity=WATERMARK_OPACITY)
            writer.draw(page, photo_x + 40, wm_y + 30, WATERMARK_RULE, 10, **wm)
            writer.draw(page, photo_x + 80, wm_y + 10, WATERMARK_TEXT, 14, bold=True, **wm)
            writer.draw(
                page, photo_x + 110, wm_y - 10,
                format_short(signer.signed_at, info.timezone, seconds=True), 10, **wm,
            )
            writer.draw(page, photo_x + 40, wm_y - 30, WATERMARK_RULE, 10, **wm)
    else:
        writer.draw(page, photo_x + 100, photo_y + photo_h / 2, FACIAL_NOT_COLLECTED, 14, color=(0.6, 0.6, 0.6), bold=True)

    # Legal basis
    legal_y = photo_y - 30
    writer.draw(page, lm, legal_y, "FUNDAMENTACAO LEGAL E VALIDADE", 11, color=BLUE, bold=True)
    legal_y -= 20
    writer.draw(
        page, lm, legal_y,
        "Este documento foi assinado eletronicamente e possui validade juridica conforme:",
        8, color=TEXT,
    )
    for i, line in enumerate(LEGAL_BASIS):
        legal_y -= 14 if i == 0 else 11
        writer.draw(page, lm, legal_y, line, 7, color=TEXT)

    legal_y -= 25
    draw_line(page, lm, legal_y, width - lm, legal_y, color=LIGHT_LINE, width=0.5)
    legal_y -= 20

    writer.draw(page, lm, legal_y, "HASH DE VERIFICACAO (SHA256):", 9, color=(0.2, 0.2, 0.2), bold=True)
    legal_y -= 14
    writer.draw(page, lm, legal_y, info.fingerprint, 7, color=TEXT)

    legal_y -= 25
    writer.draw(page, lm, legal_y, "VERIFICADOR DE AUTENTICIDADE:", 9, color=(0.2, 0.2, 0.2), bold=True)
    legal_y -= 14
    writer.draw(page, lm, legal_y, info.verification_url, 8, color=(0.2, 0.4, 0.7))
    draw_qr(page, info.verification_url, width - lm - 100, legal_y + 20, 90)

    legal_y -= 30
    draw_line(page, lm, legal_y, width - lm, legal_y, color=LIGHT_LINE, width=0.5)
    legal_y -= 18
    closing = [
        f"Este registro e exclusivo e parte integrante do documento ID: {request.id}",
        "A integridade deste documento pode ser verificada atraves do QR Code ou URL acima.",
        "Qualquer alteracao no documento invalida esta assinatura digital.",
    ]
    for line in closing:
        writer.draw(page, lm, legal_y, line, 7, color=(0.4, 0.4, 0.4))
        legal_y -= 10

    legal_y -= 15
    banner_w = width - 2 * lm
    draw_box(page, lm, legal_y, banner_w, 20, fill=BLUE, width=0)
    title = "DOCUMENTO ASSINADO DIGITALMENTE"
    title_w = writer.text_width(title, 12, bold=True)
    writer.draw(page, lm + (banner_w - title_w) / 2, legal_y + 5, title, 12, color=WHITE, bold=True)

    return embedded
