"""
Certification pipeline using PyMuPDF (fitz).

Turns the original PDF plus a committed signer into the certified artifact:
signature images at their placement fields, a footer stamp on every
original page, and two appended report pages. The pipeline reads images
through the storage port but writes nothing; persisting the artifact is the
caller's job.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import fitz  # PyMuPDF

from jurissign.exceptions import DocumentLoadError
from jurissign.models import FieldType, SignatureField, SignatureRequest, Signer
from jurissign.pdf.drawing import TextWriter, draw_image
from jurissign.pdf.footer import FooterInfo, draw_footer
from jurissign.pdf.geometry import AbsoluteRect, fallback_rect, to_absolute_rect
from jurissign.pdf.images import DEFAULT_BACKGROUND_THRESHOLD, is_decodable, normalize_image
from jurissign.pdf.report import ReportInfo, SIGNATURE_UNAVAILABLE, draw_page_a, draw_page_b
from jurissign.ports import ObjectStorage
from jurissign.utils.datetime_utils import DEFAULT_DISPLAY_TIMEZONE
from jurissign.utils.security import compute_bytes_hash, content_hash
from jurissign.utils.user_agent import parse_user_agent

logger = logging.getLogger(__name__)

REPORT_PAGE_COUNT = 2


@dataclass
class CertificationInput:
    document: bytes
    request: SignatureRequest
    signer: Signer
    fields: List[SignatureField]
    verification_url: str


@dataclass
class Placement:
    """Where a signature was drawn (1-indexed page, bottom-left points)."""
    page: int
    rect: AbsoluteRect
    field_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"page": self.page, "field_id": self.field_id, **self.rect.to_dict()}


@dataclass
class CertifiedArtifact:
    content: bytes
    sha256: str
    fingerprint: str
    page_count: int
    original_page_count: int
    placements: List[Placement] = field(default_factory=list)
    used_fallback: bool = False
    signature_embedded: bool = False
    facial_embedded: bool = False


def signature_fields_for(fields: List[SignatureField], signer_id: str) -> List[SignatureField]:
    """Signature fields owned by the signer or by nobody."""
    return [
        f for f in fields
        if f.field_type == FieldType.SIGNATURE and (f.signer_id is None or f.signer_id == signer_id)
    ]


class CertificationPipeline:
    """Builds certified artifacts. Stateless apart from its collaborators."""

    def __init__(
        self,
        storage: ObjectStorage,
        background_threshold: int = DEFAULT_BACKGROUND_THRESHOLD,
        timezone: str = DEFAULT_DISPLAY_TIMEZONE,
        app_name: str = "Juris CRM",
    ):
        self.storage = storage
        self.background_threshold = background_threshold
        self.timezone = timezone
        self.app_name = app_name

    def certify(self, data: CertificationInput) -> CertifiedArtifact:
        """
        Produce the certified PDF.

        Raises:
            DocumentLoadError: the original cannot be opened or has no pages.
        Image problems never raise; placeholders are drawn instead.
        """
        request, signer = data.request, data.signer
        doc = self._load_document(data.document)

        try:
            original_page_count = doc.page_count
            fingerprint = content_hash(request.id, signer.id)
            writer = TextWriter()

            signature_image = self._load_image(signer.signature_image_path, strip_background=True)
            facial_image = self._load_image(signer.facial_image_path, strip_background=False)

            placements, used_fallback, signature_embedded = self._place_signatures(
                doc, data.fields, signer.id, signature_image, writer,
            )

            footer = FooterInfo(
                signer_name=signer.name,
                signer_email=signer.auth_email or signer.email,
                signed_at=signer.signed_at,
                fingerprint=fingerprint,
                verification_url=data.verification_url,
                signer_ip=signer.signer_ip,
                timezone=self.timezone,
            )
            for page_index in range(original_page_count):
                draw_footer(doc[page_index], footer, writer)

            report = ReportInfo(
                request=request,
                signer=signer,
                fingerprint=fingerprint,
                verification_url=data.verification_url,
                device=parse_user_agent(signer.signer_user_agent),
                signature_image=signature_image,
                facial_image=facial_image,
                app_name=self.app_name,
                timezone=self.timezone,
            )
            draw_page_a(doc, report, writer)
            facial_embedded = draw_page_b(doc, report, writer)

            metadata = doc.metadata or {}
            metadata["keywords"] = (
                f"{metadata.get('keywords') or ''} "
                f"Assinado por: {signer.name} | Verificacao: {signer.verification_code or 'N/A'}"
            ).strip()
            metadata["producer"] = f"{self.app_name} - Assinatura Digital"
            doc.set_metadata(metadata)

            page_count = doc.page_count
            content = doc.tobytes(garbage=4, deflate=True)
        finally:
            doc.close()

        sha256 = compute_bytes_hash(content)
        logger.info(
            f"Certified artifact: {original_page_count}+{REPORT_PAGE_COUNT} pages, "
            f"{len(placements)} placement(s), fallback={used_fallback}, sha256={sha256[:12]}..."
        )
        return CertifiedArtifact(
            content=content,
            sha256=sha256,
            fingerprint=fingerprint,
            page_count=page_count,
            original_page_count=original_page_count,
            placements=placements,
            used_fallback=used_fallback,
            signature_embedded=signature_embedded,
            facial_embedded=facial_embedded,
        )

    def _load_document(self, content: bytes) -> fitz.Document:
        if not content:
            raise DocumentLoadError("Original document is empty")
        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except Exception as e:
            raise DocumentLoadError(f"Invalid PDF file: {e}")

        if doc.needs_pass:
            doc.close()
            raise DocumentLoadError("Original document is password protected")
        if doc.page_count == 0:
            doc.close()
            raise DocumentLoadError("Original document has no pages")
        return doc

    def _load_image(self, path: Optional[str], strip_background: bool) -> Optional[bytes]:
        """
        Fetch and normalize a captured image.

        Returns None when nothing was captured, and empty bytes when a
        capture exists but could not be read.
        """
        if not path:
            return None
        try:
            raw = self.storage.get(path)
        except Exception as e:
            logger.warning(f"Could not load image {path}: {e}")
            return b""
        if not is_decodable(raw):
            logger.warning(f"Stored image {path} cannot be decoded")
            return b""
        return normalize_image(raw, strip_background, self.background_threshold)

    def _place_signatures(
        self,
        doc: fitz.Document,
        fields: List[SignatureField],
        signer_id: str,
        signature_image: Optional[bytes],
        writer: TextWriter,
    ):
        placements: List[Placement] = []
        embedded = False
        applicable = signature_fields_for(fields, signer_id)

        if applicable:
            for f in applicable:
                if f.page_number < 1 or f.page_number > doc.page_count:
                    logger.info(f"Skipping field {f.id}: page {f.page_number} not in document ({doc.page_count} pages)")
                    continue
                page = doc[f.page_number - 1]
                rect = to_absolute_rect(page.rect.width, page.rect.height, f)
                embedded = self._draw_signature(page, rect, signature_image, writer) or embedded
                placements.append(Placement(page=f.page_number, rect=rect, field_id=f.id))
            return placements, False, embedded

        page = doc[doc.page_count - 1]
        rect = fallback_rect(page.rect.width)
        embedded = self._draw_signature(page, rect, signature_image, writer)
        placements.append(Placement(page=doc.page_count, rect=rect))
        return placements, True, embedded

    @staticmethod
    def _draw_signature(page: fitz.Page, rect: AbsoluteRect, image: Optional[bytes], writer: TextWriter) -> bool:
        return draw_image(page, image, rect.to_fitz_rect(page.rect.height), SIGNATURE_UNAVAILABLE, writer)
