"""
Tests for the certification pipeline and artifact storage.
"""
import fitz
import pytest

from jurissign.exceptions import ConflictError, DocumentLoadError, NotFoundError, StorageError
from jurissign.models import FieldInput, FieldType, SignatureStatus
from jurissign.pdf.certify import CertificationInput, REPORT_PAGE_COUNT
from jurissign.pdf.footer import BANNER_TEXT
from jurissign.pdf.report import FACIAL_NOT_COLLECTED
from jurissign.utils.security import compute_bytes_hash, content_hash

from conftest import make_jpeg, make_pdf, walk_to_confirm

SIGNATURE_FIELD = dict(page_number=1, x_percent=10, y_percent=80, w_percent=25, h_percent=8)


def open_pdf(content: bytes) -> fitz.Document:
    return fitz.open(stream=content, filetype="pdf")


def page_texts(content: bytes):
    doc = open_pdf(content)
    try:
        return [page.get_text() for page in doc]
    finally:
        doc.close()


def image_boxes(content: bytes, page_index: int):
    doc = open_pdf(content)
    try:
        return [fitz.Rect(info["bbox"]) for info in doc[page_index].get_image_info()]
    finally:
        doc.close()


@pytest.fixture
def certify(repo, pipeline):
    """Run the pipeline for a committed signer."""

    def _certify(created, signer_index=0, document=None):
        request = repo.get_request(created.request.id)
        signer = repo.get_signer(created.signers[signer_index].id)
        return pipeline.certify(CertificationInput(
            document=document if document is not None else make_pdf(),
            request=request,
            signer=signer,
            fields=repo.list_fields(request.id),
            verification_url=f"https://crm.example.com/verificar/{signer.verification_code}",
        ))

    return _certify


class TestCertificationPipeline:
    """Test CertificationPipeline.certify()."""

    def test_appends_two_report_pages(self, signed_signer, certify):
        created, _, _ = signed_signer

        artifact = certify(created)

        assert artifact.original_page_count == 2
        assert artifact.page_count == 2 + REPORT_PAGE_COUNT
        assert open_pdf(artifact.content).page_count == 4

    def test_hash_matches_bytes(self, signed_signer, certify):
        created, _, _ = signed_signer

        artifact = certify(created)

        assert artifact.sha256 == compute_bytes_hash(artifact.content)
        assert artifact.fingerprint == content_hash(created.request.id, created.signers[0].id)

    def test_signature_drawn_inside_field(self, create_request, field_store, flow, certify, signature_png):
        """The signature image lands inside the field rectangle on page 1."""
        created, tokens = create_request()
        field_store.replace_fields(created.request.id, [FieldInput(**SIGNATURE_FIELD)])
        walk_to_confirm(flow, tokens[0], signature_png)
        flow.commit(tokens[0])

        artifact = certify(created)

        assert artifact.used_fallback is False
        assert artifact.signature_embedded is True
        assert [p.page for p in artifact.placements] == [1]
        rect = artifact.placements[0].rect
        assert rect.x == pytest.approx(61.2) and rect.x + rect.w == pytest.approx(214.2)
        assert 63.36 <= rect.y and rect.y + rect.h <= 158.56 + 1e-6
        inside = [
            box for box in image_boxes(artifact.content, 0)
            if box.x0 >= 61.1 and box.x1 <= 214.3 and box.y0 >= 633.5 and box.y1 <= 697.1
        ]
        assert inside

    def test_same_input_same_layout(self, create_request, field_store, flow, certify, signature_png):
        """Certifying twice yields the same pages and placements."""
        created, tokens = create_request()
        field_store.replace_fields(created.request.id, [
            FieldInput(**SIGNATURE_FIELD),
            FieldInput(**{**SIGNATURE_FIELD, "page_number": 2, "x_percent": 55}),
        ])
        walk_to_confirm(flow, tokens[0], signature_png)
        flow.commit(tokens[0])

        first = certify(created)
        second = certify(created)

        assert first.page_count == second.page_count == 4
        assert [p.to_dict() for p in first.placements] == [p.to_dict() for p in second.placements]
        assert first.fingerprint == second.fingerprint
        assert (first.used_fallback, first.signature_embedded) == (second.used_fallback, second.signature_embedded)

    def test_fallback_on_last_page_without_fields(self, signed_signer, certify):
        created, _, _ = signed_signer

        artifact = certify(created)

        assert artifact.used_fallback is True
        assert len(artifact.placements) == 1
        placement = artifact.placements[0]
        assert placement.page == 2
        assert placement.rect.x == pytest.approx(612 - 150 - 80)
        assert placement.rect.y == 120

    def test_fields_of_other_types_use_fallback(self, create_request, field_store, flow, certify, signature_png):
        """Only signature fields place the signature."""
        created, tokens = create_request()
        field_store.replace_fields(created.request.id, [FieldInput(field_type=FieldType.DATE, **SIGNATURE_FIELD)])
        walk_to_confirm(flow, tokens[0], signature_png)
        flow.commit(tokens[0])

        assert certify(created).used_fallback is True

    def test_out_of_range_field_skipped(self, create_request, field_store, flow, certify, signature_png):
        """A field on a page the document does not have is skipped, not clamped."""
        created, tokens = create_request()
        field_store.replace_fields(created.request.id, [
            FieldInput(**SIGNATURE_FIELD),
            FieldInput(**{**SIGNATURE_FIELD, "page_number": 7}),
        ])
        walk_to_confirm(flow, tokens[0], signature_png)
        flow.commit(tokens[0])

        artifact = certify(created)

        assert [p.page for p in artifact.placements] == [1]
        assert artifact.used_fallback is False

    def test_footer_on_original_pages_only(self, signed_signer, certify):
        created, _, _ = signed_signer

        texts = page_texts(certify(created).content)

        assert "Valido conforme" in BANNER_TEXT
        assert all("Valido conforme" in text for text in texts[:2])
        assert not any("Valido conforme" in text for text in texts[2:])

    def test_report_without_selfie(self, signed_signer, certify):
        created, _, _ = signed_signer

        artifact = certify(created)
        texts = page_texts(artifact.content)

        assert FACIAL_NOT_COLLECTED in texts[3]
        assert not any("Verificacao facial" in text for text in texts)
        assert artifact.facial_embedded is False

    def test_report_with_selfie(self, create_request, flow, certify, signature_png):
        created, tokens = create_request()
        walk_to_confirm(flow, tokens[0], signature_png, facial=make_jpeg())
        flow.commit(tokens[0])

        artifact = certify(created)
        texts = page_texts(artifact.content)

        assert artifact.facial_embedded is True
        assert "Verificacao facial (selfie)" in texts[2]
        assert FACIAL_NOT_COLLECTED not in texts[3]

    def test_missing_signature_image_draws_placeholder(self, signed_signer, certify, storage):
        """A capture that cannot be loaded never aborts certification."""
        created, _, result = signed_signer
        storage._objects.pop(result.signer.signature_image_path)

        artifact = certify(created)

        assert artifact.signature_embedded is False
        assert "Assinatura indisponivel" in page_texts(artifact.content)[1]

    def test_metadata(self, signed_signer, certify):
        created, _, result = signed_signer

        doc = open_pdf(certify(created).content)

        assert result.signer.verification_code in doc.metadata["keywords"]
        assert "Assinatura Digital" in doc.metadata["producer"]

    @pytest.mark.parametrize("document", [b"", b"this is not a pdf"])
    def test_unreadable_original(self, signed_signer, certify, document):
        created, _, _ = signed_signer

        with pytest.raises(DocumentLoadError):
            certify(created, document=document)


class TestCertificationService:
    """Test CertificationService."""

    def test_certify_and_store(self, signed_signer, certification_service, storage, repo):
        created, _, _ = signed_signer
        signer_id = created.signers[0].id

        stored = certification_service.certify_signer(created.request.id, signer_id)

        assert stored.attempts == 1
        assert stored.path.startswith(f"assinados/{created.request.id}/signed_{signer_id}_")
        assert storage.get(stored.path) == stored.artifact.content
        signer = repo.get_signer(signer_id)
        assert signer.signed_document_path == stored.path
        assert signer.signed_pdf_sha256 == stored.artifact.sha256

    def test_upload_retried(self, signed_signer, certification_service, storage):
        created, _, _ = signed_signer
        storage.fail_puts = 2

        stored = certification_service.certify_signer(created.request.id, created.signers[0].id)

        assert stored.attempts == 3

    def test_upload_gives_up(self, signed_signer, certification_service, storage, repo):
        """After the last attempt the signer row is left without an artifact."""
        created, _, _ = signed_signer
        storage.fail_puts = 3

        with pytest.raises(StorageError):
            certification_service.certify_signer(created.request.id, created.signers[0].id)

        signer = repo.get_signer(created.signers[0].id)
        assert signer.status == SignatureStatus.SIGNED
        assert signer.signed_document_path is None

    def test_unsigned_signer_rejected(self, create_request, certification_service):
        created, _ = create_request()

        with pytest.raises(ConflictError) as exc_info:
            certification_service.certify_signer(created.request.id, created.signers[0].id)

        assert exc_info.value.code == "SIGNER_NOT_SIGNED"

    def test_signer_of_other_request(self, signed_signer, create_request, certification_service):
        created, _, _ = signed_signer
        other, _ = create_request()

        with pytest.raises(NotFoundError):
            certification_service.certify_signer(other.request.id, created.signers[0].id)
