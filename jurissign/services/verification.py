"""
Public verification of signed documents.

Two lookups: by the verification code printed on the certificate, and by
the SHA-256 of a certified PDF. Both answer with a redacted summary or a
generic not-found.
"""
import logging
from dataclasses import dataclass

from jurissign.exceptions import NotFoundError
from jurissign.models import (
    SignatureRequest,
    SignatureStatus,
    Signer,
    VerificationSummary,
)
from jurissign.ports import SignatureRepository
from jurissign.utils.logging import mask_email
from jurissign.utils.security import (
    compute_bytes_hash,
    content_hash,
    normalize_sha256,
    normalize_verification_code,
)

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    signer: Signer
    request: SignatureRequest
    summary: VerificationSummary


class VerificationService:
    def __init__(self, repo: SignatureRepository):
        self.repo = repo

    def verify_by_code(self, code: str) -> VerificationResult:
        normalized = normalize_verification_code(code)
        if not normalized:
            raise NotFoundError("Signature")
        signer = self.repo.get_signer_by_verification_code(normalized)
        return self._result(signer, f"code {normalized[:4]}...")

    def verify_by_uploaded_hash(self, sha256: str) -> VerificationResult:
        normalized = normalize_sha256(sha256)
        if len(normalized) != 64:
            raise NotFoundError("Signature")
        signer = self.repo.get_signer_by_artifact_hash(normalized)
        return self._result(signer, f"sha256 {normalized[:12]}...")

    def verify_uploaded_pdf(self, content: bytes) -> VerificationResult:
        """Hash an uploaded file and look it up by artifact hash."""
        if not content:
            raise NotFoundError("Signature")
        return self.verify_by_uploaded_hash(compute_bytes_hash(content))

    def _result(self, signer, lookup: str) -> VerificationResult:
        if signer is None or signer.status != SignatureStatus.SIGNED:
            logger.info(f"Verification miss for {lookup}")
            raise NotFoundError("Signature")

        request = self.repo.get_request(signer.signature_request_id)
        if request is None or request.status == SignatureStatus.CANCELLED:
            logger.info(f"Verification miss for {lookup}: request unavailable")
            raise NotFoundError("Signature")

        signers = self.repo.list_signers(request.id)
        summary = VerificationSummary(
            request_id=request.id,
            document_name=request.document_name,
            signer_name=signer.name,
            signer_email_masked=mask_email(signer.auth_email or signer.email),
            signed_at=signer.signed_at,
            auth_provider=signer.auth_provider,
            facial_collected=bool(signer.facial_image_path),
            verification_code=signer.verification_code,
            fingerprint=content_hash(request.id, signer.id),
            signed_pdf_sha256=signer.signed_pdf_sha256,
            total_signers=len(signers),
            signed_signers=sum(1 for s in signers if s.status == SignatureStatus.SIGNED),
        )
        logger.info(f"Verification hit for {lookup}: request {request.id}")
        return VerificationResult(signer=signer, request=request, summary=summary)
