"""
Produces and stores the certified artifact of a signed signer.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

from jurissign.config import Settings, get_settings
from jurissign.exceptions import ConflictError, NotFoundError, StorageError
from jurissign.models import SignatureStatus, Signer
from jurissign.pdf.certify import CertificationInput, CertificationPipeline, CertifiedArtifact
from jurissign.ports import ObjectStorage, SignatureRepository
from jurissign.utils.security import build_verification_url

logger = logging.getLogger(__name__)

# Delay before each retry of an artifact upload (first attempt is immediate)
RETRY_DELAYS_SECONDS = [1, 2]


def artifact_path(request_id: str, signer_id: str, timestamp_ms: int) -> str:
    return f"assinados/{request_id}/signed_{signer_id}_{timestamp_ms}.pdf"


@dataclass
class StoredArtifact:
    signer: Signer
    path: str
    artifact: CertifiedArtifact
    attempts: int


class CertificationService:
    def __init__(
        self,
        repo: SignatureRepository,
        storage: ObjectStorage,
        pipeline: Optional[CertificationPipeline] = None,
        settings: Optional[Settings] = None,
        sleep=time.sleep,
    ):
        self.repo = repo
        self.storage = storage
        self.settings = settings or get_settings()
        self.pipeline = pipeline or CertificationPipeline(
            storage,
            background_threshold=self.settings.background_strip_threshold,
            timezone=self.settings.display_timezone,
            app_name=self.settings.app_name,
        )
        self._sleep = sleep

    def certify_signer(self, request_id: str, signer_id: str) -> StoredArtifact:
        """
        Build the certified PDF of a signed signer and attach it to the signer.

        Raises:
            NotFoundError: unknown request or signer
            ConflictError: the signer has not signed
            DocumentLoadError: the original document is unreadable
            StorageError: the artifact could not be stored after all attempts
        """
        request = self.repo.get_request(request_id)
        signer = self.repo.get_signer(signer_id)
        if request is None or signer is None or signer.signature_request_id != request_id:
            raise NotFoundError("Signer")
        if signer.status != SignatureStatus.SIGNED:
            raise ConflictError("Signer has not signed yet", code="SIGNER_NOT_SIGNED")

        original = self.storage.get(request.document_path)
        verification_url = build_verification_url(
            self.settings.get_public_app_url(), signer.verification_code or ""
        )
        artifact = self.pipeline.certify(
            CertificationInput(
                document=original,
                request=request,
                signer=signer,
                fields=self.repo.list_fields(request_id),
                verification_url=verification_url,
            )
        )
        return self.store_artifact(request_id, signer, artifact)

    def store_artifact(self, request_id: str, signer: Signer, artifact: CertifiedArtifact) -> StoredArtifact:
        """
        Upload already computed bytes, retrying the upload only.
        The signer row is updated once the upload succeeded.
        """
        path = artifact_path(request_id, signer.id, int(time.time() * 1000))
        attempts = self.settings.artifact_upload_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                delay = RETRY_DELAYS_SECONDS[min(attempt - 2, len(RETRY_DELAYS_SECONDS) - 1)]
                logger.info(f"Artifact upload retry {attempt}/{attempts} for signer {signer.id}, waiting {delay}s")
                self._sleep(delay)
            try:
                self.storage.put(path, artifact.content, "application/pdf")
            except Exception as e:
                last_error = e
                logger.warning(f"Artifact upload attempt {attempt}/{attempts} for signer {signer.id} failed: {e}")
                continue

            updated = self.repo.update_signer(
                signer.id,
                {"signed_document_path": path, "signed_pdf_sha256": artifact.sha256},
            )
            logger.info(
                f"Stored certified artifact for signer {signer.id} at {path} "
                f"(attempt {attempt}, sha256={artifact.sha256[:12]}...)"
            )
            return StoredArtifact(signer=updated or signer, path=path, artifact=artifact, attempts=attempt)

        logger.error(f"Artifact for signer {signer.id} not stored after {attempts} attempts: {last_error}")
        raise StorageError(f"Could not store certified document: {last_error}")
