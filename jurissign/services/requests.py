"""
Signature request lifecycle (CRM side) and the public signing bundle.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from jurissign.config import Settings, get_settings
from jurissign.exceptions import ConflictError, NotFoundError
from jurissign.models import (
    AuditAction,
    CreateSignatureRequest,
    CreatorInfo,
    RequestStatsResponse,
    SignatureField,
    SignatureRequest,
    SignatureStatus,
    Signer,
    SigningProgress,
)
from jurissign.ports import ObjectStorage, SignatureRepository
from jurissign.services.audit import AuditTrail
from jurissign.services.field_store import FieldStore
from jurissign.services.signing_flow import SigningFlow
from jurissign.utils.datetime_utils import add_days, utc_now
from jurissign.utils.security import build_signing_url, generate_signing_token

logger = logging.getLogger(__name__)


@dataclass
class CreatedRequest:
    request: SignatureRequest
    signers: List[Signer]
    # signer id -> signing URL; tokens are only known at creation time
    signing_urls: Dict[str, str] = field(default_factory=dict)


@dataclass
class SigningBundle:
    signer: Signer
    request: SignatureRequest
    fields: List[SignatureField]
    progress: SigningProgress
    creator: Optional[CreatorInfo] = None
    document_url: Optional[str] = None


class SignatureRequestService:
    def __init__(
        self,
        repo: SignatureRepository,
        storage: ObjectStorage,
        flow: SigningFlow,
        field_store: Optional[FieldStore] = None,
        audit: Optional[AuditTrail] = None,
        settings: Optional[Settings] = None,
    ):
        self.repo = repo
        self.storage = storage
        self.flow = flow
        self.field_store = field_store or FieldStore(repo)
        self.audit = audit or AuditTrail(repo)
        self.settings = settings or get_settings()

    def create_request(self, payload: CreateSignatureRequest, created_by: str) -> CreatedRequest:
        """Create the request and its signers, each with a fresh signing link."""
        now = utc_now()
        expires_at = payload.expires_at or add_days(now, self.settings.signing_link_ttl_days)
        request = SignatureRequest(
            id=str(uuid.uuid4()),
            document_name=payload.document_name,
            document_path=payload.document_path,
            status=SignatureStatus.PENDING,
            auth_method=payload.auth_method,
            created_by=created_by,
            created_at=now,
            expires_at=expires_at,
            document_id=payload.document_id,
            client_name=payload.client_name,
            process_number=payload.process_number,
        )

        origin = self.settings.get_public_app_url()
        signers: List[Signer] = []
        signing_urls: Dict[str, str] = {}
        for position, item in enumerate(payload.signers, start=1):
            token, token_hash = generate_signing_token()
            signer = Signer(
                id=str(uuid.uuid4()),
                signature_request_id=request.id,
                name=item.name.strip(),
                email=item.email,
                cpf=item.cpf,
                phone=item.phone,
                role=item.role,
                order=item.order or position,
                auth_method=item.auth_method or payload.auth_method,
                public_token_hash=token_hash,
            )
            signers.append(signer)
            signing_urls[signer.id] = build_signing_url(origin, token)

        self.repo.insert_request(request)
        self.repo.insert_signers(signers)
        self.audit.try_append(
            request.id,
            AuditAction.CREATED,
            f"Solicitacao de assinatura criada para {len(signers)} signatario(s)",
        )
        logger.info(f"Created signature request {request.id} with {len(signers)} signer(s)")
        return CreatedRequest(request=request, signers=sorted(signers, key=lambda s: s.order), signing_urls=signing_urls)

    def get_request(self, request_id: str) -> SignatureRequest:
        request = self.repo.get_request(request_id)
        if request is None:
            raise NotFoundError("Signature request")
        return request

    def list_signers(self, request_id: str) -> List[Signer]:
        self.get_request(request_id)
        return sorted(self.repo.list_signers(request_id), key=lambda s: s.order)

    def cancel_request(self, request_id: str, ip_address: Optional[str] = None) -> SignatureRequest:
        request = self.get_request(request_id)
        if request.status == SignatureStatus.SIGNED:
            raise ConflictError("A signed request cannot be cancelled", code="REQUEST_SIGNED")
        if request.status == SignatureStatus.CANCELLED:
            return request

        updated = self.repo.update_request(request_id, {"status": SignatureStatus.CANCELLED})
        cancelled = self.repo.cancel_pending_signers(request_id)
        self.audit.try_append(
            request_id,
            AuditAction.CANCELLED,
            "Solicitacao de assinatura cancelada",
            ip_address=ip_address,
        )
        logger.info(f"Cancelled request {request_id} ({cancelled} pending signer(s))")
        return updated

    def archive_request(self, request_id: str) -> SignatureRequest:
        """
        Hide a request from signers. Signing links stop resolving;
        verification of already signed signers keeps working.
        """
        request = self.get_request(request_id)
        if request.archived_at is not None:
            return request
        updated = self.repo.update_request(request_id, {"archived_at": utc_now()})
        self.repo.clear_signer_tokens(request_id)
        logger.info(f"Archived request {request_id}")
        return updated

    def get_stats(self) -> RequestStatsResponse:
        stats = RequestStatsResponse()
        for request in self.repo.list_requests():
            stats.total += 1
            if request.status == SignatureStatus.PENDING:
                stats.pending += 1
            elif request.status == SignatureStatus.SIGNED:
                stats.signed += 1
            elif request.status == SignatureStatus.EXPIRED:
                stats.expired += 1
            elif request.status == SignatureStatus.CANCELLED:
                stats.cancelled += 1
        return stats

    def get_public_signing_bundle(
        self,
        token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SigningBundle:
        """
        Everything the public signing page needs, resolved from the link
        token. The first lookup of a pending signer is recorded as viewed.
        """
        session = self.flow.resolve(token)
        signer, request = session.signer, session.request

        if signer.status == SignatureStatus.PENDING and signer.viewed_at is None:
            self.audit.record_viewed(request.id, signer.id, signer.name, ip_address, user_agent)

        document_url = None
        try:
            document_url = self.storage.signed_url(
                request.document_path,
                self.settings.gcs_signed_url_expiration_minutes * 60,
            )
        except Exception as e:
            logger.warning(f"No preview URL for request {request.id}: {e}")

        return SigningBundle(
            signer=self.repo.get_signer(signer.id) or signer,
            request=request,
            fields=self.field_store.fields_for_signer(request.id, signer.id),
            progress=self.flow.get_progress(signer.id),
            creator=self.repo.get_creator(request.created_by),
            document_url=document_url,
        )
