"""
Interfaces to the collaborators the signing engine depends on.

Services receive implementations through their constructors; the
getters in jurissign.dependencies wire the production adapters
(Supabase, GCS, Resend, Google identity) or the in-memory ones.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from jurissign.models import (
    AuditLogEntry,
    CreatorInfo,
    IdentityClaims,
    SignatureField,
    SignatureRequest,
    SignatureStatus,
    Signer,
    SigningProgress,
)


@dataclass
class BestEffortResult:
    """
    Outcome of a step that must not fail its caller.

    ran: the step was attempted (False when not configured / not applicable)
    ok: the step succeeded
    """
    ran: bool
    ok: bool
    error: Optional[str] = None
    value: Any = None

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> "BestEffortResult":
        return cls(ran=False, ok=False, error=reason)

    @classmethod
    def success(cls, value: Any = None) -> "BestEffortResult":
        return cls(ran=True, ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "BestEffortResult":
        return cls(ran=True, ok=False, error=error)


@dataclass
class SignerCommit:
    """Everything written to a signer row by the terminal commit."""
    signed_at: datetime
    verification_code: str
    name: str
    email: str
    cpf: Optional[str] = None
    phone: Optional[str] = None
    signature_image_path: Optional[str] = None
    facial_image_path: Optional[str] = None
    document_image_path: Optional[str] = None
    signer_ip: Optional[str] = None
    signer_user_agent: Optional[str] = None
    geolocation: Any = None
    auth_provider: Any = None
    auth_email: Optional[str] = None
    auth_google_sub: Optional[str] = None
    auth_google_picture: Optional[str] = None


@dataclass
class RequestCompletedEvent:
    """Emitted once when the last signer of a request signs."""
    request_id: str
    document_name: str
    creator_id: str
    total_signers: int
    signed_signers: int
    creator_email: Optional[str] = None
    signer_names: List[str] = field(default_factory=list)


@runtime_checkable
class ObjectStorage(Protocol):
    def put(self, path: str, data: bytes, content_type: str) -> str:
        ...

    def get(self, path: str) -> bytes:
        ...

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        ...


@runtime_checkable
class SignatureRepository(Protocol):
    # Requests
    def insert_request(self, request: SignatureRequest) -> SignatureRequest:
        ...

    def get_request(self, request_id: str) -> Optional[SignatureRequest]:
        ...

    def update_request(self, request_id: str, updates: Dict[str, Any]) -> Optional[SignatureRequest]:
        ...

    def mark_request_signed(self, request_id: str, signed_at: datetime) -> bool:
        """CAS pending -> signed. True only for the caller that made the transition."""
        ...

    def list_requests(self) -> List[SignatureRequest]:
        ...

    def get_creator(self, user_id: str) -> Optional[CreatorInfo]:
        ...

    # Signers
    def insert_signers(self, signers: Sequence[Signer]) -> List[Signer]:
        ...

    def get_signer(self, signer_id: str) -> Optional[Signer]:
        ...

    def get_signer_by_token_hash(self, token_hash: str) -> Optional[Signer]:
        ...

    def get_signer_by_verification_code(self, code: str) -> Optional[Signer]:
        ...

    def get_signer_by_artifact_hash(self, sha256: str) -> Optional[Signer]:
        ...

    def list_signers(self, request_id: str) -> List[Signer]:
        ...

    def update_signer(self, signer_id: str, updates: Dict[str, Any]) -> Optional[Signer]:
        ...

    def commit_signer(self, signer_id: str, commit: SignerCommit) -> Optional[Signer]:
        """CAS pending -> signed. None when the signer was not pending."""
        ...

    def mark_signer_viewed(self, signer_id: str, viewed_at: datetime) -> bool:
        """CAS viewed_at NULL -> viewed_at. True only for the first viewer."""
        ...

    def cancel_pending_signers(self, request_id: str) -> int:
        ...

    def clear_signer_tokens(self, request_id: str) -> None:
        ...

    # Fields
    def replace_fields(self, request_id: str, fields: Sequence[SignatureField]) -> List[SignatureField]:
        """Delete-all + insert in one transaction."""
        ...

    def list_fields(self, request_id: str) -> List[SignatureField]:
        ...

    # Audit
    def insert_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        ...

    def list_audit_entries(self, request_id: str) -> List[AuditLogEntry]:
        ...

    # Workflow state
    def get_progress(self, signer_id: str) -> Optional[SigningProgress]:
        ...

    def save_progress(self, progress: SigningProgress) -> SigningProgress:
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    def verify_google_token(self, token: str) -> IdentityClaims:
        ...


@runtime_checkable
class Notifier(Protocol):
    def request_fully_signed(self, event: RequestCompletedEvent) -> BestEffortResult:
        """Fire-and-forget. Must not raise."""
        ...


TERMINAL_SIGNER_STATUSES = (SignatureStatus.SIGNED, SignatureStatus.CANCELLED, SignatureStatus.EXPIRED)
