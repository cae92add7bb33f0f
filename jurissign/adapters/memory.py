"""
In-memory storage and repository.

Used for local development (STORAGE_BACKEND / PERSISTENCE_BACKEND = "memory")
and by the test-suite. Every mutation runs under one lock so compare-and-swap
updates and the field replace-all behave like their database counterparts.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from jurissign.exceptions import StorageError
from jurissign.models import (
    AuditLogEntry,
    CreatorInfo,
    SignatureField,
    SignatureRequest,
    SignatureStatus,
    Signer,
    SigningProgress,
)
from jurissign.ports import SignerCommit

logger = logging.getLogger(__name__)


class InMemoryStorage:
    """Object storage kept in a dict."""

    def __init__(self, base_url: str = "memory://storage"):
        self.base_url = base_url.rstrip("/")
        self._objects: Dict[str, bytes] = {}
        self._content_types: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.fail_puts = 0  # number of upcoming put() calls that fail

    def put(self, path: str, data: bytes, content_type: str) -> str:
        with self._lock:
            if self.fail_puts > 0:
                self.fail_puts -= 1
                raise StorageError(f"Simulated upload failure for {path}")
            self._objects[path] = bytes(data)
            self._content_types[path] = content_type
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path

    def get(self, path: str) -> bytes:
        with self._lock:
            if path not in self._objects:
                raise FileNotFoundError(f"File not found: {path}")
            return self._objects[path]

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        with self._lock:
            if path not in self._objects:
                raise FileNotFoundError(f"File not found: {path}")
        return f"{self.base_url}/{quote(path)}?ttl={ttl_seconds}"

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._objects

    def content_type(self, path: str) -> Optional[str]:
        return self._content_types.get(path)


class InMemoryRepository:
    """SignatureRepository backed by dicts."""

    def __init__(self):
        self._lock = threading.RLock()
        self.requests: Dict[str, SignatureRequest] = {}
        self.signers: Dict[str, Signer] = {}
        self.fields: Dict[str, List[SignatureField]] = {}
        self.audit: List[AuditLogEntry] = []
        self.progress: Dict[str, SigningProgress] = {}
        self.creators: Dict[str, CreatorInfo] = {}
        self.fail_next_field_insert = False

    # Helpers
    @staticmethod
    def _apply(record, updates: Dict[str, Any]):
        data = record.model_dump()
        data.update(updates)
        return type(record).model_validate(data)

    def add_creator(self, creator: CreatorInfo) -> None:
        self.creators[creator.id] = creator

    # Requests
    def insert_request(self, request: SignatureRequest) -> SignatureRequest:
        with self._lock:
            self.requests[request.id] = request
            return request

    def get_request(self, request_id: str) -> Optional[SignatureRequest]:
        with self._lock:
            return self.requests.get(request_id)

    def update_request(self, request_id: str, updates: Dict[str, Any]) -> Optional[SignatureRequest]:
        with self._lock:
            current = self.requests.get(request_id)
            if current is None:
                return None
            updated = self._apply(current, updates)
            self.requests[request_id] = updated
            return updated

    def mark_request_signed(self, request_id: str, signed_at: datetime) -> bool:
        with self._lock:
            current = self.requests.get(request_id)
            if current is None or current.status != SignatureStatus.PENDING:
                return False
            self.requests[request_id] = self._apply(
                current, {"status": SignatureStatus.SIGNED, "signed_at": signed_at}
            )
            return True

    def list_requests(self) -> List[SignatureRequest]:
        with self._lock:
            return sorted(self.requests.values(), key=lambda r: r.created_at, reverse=True)

    def get_creator(self, user_id: str) -> Optional[CreatorInfo]:
        return self.creators.get(user_id)

    # Signers
    def insert_signers(self, signers: Sequence[Signer]) -> List[Signer]:
        with self._lock:
            for signer in signers:
                self.signers[signer.id] = signer
            return list(signers)

    def get_signer(self, signer_id: str) -> Optional[Signer]:
        with self._lock:
            return self.signers.get(signer_id)

    def get_signer_by_token_hash(self, token_hash: str) -> Optional[Signer]:
        with self._lock:
            for signer in self.signers.values():
                if signer.public_token_hash and signer.public_token_hash == token_hash:
                    return signer
            return None

    def get_signer_by_verification_code(self, code: str) -> Optional[Signer]:
        with self._lock:
            for signer in self.signers.values():
                if signer.verification_code and signer.verification_code.upper() == code.upper():
                    return signer
            return None

    def get_signer_by_artifact_hash(self, sha256: str) -> Optional[Signer]:
        with self._lock:
            for signer in self.signers.values():
                if signer.signed_pdf_sha256 and signer.signed_pdf_sha256.lower() == sha256.lower():
                    return signer
            return None

    def list_signers(self, request_id: str) -> List[Signer]:
        with self._lock:
            signers = [s for s in self.signers.values() if s.signature_request_id == request_id]
            return sorted(signers, key=lambda s: s.order)

    def update_signer(self, signer_id: str, updates: Dict[str, Any]) -> Optional[Signer]:
        with self._lock:
            current = self.signers.get(signer_id)
            if current is None:
                return None
            updated = self._apply(current, updates)
            self.signers[signer_id] = updated
            return updated

    def commit_signer(self, signer_id: str, commit: SignerCommit) -> Optional[Signer]:
        with self._lock:
            current = self.signers.get(signer_id)
            if current is None or current.status != SignatureStatus.PENDING:
                return None
            updates = {
                "status": SignatureStatus.SIGNED,
                "signed_at": commit.signed_at,
                "verification_code": commit.verification_code,
                "name": commit.name,
                "email": commit.email,
                "cpf": commit.cpf,
                "phone": commit.phone,
                "signature_image_path": commit.signature_image_path,
                "facial_image_path": commit.facial_image_path,
                "document_image_path": commit.document_image_path,
                "signer_ip": commit.signer_ip,
                "signer_user_agent": commit.signer_user_agent,
                "geolocation": commit.geolocation,
                "auth_provider": commit.auth_provider,
                "auth_email": commit.auth_email,
                "auth_google_sub": commit.auth_google_sub,
                "auth_google_picture": commit.auth_google_picture,
            }
            updated = self._apply(current, updates)
            self.signers[signer_id] = updated
            return updated

    def mark_signer_viewed(self, signer_id: str, viewed_at: datetime) -> bool:
        with self._lock:
            current = self.signers.get(signer_id)
            if current is None or current.viewed_at is not None:
                return False
            self.signers[signer_id] = self._apply(current, {"viewed_at": viewed_at})
            return True

    def cancel_pending_signers(self, request_id: str) -> int:
        with self._lock:
            count = 0
            for signer in self.list_signers(request_id):
                if signer.status == SignatureStatus.PENDING:
                    self.signers[signer.id] = self._apply(signer, {"status": SignatureStatus.CANCELLED})
                    count += 1
            return count

    def clear_signer_tokens(self, request_id: str) -> None:
        with self._lock:
            for signer in self.list_signers(request_id):
                self.signers[signer.id] = self._apply(signer, {"public_token_hash": None})

    # Fields
    def replace_fields(self, request_id: str, fields: Sequence[SignatureField]) -> List[SignatureField]:
        with self._lock:
            previous = self.fields.get(request_id, [])
            self.fields[request_id] = []
            try:
                if self.fail_next_field_insert:
                    self.fail_next_field_insert = False
                    raise RuntimeError("Simulated insert failure")
                self.fields[request_id] = [f.model_copy() for f in fields]
            except Exception:
                self.fields[request_id] = previous
                raise
            return list(self.fields[request_id])

    def list_fields(self, request_id: str) -> List[SignatureField]:
        with self._lock:
            return sorted(self.fields.get(request_id, []), key=lambda f: f.page_number)

    # Audit
    def insert_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        with self._lock:
            self.audit.append(entry)
            return entry

    def list_audit_entries(self, request_id: str) -> List[AuditLogEntry]:
        with self._lock:
            entries = [e for e in self.audit if e.signature_request_id == request_id]
            return sorted(entries, key=lambda e: e.created_at)

    # Workflow state
    def get_progress(self, signer_id: str) -> Optional[SigningProgress]:
        with self._lock:
            return self.progress.get(signer_id)

    def save_progress(self, progress: SigningProgress) -> SigningProgress:
        with self._lock:
            self.progress[progress.signer_id] = progress
            return progress
