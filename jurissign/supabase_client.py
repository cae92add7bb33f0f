"""
Supabase client module for database operations.

Uses the service key: every caller of this service is already authorized
(CRM routes by admin secret, public routes by signing token hash).
Compare-and-swap updates filter on the expected current value and treat an
empty result as a lost race.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client, create_client

from jurissign.config import Settings, get_settings
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
from jurissign.utils.geolocation import parse_legacy_string, to_legacy_string

logger = logging.getLogger(__name__)

REQUESTS_TABLE = "signature_requests"
SIGNERS_TABLE = "signature_signers"
FIELDS_TABLE = "signature_fields"
AUDIT_TABLE = "signature_audit_log"
PROGRESS_TABLE = "signing_progress"
PROFILES_TABLE = "profiles"


def _jsonable(updates: Dict[str, Any]) -> Dict[str, Any]:
    result = {}
    for key, value in updates.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        result[key] = value
    return result


def signer_to_row(signer: Signer) -> Dict[str, Any]:
    """Signer model -> signature_signers row (legacy column names)."""
    row = signer.model_dump(mode="json", exclude={"geolocation", "verification_code"})
    row["signer_geolocation"] = to_legacy_string(signer.geolocation)
    row["verification_hash"] = signer.verification_code
    return row


def signer_from_row(row: Dict[str, Any]) -> Signer:
    data = dict(row)
    data["geolocation"] = parse_legacy_string(data.pop("signer_geolocation", None))
    data["verification_code"] = data.pop("verification_hash", None)
    return Signer.model_validate(data)


def _signer_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(updates)
    if "geolocation" in data:
        data["signer_geolocation"] = to_legacy_string(data.pop("geolocation"))
    if "verification_code" in data:
        data["verification_hash"] = data.pop("verification_code")
    return _jsonable(data)


class SupabaseClient:
    """SignatureRepository backed by Supabase (PostgREST + RPCs)."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = create_client(
                self.settings.supabase_url,
                self.settings.supabase_service_key,
            )
        return self._client

    def table(self, table_name: str):
        return self.client.table(table_name)

    # Requests
    def insert_request(self, request: SignatureRequest) -> SignatureRequest:
        result = self.table(REQUESTS_TABLE).insert(request.model_dump(mode="json")).execute()
        return SignatureRequest.model_validate(result.data[0]) if result.data else request

    def get_request(self, request_id: str) -> Optional[SignatureRequest]:
        result = self.table(REQUESTS_TABLE).select("*").eq("id", request_id).limit(1).execute()
        if not result.data:
            return None
        return SignatureRequest.model_validate(result.data[0])

    def update_request(self, request_id: str, updates: Dict[str, Any]) -> Optional[SignatureRequest]:
        result = self.table(REQUESTS_TABLE).update(_jsonable(updates)).eq("id", request_id).execute()
        if not result.data:
            return None
        return SignatureRequest.model_validate(result.data[0])

    def mark_request_signed(self, request_id: str, signed_at: datetime) -> bool:
        result = self.table(REQUESTS_TABLE).update({
            "status": SignatureStatus.SIGNED.value,
            "signed_at": signed_at.isoformat(),
        }).eq("id", request_id).eq("status", SignatureStatus.PENDING.value).execute()

        if not result.data:
            logger.info(f"mark_request_signed: race lost or not pending, id={request_id[:8]}...")
            return False
        return True

    def list_requests(self) -> List[SignatureRequest]:
        result = self.table(REQUESTS_TABLE).select("*").order("created_at", desc=True).execute()
        return [SignatureRequest.model_validate(r) for r in (result.data or [])]

    def get_creator(self, user_id: str) -> Optional[CreatorInfo]:
        result = self.table(PROFILES_TABLE).select("user_id, name, email").eq("user_id", user_id).limit(1).execute()
        if not result.data:
            return None
        row = result.data[0]
        return CreatorInfo(id=row["user_id"], name=row.get("name"), email=row.get("email"))

    # Signers
    def insert_signers(self, signers: Sequence[Signer]) -> List[Signer]:
        if not signers:
            return []
        result = self.table(SIGNERS_TABLE).insert([signer_to_row(s) for s in signers]).execute()
        return [signer_from_row(r) for r in (result.data or [])]

    def _get_signer_by(self, column: str, value: str) -> Optional[Signer]:
        result = self.table(SIGNERS_TABLE).select("*").eq(column, value).limit(1).execute()
        if not result.data:
            return None
        return signer_from_row(result.data[0])

    def get_signer(self, signer_id: str) -> Optional[Signer]:
        return self._get_signer_by("id", signer_id)

    def get_signer_by_token_hash(self, token_hash: str) -> Optional[Signer]:
        return self._get_signer_by("public_token_hash", token_hash)

    def get_signer_by_verification_code(self, code: str) -> Optional[Signer]:
        return self._get_signer_by("verification_hash", code.upper())

    def get_signer_by_artifact_hash(self, sha256: str) -> Optional[Signer]:
        return self._get_signer_by("signed_pdf_sha256", sha256.lower())

    def list_signers(self, request_id: str) -> List[Signer]:
        result = self.table(SIGNERS_TABLE).select("*").eq(
            "signature_request_id", request_id
        ).order("order").execute()
        return [signer_from_row(r) for r in (result.data or [])]

    def update_signer(self, signer_id: str, updates: Dict[str, Any]) -> Optional[Signer]:
        result = self.table(SIGNERS_TABLE).update(_signer_updates(updates)).eq("id", signer_id).execute()
        if not result.data:
            return None
        return signer_from_row(result.data[0])

    def commit_signer(self, signer_id: str, commit: SignerCommit) -> Optional[Signer]:
        updates = _signer_updates({
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
        })

        result = self.table(SIGNERS_TABLE).update(updates).eq(
            "id", signer_id
        ).eq("status", SignatureStatus.PENDING.value).execute()

        if not result.data:
            logger.warning(f"commit_signer: race lost or not pending, id={signer_id[:8]}...")
            return None
        return signer_from_row(result.data[0])

    def mark_signer_viewed(self, signer_id: str, viewed_at: datetime) -> bool:
        result = self.table(SIGNERS_TABLE).update({
            "viewed_at": viewed_at.isoformat(),
        }).eq("id", signer_id).is_("viewed_at", "null").execute()
        return bool(result.data)

    def cancel_pending_signers(self, request_id: str) -> int:
        result = self.table(SIGNERS_TABLE).update({
            "status": SignatureStatus.CANCELLED.value,
        }).eq("signature_request_id", request_id).eq("status", SignatureStatus.PENDING.value).execute()
        return len(result.data or [])

    def clear_signer_tokens(self, request_id: str) -> None:
        self.table(SIGNERS_TABLE).update({"public_token_hash": None}).eq(
            "signature_request_id", request_id
        ).execute()

    # Fields
    def replace_fields(self, request_id: str, fields: Sequence[SignatureField]) -> List[SignatureField]:
        """Delete + insert inside the replace_signature_fields database function."""
        payload = [f.model_dump(mode="json") for f in fields]
        result = self.client.rpc("replace_signature_fields", {
            "p_signature_request_id": request_id,
            "p_fields": payload,
        }).execute()
        return [SignatureField.model_validate(r) for r in (result.data or [])]

    def list_fields(self, request_id: str) -> List[SignatureField]:
        result = self.table(FIELDS_TABLE).select("*").eq(
            "signature_request_id", request_id
        ).order("page_number").execute()
        return [SignatureField.model_validate(r) for r in (result.data or [])]

    # Audit
    def insert_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        self.table(AUDIT_TABLE).insert(entry.model_dump(mode="json")).execute()
        return entry

    def list_audit_entries(self, request_id: str) -> List[AuditLogEntry]:
        result = self.table(AUDIT_TABLE).select("*").eq(
            "signature_request_id", request_id
        ).order("created_at").execute()
        return [AuditLogEntry.model_validate(r) for r in (result.data or [])]

    # Workflow state
    def get_progress(self, signer_id: str) -> Optional[SigningProgress]:
        result = self.table(PROGRESS_TABLE).select("*").eq("signer_id", signer_id).limit(1).execute()
        if not result.data:
            return None
        return SigningProgress.model_validate(result.data[0])

    def save_progress(self, progress: SigningProgress) -> SigningProgress:
        self.table(PROGRESS_TABLE).upsert(
            progress.model_dump(mode="json"),
            on_conflict="signer_id",
        ).execute()
        return progress

    # Notifications
    def insert_user_notification(self, row: Dict[str, Any]) -> None:
        self.table("user_notifications").insert(row).execute()


# Singleton instance
_supabase_client: Optional[SupabaseClient] = None


def get_supabase_client() -> SupabaseClient:
    """Get the Supabase client singleton."""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = SupabaseClient()
    return _supabase_client
