from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
import base64
import binascii

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC = b"\xff\xd8\xff"


class BaseRequest(BaseModel):
    """Base class for all request models - ignores extra fields."""
    model_config = ConfigDict(extra="ignore")


class Record(BaseModel):
    """Base class for persisted rows - tolerates extra DB columns."""
    model_config = ConfigDict(extra="ignore", use_enum_values=False)


# Enums
class SignatureStatus(str, Enum):
    """Status of a signature request and of each signer."""
    PENDING = "pending"
    SIGNED = "signed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SignerAuthMethod(str, Enum):
    """Evidence a signer must provide."""
    SIGNATURE_ONLY = "signature_only"
    SIGNATURE_FACIAL = "signature_facial"
    SIGNATURE_FACIAL_DOCUMENT = "signature_facial_document"

    @property
    def requires_facial(self) -> bool:
        return self in (SignerAuthMethod.SIGNATURE_FACIAL, SignerAuthMethod.SIGNATURE_FACIAL_DOCUMENT)

    @property
    def requires_document(self) -> bool:
        return self == SignerAuthMethod.SIGNATURE_FACIAL_DOCUMENT


class AuthProvider(str, Enum):
    """How the signer's identity was confirmed."""
    GOOGLE = "google"
    EMAIL_LINK = "email_link"
    PHONE = "phone"


class FieldType(str, Enum):
    SIGNATURE = "signature"
    INITIALS = "initials"
    NAME = "name"
    CPF = "cpf"
    DATE = "date"


class AuditAction(str, Enum):
    CREATED = "created"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REMINDER_SENT = "reminder_sent"


class SigningStep(str, Enum):
    """Server-side position of a signer in the signing workflow."""
    GOOGLE_AUTH = "google_auth"
    DATA = "data"
    SIGNATURE = "signature"
    LOCATION = "location"
    FACIAL = "facial"
    CONFIRM = "confirm"
    COMMITTED = "committed"


class StepAction(str, Enum):
    CONFIRM_IDENTITY = "confirm_identity"
    CONFIRM_ALTERNATE_IDENTITY = "confirm_alternate_identity"
    SUBMIT_DATA = "submit_data"
    SUBMIT_SIGNATURE = "submit_signature"
    SUBMIT_LOCATION = "submit_location"
    SKIP_LOCATION = "skip_location"
    SUBMIT_FACIAL = "submit_facial"
    SKIP_FACIAL = "skip_facial"
    BACK = "back"
    COMMIT = "commit"


# Value objects
class Geolocation(BaseModel):
    """Signer location captured by the browser."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)


class DeviceInfo(BaseModel):
    """Parsed user agent. Undetected parts are "unknown"."""
    device: str = "unknown"
    browser: str = "unknown"
    os: str = "unknown"

    def describe(self) -> str:
        return f"{self.device} - {self.browser} - {self.os}"


class IdentityClaims(BaseModel):
    """Identity confirmed by the identity collaborator."""
    email: str
    name: Optional[str] = None
    subject_id: str
    picture: Optional[str] = None


class CreatorInfo(BaseModel):
    """CRM user who created the request (shown to signers)."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


# Persisted records
class SignatureRequest(Record):
    id: str
    document_name: str
    document_path: str
    status: SignatureStatus = SignatureStatus.PENDING
    auth_method: SignerAuthMethod = SignerAuthMethod.SIGNATURE_ONLY
    created_by: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    document_id: Optional[str] = None
    client_name: Optional[str] = None
    process_number: Optional[str] = None


class Signer(Record):
    id: str
    signature_request_id: str
    name: str
    email: str
    cpf: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    order: int = 1
    status: SignatureStatus = SignatureStatus.PENDING
    auth_method: SignerAuthMethod = SignerAuthMethod.SIGNATURE_ONLY
    public_token_hash: Optional[str] = None
    viewed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    signature_image_path: Optional[str] = None
    facial_image_path: Optional[str] = None
    document_image_path: Optional[str] = None
    signer_ip: Optional[str] = None
    signer_user_agent: Optional[str] = None
    geolocation: Optional[Geolocation] = None
    auth_provider: Optional[AuthProvider] = None
    auth_email: Optional[str] = None
    auth_google_sub: Optional[str] = None
    auth_google_picture: Optional[str] = None
    verification_code: Optional[str] = None
    signed_document_path: Optional[str] = None
    signed_pdf_sha256: Optional[str] = None


class SignatureField(Record):
    """
    Placement of a field on the original document, in percent of page size
    with a top-left origin. signer_id None means any signer.
    """
    id: str
    signature_request_id: str
    signer_id: Optional[str] = None
    field_type: FieldType = FieldType.SIGNATURE
    page_number: int
    x_percent: float
    y_percent: float
    w_percent: float
    h_percent: float
    required: bool = True


class AuditLogEntry(Record):
    id: str
    signature_request_id: str
    signer_id: Optional[str] = None
    action: AuditAction
    description: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class SigningProgress(Record):
    """Server-side signing workflow state for one signer."""
    signer_id: str
    step: SigningStep = SigningStep.GOOGLE_AUTH
    auth_provider: Optional[AuthProvider] = None
    auth_email: Optional[str] = None
    auth_google_sub: Optional[str] = None
    auth_google_picture: Optional[str] = None
    auth_name: Optional[str] = None
    declared_name: Optional[str] = None
    declared_cpf: Optional[str] = None
    declared_phone: Optional[str] = None
    signature_image_path: Optional[str] = None
    facial_image_path: Optional[str] = None
    document_image_path: Optional[str] = None
    geolocation: Optional[Geolocation] = None
    location_skipped: bool = False
    facial_skipped: bool = False
    updated_at: Optional[datetime] = None


# Request Models
def decode_data_url(v: str) -> bytes:
    """Decode a base64 (optionally data-URL) PNG/JPEG capture."""
    if v.startswith("data:"):
        _, _, v = v.partition(",")
    try:
        decoded = base64.b64decode(v, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image: {e}")
    if not (decoded.startswith(PNG_MAGIC) or decoded.startswith(JPEG_MAGIC)):
        raise ValueError("Image must be PNG or JPEG")
    return decoded


class SignerInput(BaseRequest):
    """Signer information for request creation."""
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=254)
    cpf: Optional[str] = Field(None, max_length=20)
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[str] = Field(None, max_length=100)
    order: Optional[int] = Field(None, ge=1)
    auth_method: Optional[SignerAuthMethod] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class FieldInput(BaseRequest):
    """
    One placement field. Geometry is validated by the field store so that
    bad rectangles produce a domain validation error.
    """
    signer_id: Optional[str] = None
    field_type: FieldType = FieldType.SIGNATURE
    page_number: int
    x_percent: float
    y_percent: float
    w_percent: float
    h_percent: float
    required: bool = True


class CreateSignatureRequest(BaseRequest):
    """Request to create a new signature request."""
    document_name: str = Field(..., min_length=1, max_length=255)
    document_path: str = Field(..., min_length=1, max_length=1024)
    auth_method: SignerAuthMethod = SignerAuthMethod.SIGNATURE_ONLY
    signers: List[SignerInput] = Field(..., min_length=1)
    expires_at: Optional[datetime] = None
    document_id: Optional[str] = None
    client_name: Optional[str] = Field(None, max_length=255)
    process_number: Optional[str] = Field(None, max_length=64)


class ReplaceFieldsRequest(BaseRequest):
    fields: List[FieldInput] = Field(default_factory=list)


class GoogleIdentityRequest(BaseRequest):
    """POST .../identity/google"""
    id_token: str = Field(..., min_length=10)


class AlternateIdentityRequest(BaseRequest):
    """
    POST .../identity/alternate

    The contact was already confirmed by the identity collaborator
    (e-mail link or phone); this endpoint only records it.
    """
    provider: AuthProvider
    contact: str = Field(..., min_length=3, max_length=254)
    name: Optional[str] = Field(None, max_length=200)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: AuthProvider) -> AuthProvider:
        if v == AuthProvider.GOOGLE:
            raise ValueError("Use the Google identity endpoint for provider 'google'")
        return v


class SignerDataRequest(BaseRequest):
    """POST .../data"""
    name: str = Field(..., max_length=200)
    cpf: str = Field(..., max_length=20)
    phone: Optional[str] = Field(None, max_length=20)


class ImageCaptureRequest(BaseRequest):
    """Base64 PNG/JPEG capture (signature, selfie or ID document)."""
    image_base64: str = Field(..., min_length=16)

    @field_validator("image_base64")
    @classmethod
    def validate_image(cls, v: str) -> str:
        decode_data_url(v)
        return v

    def image_bytes(self) -> bytes:
        return decode_data_url(self.image_base64)


class FacialCaptureRequest(ImageCaptureRequest):
    document_image_base64: Optional[str] = None

    @field_validator("document_image_base64")
    @classmethod
    def validate_document_image(cls, v: Optional[str]) -> Optional[str]:
        if v:
            decode_data_url(v)
        return v

    def document_image_bytes(self) -> Optional[bytes]:
        if not self.document_image_base64:
            return None
        return decode_data_url(self.document_image_base64)


class LocationRequest(BaseRequest):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=500)


class CommitRequest(BaseRequest):
    consent_accepted: bool = Field(..., description="Signer consent required")

    @field_validator("consent_accepted")
    @classmethod
    def validate_consent(cls, v: bool) -> bool:
        if not v:
            raise ValueError("Consent is required to sign the document")
        return v


class VerifyHashRequest(BaseRequest):
    """Request to verify a document by its SHA-256 hash."""
    file_hash: str = Field(..., min_length=64, max_length=64, pattern=r"^[0-9a-fA-F]{64}$")


# Response Models
class SignerResponse(BaseModel):
    """Signer as seen by the CRM."""
    id: str
    name: str
    email: str
    role: Optional[str] = None
    order: int
    status: SignatureStatus
    auth_method: SignerAuthMethod
    viewed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    verification_code: Optional[str] = None
    signed_document_path: Optional[str] = None
    signed_pdf_sha256: Optional[str] = None
    signing_url: Optional[str] = Field(None, description="Returned once, at creation")


class SignatureRequestResponse(BaseModel):
    id: str
    document_name: str
    status: SignatureStatus
    auth_method: SignerAuthMethod
    created_by: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    client_name: Optional[str] = None
    process_number: Optional[str] = None
    signers: List[SignerResponse] = Field(default_factory=list)


class RequestStatsResponse(BaseModel):
    total: int = 0
    pending: int = 0
    signed: int = 0
    expired: int = 0
    cancelled: int = 0


class SigningBundleResponse(BaseModel):
    """GET /v1/signing/sessions/{token} response."""
    request_id: str
    document_name: str
    document_url: Optional[str] = None
    signer_id: str
    signer_name: str
    signer_email_masked: Optional[str] = None
    auth_method: SignerAuthMethod
    status: SignatureStatus
    step: SigningStep
    creator_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    fields: List[SignatureField] = Field(default_factory=list)


class StepResponse(BaseModel):
    step: SigningStep
    message: Optional[str] = None


class CommitResponse(BaseModel):
    status: str = "signed"
    signed_at: datetime
    verification_code: str
    verification_url: str
    request_completed: bool
    signed_document_url: Optional[str] = None
    signed_pdf_sha256: Optional[str] = None
    certification_status: str = Field("pending", description="stored | failed | pending")


class ArtifactStatusResponse(BaseModel):
    status: str = Field(..., description="stored | pending")
    signed_document_url: Optional[str] = None
    signed_pdf_sha256: Optional[str] = None
    signed_at: Optional[datetime] = None
    verification_code: Optional[str] = None


class VerificationSummary(BaseModel):
    """Redacted, public view of a verified signature."""
    request_id: str
    document_name: str
    signer_name: str
    signer_email_masked: str
    signed_at: Optional[datetime] = None
    auth_provider: Optional[AuthProvider] = None
    facial_collected: bool = False
    verification_code: str
    fingerprint: str
    signed_pdf_sha256: Optional[str] = None
    total_signers: int = 1
    signed_signers: int = 1


class VerifyResponse(BaseModel):
    """Response from the public verification endpoints."""
    valid: bool
    status: str = "valid"
    message: str = ""
    summary: Optional[VerificationSummary] = None


class AuditLogResponse(BaseModel):
    entries: List[AuditLogEntry] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: bool = True
    code: str
    message: str
    details: Optional[dict] = None
    request_id: Optional[str] = None


class AuthenticatedUser(BaseModel):
    """CRM user resolved from X-Admin-Secret + X-User-* headers."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
