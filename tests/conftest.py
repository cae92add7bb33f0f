"""
Pytest configuration and fixtures.
"""
import io
import os
import sys

# Settings are read at import time by jurissign.main
os.environ["LOAD_GCP_SECRETS"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["SIGNING_TOKEN_SALT"] = "test-salt"
os.environ["ADMIN_API_SECRET"] = "test-admin-secret"
os.environ["PUBLIC_APP_URL"] = "https://crm.example.com"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["RESEND_API_KEY"] = ""

import fitz
import pytest
from PIL import Image, ImageDraw

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from jurissign.adapters.memory import InMemoryRepository, InMemoryStorage
from jurissign.config import get_settings
from jurissign.exceptions import AuthenticationError
from jurissign.models import (
    CreateSignatureRequest,
    CreatorInfo,
    IdentityClaims,
    SignerAuthMethod,
    SignerInput,
)
from jurissign.pdf.certify import CertificationPipeline
from jurissign.ports import BestEffortResult
from jurissign.services.audit import AuditTrail
from jurissign.services.certification import CertificationService
from jurissign.services.field_store import FieldStore
from jurissign.services.requests import SignatureRequestService
from jurissign.services.signing_flow import SigningFlow
from jurissign.services.verification import VerificationService

CREATOR_ID = "11111111-2222-3333-4444-555555555555"
DOCUMENT_PATH = "documents/contrato.pdf"


def make_pdf(pages: int = 2, width: float = 612, height: float = 792) -> bytes:
    """Letter-size PDF with a line of text on each page."""
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text(fitz.Point(72, 72), f"Contrato de honorarios - pagina {i + 1}", fontsize=12)
    content = doc.tobytes()
    doc.close()
    return content


def make_png(size=(300, 120), background=(255, 255, 255, 255), stroke=True) -> bytes:
    """Signature-pad style PNG: opaque background with a dark stroke."""
    img = Image.new("RGBA", size, background)
    if stroke:
        draw = ImageDraw.Draw(img)
        draw.line([(20, 90), (120, 30), (200, 80), (280, 40)], fill=(10, 10, 60, 255), width=6)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(size=(200, 200), color=(180, 140, 120)) -> bytes:
    img = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG")
    return buffer.getvalue()


def token_from_url(url: str) -> str:
    return url.rsplit("/", 1)[1]


class RecordingNotifier:
    """Notifier that records events instead of sending them."""

    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    def request_fully_signed(self, event):
        self.events.append(event)
        if self.fail:
            raise RuntimeError("notification backend down")
        return BestEffortResult.success()


class FakeIdentityProvider:
    """Accepts any token except "invalid-token"; the token is used as the e-mail."""

    def verify_google_token(self, token: str) -> IdentityClaims:
        if token == "invalid-token":
            raise AuthenticationError("Invalid Google token", "INVALID_TOKEN")
        email = token if "@" in token else "signer@example.com"
        return IdentityClaims(email=email, name="Maria Silva", subject_id="google-sub-123456789")


@pytest.fixture
def settings():
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def repo():
    repository = InMemoryRepository()
    repository.add_creator(CreatorInfo(id=CREATOR_ID, name="Dra. Ana Souza", email="ana@escritorio.com.br"))
    return repository


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def signature_png():
    return make_png()


@pytest.fixture
def audit(repo):
    return AuditTrail(repo)


@pytest.fixture
def field_store(repo):
    return FieldStore(repo)


@pytest.fixture
def flow(repo, storage, identity, notifier, audit, settings):
    return SigningFlow(repo, storage, identity, notifier, audit=audit, settings=settings)


@pytest.fixture
def request_service(repo, storage, flow, field_store, audit, settings):
    return SignatureRequestService(repo, storage, flow, field_store=field_store, audit=audit, settings=settings)


@pytest.fixture
def verification_service(repo):
    return VerificationService(repo)


@pytest.fixture
def pipeline(storage, settings):
    return CertificationPipeline(storage, timezone=settings.display_timezone)


@pytest.fixture
def certification_service(repo, storage, pipeline, settings):
    return CertificationService(repo, storage, pipeline=pipeline, settings=settings, sleep=lambda s: None)


@pytest.fixture
def create_request(request_service, storage, pdf_bytes):
    """Factory: create a request over a stored 2-page PDF; returns (created, tokens by signer order)."""

    def _create(signers=None, auth_method=SignerAuthMethod.SIGNATURE_ONLY, **kwargs):
        storage.put(DOCUMENT_PATH, pdf_bytes, "application/pdf")
        payload = CreateSignatureRequest(
            document_name="Contrato de Honorarios",
            document_path=DOCUMENT_PATH,
            auth_method=auth_method,
            signers=signers or [SignerInput(name="Maria Silva", email="signer@example.com")],
            **kwargs,
        )
        created = request_service.create_request(payload, CREATOR_ID)
        tokens = [token_from_url(created.signing_urls[s.id]) for s in created.signers]
        return created, tokens

    return _create


def walk_to_confirm(flow, token, signature, facial=None, document=None, location=None, name="Maria Silva"):
    """Drive a signer from identity to the confirm step, declaring `name`."""
    flow.confirm_google_identity(token, "signer@example.com")
    flow.submit_data(token, name, "123.456.789-09")
    flow.submit_signature(token, signature)
    if location is not None:
        flow.submit_location(token, location)
    else:
        flow.skip_location(token)
    if facial is not None:
        return flow.submit_facial(token, facial, document)
    return flow.skip_facial(token)


@pytest.fixture
def signed_signer(create_request, flow, signature_png):
    """A single-signer request that was signed; returns (created, token, commit result)."""
    created, tokens = create_request()
    walk_to_confirm(flow, tokens[0], signature_png)
    result = flow.commit(tokens[0], "203.0.113.7", "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0")
    return created, tokens[0], result
