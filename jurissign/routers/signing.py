"""
Public Signing API Router.
Paths: /v1/signing/sessions/{token}

Every endpoint is authorized by the signing link token alone. Unknown,
archived and expired links all answer with the same 404.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Request
from starlette.concurrency import run_in_threadpool

from jurissign.auth import get_client_ip, get_user_agent
from jurissign.config import Settings, get_settings
from jurissign.dependencies import (
    get_certification_service,
    get_request_service,
    get_signing_flow,
    get_storage,
)
from jurissign.exceptions import ConflictError, DocumentLoadError
from jurissign.models import (
    AlternateIdentityRequest,
    ArtifactStatusResponse,
    CommitRequest,
    CommitResponse,
    ErrorResponse,
    FacialCaptureRequest,
    Geolocation,
    GoogleIdentityRequest,
    ImageCaptureRequest,
    LocationRequest,
    SignatureStatus,
    SignerDataRequest,
    SigningBundleResponse,
    SigningProgress,
    StepResponse,
)
from jurissign.ports import ObjectStorage
from jurissign.services.certification import CertificationService
from jurissign.services.requests import SignatureRequestService
from jurissign.services.signing_flow import SigningFlow
from jurissign.utils.logging import mask_email

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/signing/sessions",
    tags=["signing"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid step data or step transition"},
    404: {"model": ErrorResponse, "description": "Signing link not found"},
    409: {"model": ErrorResponse, "description": "Already signed or cancelled"},
}


def _step(progress: SigningProgress, message: Optional[str] = None) -> StepResponse:
    return StepResponse(step=progress.step, message=message)


def _artifact_url(storage: ObjectStorage, path: Optional[str], settings: Settings) -> Optional[str]:
    if not path:
        return None
    try:
        return storage.signed_url(path, settings.gcs_signed_url_expiration_minutes * 60)
    except Exception as e:
        logger.warning(f"No download URL for certified document: {e}")
        return None


@router.get("/{token}", response_model=SigningBundleResponse, responses=ERROR_RESPONSES)
async def get_signing_bundle(
    request: Request,
    token: str = Path(..., description="Signing link token"),
    service: SignatureRequestService = Depends(get_request_service),
):
    """
    Signing page data: document, signer, placement fields and current step.
    The first lookup of a pending signer is recorded as viewed.
    """
    bundle = await run_in_threadpool(
        service.get_public_signing_bundle,
        token,
        get_client_ip(request),
        get_user_agent(request),
    )
    return SigningBundleResponse(
        request_id=bundle.request.id,
        document_name=bundle.request.document_name,
        document_url=bundle.document_url,
        signer_id=bundle.signer.id,
        signer_name=bundle.signer.name,
        signer_email_masked=mask_email(bundle.signer.email),
        auth_method=bundle.signer.auth_method,
        status=bundle.signer.status,
        step=bundle.progress.step,
        creator_name=bundle.creator.name if bundle.creator else None,
        expires_at=bundle.request.expires_at,
        signed_at=bundle.signer.signed_at,
        fields=bundle.fields,
    )


@router.post("/{token}/identity/google", response_model=StepResponse, responses=ERROR_RESPONSES)
async def confirm_google_identity(
    body: GoogleIdentityRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(flow.confirm_google_identity, token, body.id_token)
    return _step(progress)


@router.post("/{token}/identity/alternate", response_model=StepResponse, responses=ERROR_RESPONSES)
async def confirm_alternate_identity(
    body: AlternateIdentityRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    """Record an e-mail link or phone confirmation done by the identity service."""
    progress = await run_in_threadpool(
        flow.confirm_alternate_identity, token, body.provider, body.contact, body.name
    )
    return _step(progress)


@router.post("/{token}/data", response_model=StepResponse, responses=ERROR_RESPONSES)
async def submit_data(
    body: SignerDataRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(flow.submit_data, token, body.name, body.cpf, body.phone)
    return _step(progress)


@router.post("/{token}/signature", response_model=StepResponse, responses=ERROR_RESPONSES)
async def submit_signature(
    body: ImageCaptureRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(flow.submit_signature, token, body.image_bytes())
    return _step(progress)


@router.post("/{token}/location", response_model=StepResponse, responses=ERROR_RESPONSES)
async def submit_location(
    body: LocationRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    location = Geolocation(lat=body.lat, lon=body.lon, address=body.address)
    progress = await run_in_threadpool(flow.submit_location, token, location)
    return _step(progress)


@router.post("/{token}/location/skip", response_model=StepResponse, responses=ERROR_RESPONSES)
async def skip_location(
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(flow.skip_location, token)
    return _step(progress, "Localizacao nao informada")


@router.post("/{token}/facial", response_model=StepResponse, responses=ERROR_RESPONSES)
async def submit_facial(
    body: FacialCaptureRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(
        flow.submit_facial, token, body.image_bytes(), body.document_image_bytes()
    )
    message = "Selfie nao armazenada" if progress.facial_skipped else None
    return _step(progress, message)


@router.post("/{token}/facial/skip", response_model=StepResponse, responses=ERROR_RESPONSES)
async def skip_facial(
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(flow.skip_facial, token)
    return _step(progress)


@router.post("/{token}/back", response_model=StepResponse, responses=ERROR_RESPONSES)
async def go_back(
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
):
    progress = await run_in_threadpool(flow.back, token)
    return _step(progress)


@router.post("/{token}/commit", response_model=CommitResponse, responses=ERROR_RESPONSES)
async def commit_signature(
    request: Request,
    body: CommitRequest,
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
    certification: CertificationService = Depends(get_certification_service),
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """
    Sign the document.

    The signer is committed first. Certification of the PDF runs afterwards;
    when it fails the signature stands and the artifact can be produced
    later through /artifact/retry.
    """
    result = await run_in_threadpool(
        flow.commit,
        token,
        get_client_ip(request),
        get_user_agent(request),
    )
    signer = result.signer

    response = CommitResponse(
        signed_at=signer.signed_at,
        verification_code=signer.verification_code,
        verification_url=result.verification_url,
        request_completed=result.request_completed,
    )

    try:
        stored = await run_in_threadpool(certification.certify_signer, result.request.id, signer.id)
    except Exception as e:
        logger.error(f"Certification failed for signer {signer.id}: {e}")
        response.certification_status = "failed"
        return response

    response.certification_status = "stored"
    response.signed_pdf_sha256 = stored.artifact.sha256
    response.signed_document_url = _artifact_url(storage, stored.path, settings)
    return response


@router.get("/{token}/artifact", response_model=ArtifactStatusResponse, responses=ERROR_RESPONSES)
async def get_artifact_status(
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    session = await run_in_threadpool(flow.resolve, token)
    signer = session.signer
    if signer.status != SignatureStatus.SIGNED:
        raise ConflictError("Document not signed yet", code="SIGNER_NOT_SIGNED")

    if not signer.signed_document_path:
        return ArtifactStatusResponse(
            status="pending",
            signed_at=signer.signed_at,
            verification_code=signer.verification_code,
        )
    return ArtifactStatusResponse(
        status="stored",
        signed_document_url=_artifact_url(storage, signer.signed_document_path, settings),
        signed_pdf_sha256=signer.signed_pdf_sha256,
        signed_at=signer.signed_at,
        verification_code=signer.verification_code,
    )


@router.post("/{token}/artifact/retry", response_model=ArtifactStatusResponse, responses=ERROR_RESPONSES)
async def retry_artifact(
    token: str = Path(...),
    flow: SigningFlow = Depends(get_signing_flow),
    certification: CertificationService = Depends(get_certification_service),
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """Produce the certified document of a signed signer whose certification failed."""
    session = await run_in_threadpool(flow.resolve, token)
    signer = session.signer
    if signer.status != SignatureStatus.SIGNED:
        raise ConflictError("Document not signed yet", code="SIGNER_NOT_SIGNED")

    if signer.signed_document_path:
        stored_path, sha256 = signer.signed_document_path, signer.signed_pdf_sha256
    else:
        try:
            stored = await run_in_threadpool(certification.certify_signer, session.request.id, signer.id)
        except FileNotFoundError as e:
            logger.error(f"Original document missing for request {session.request.id}: {e}")
            raise DocumentLoadError("Original document not available")
        stored_path, sha256 = stored.path, stored.artifact.sha256

    return ArtifactStatusResponse(
        status="stored",
        signed_document_url=_artifact_url(storage, stored_path, settings),
        signed_pdf_sha256=sha256,
        signed_at=signer.signed_at,
        verification_code=signer.verification_code,
    )
