"""
Public Verification Router.
Paths: /v1/verify

Rate-limited per client IP. Misses answer 404 without saying why.
"""
import logging

from fastapi import APIRouter, Depends, File, Path, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from jurissign.auth import get_client_ip
from jurissign.dependencies import get_verification_service
from jurissign.exceptions import RateLimitException, ValidationError
from jurissign.models import ErrorResponse, VerifyHashRequest, VerifyResponse
from jurissign.services.verification import VerificationResult, VerificationService
from jurissign.utils.rate_limiter import get_verify_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/verify",
    tags=["verification"],
)

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "No valid signature found"},
    429: {"model": ErrorResponse, "description": "Too many verification requests"},
}

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def check_rate_limit(request: Request) -> None:
    rate_limiter = get_verify_rate_limiter()
    client_ip = get_client_ip(request)
    allowed, retry_after = rate_limiter.is_allowed(f"verify:{client_ip}")
    if not allowed:
        raise RateLimitException(retry_after, "Too many verification requests. Please try again later.")


def _valid(result: VerificationResult) -> VerifyResponse:
    return VerifyResponse(
        valid=True,
        status="valid",
        message="Assinatura valida",
        summary=result.summary,
    )


@router.post("/hash", response_model=VerifyResponse, responses=ERROR_RESPONSES)
async def verify_by_hash(
    body: VerifyHashRequest,
    _: None = Depends(check_rate_limit),
    service: VerificationService = Depends(get_verification_service),
):
    """Verify a certified PDF by its SHA-256, computed client side."""
    result = await run_in_threadpool(service.verify_by_uploaded_hash, body.file_hash)
    return _valid(result)


@router.post("/upload", response_model=VerifyResponse, responses=ERROR_RESPONSES)
async def verify_by_upload(
    file: UploadFile = File(...),
    _: None = Depends(check_rate_limit),
    service: VerificationService = Depends(get_verification_service),
):
    """Verify an uploaded certified PDF."""
    content = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(content) > MAX_UPLOAD_BYTES:
        logger.warning(f"Verification upload too large: {file.filename}")
        raise ValidationError("File too large", code="FILE_TOO_LARGE")
    result = await run_in_threadpool(service.verify_uploaded_pdf, content)
    return _valid(result)


@router.get("/{code}", response_model=VerifyResponse, responses=ERROR_RESPONSES)
async def verify_by_code(
    code: str = Path(..., min_length=1, max_length=64),
    _: None = Depends(check_rate_limit),
    service: VerificationService = Depends(get_verification_service),
):
    """Verify by the code printed on the certificate (/verificar/<code>)."""
    result = await run_in_threadpool(service.verify_by_code, code)
    return _valid(result)
