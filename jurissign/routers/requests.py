"""
CRM Signature Request Router.
Paths: /v1/requests

Called by the CRM's Edge Functions with X-Admin-Secret + X-User-ID.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Path, Request
from starlette.concurrency import run_in_threadpool

from jurissign.auth import get_client_ip, get_crm_user
from jurissign.dependencies import get_audit_trail, get_field_store, get_request_service
from jurissign.models import (
    AuditLogResponse,
    AuthenticatedUser,
    CreateSignatureRequest,
    ErrorResponse,
    ReplaceFieldsRequest,
    RequestStatsResponse,
    SignatureField,
    SignatureRequest,
    SignatureRequestResponse,
    Signer,
    SignerResponse,
)
from jurissign.services.audit import AuditTrail
from jurissign.services.field_store import FieldStore
from jurissign.services.requests import SignatureRequestService
from jurissign.utils.logging import set_context

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/requests",
    tags=["requests"],
)

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Missing or invalid admin secret"},
    404: {"model": ErrorResponse, "description": "Signature request not found"},
}


def signer_response(signer: Signer, signing_url: str = None) -> SignerResponse:
    return SignerResponse(
        id=signer.id,
        name=signer.name,
        email=signer.email,
        role=signer.role,
        order=signer.order,
        status=signer.status,
        auth_method=signer.auth_method,
        viewed_at=signer.viewed_at,
        signed_at=signer.signed_at,
        verification_code=signer.verification_code,
        signed_document_path=signer.signed_document_path,
        signed_pdf_sha256=signer.signed_pdf_sha256,
        signing_url=signing_url,
    )


def request_response(request: SignatureRequest, signers: List[SignerResponse]) -> SignatureRequestResponse:
    return SignatureRequestResponse(
        id=request.id,
        document_name=request.document_name,
        status=request.status,
        auth_method=request.auth_method,
        created_by=request.created_by,
        created_at=request.created_at,
        expires_at=request.expires_at,
        signed_at=request.signed_at,
        archived_at=request.archived_at,
        client_name=request.client_name,
        process_number=request.process_number,
        signers=signers,
    )


@router.post("", response_model=SignatureRequestResponse, status_code=201, responses=ERROR_RESPONSES)
async def create_signature_request(
    body: CreateSignatureRequest,
    user: AuthenticatedUser = Depends(get_crm_user),
    service: SignatureRequestService = Depends(get_request_service),
):
    """
    Create a request and its signers.
    Each signer's signing_url is returned here only; the service keeps the token hash.
    """
    created = await run_in_threadpool(service.create_request, body, user.user_id)
    set_context(signature_request_id=created.request.id)
    signers = [signer_response(s, created.signing_urls.get(s.id)) for s in created.signers]
    return request_response(created.request, signers)


@router.get("/stats", response_model=RequestStatsResponse, responses=ERROR_RESPONSES)
async def get_request_stats(
    user: AuthenticatedUser = Depends(get_crm_user),
    service: SignatureRequestService = Depends(get_request_service),
):
    return await run_in_threadpool(service.get_stats)


@router.get("/{request_id}", response_model=SignatureRequestResponse, responses=ERROR_RESPONSES)
async def get_signature_request(
    request_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_crm_user),
    service: SignatureRequestService = Depends(get_request_service),
):
    set_context(signature_request_id=request_id)
    request = await run_in_threadpool(service.get_request, request_id)
    signers = await run_in_threadpool(service.list_signers, request_id)
    return request_response(request, [signer_response(s) for s in signers])


@router.post("/{request_id}/cancel", response_model=SignatureRequestResponse, responses=ERROR_RESPONSES)
async def cancel_signature_request(
    request: Request,
    request_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_crm_user),
    service: SignatureRequestService = Depends(get_request_service),
):
    set_context(signature_request_id=request_id)
    cancelled = await run_in_threadpool(service.cancel_request, request_id, get_client_ip(request))
    signers = await run_in_threadpool(service.list_signers, request_id)
    return request_response(cancelled, [signer_response(s) for s in signers])


@router.post("/{request_id}/archive", response_model=SignatureRequestResponse, responses=ERROR_RESPONSES)
async def archive_signature_request(
    request_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_crm_user),
    service: SignatureRequestService = Depends(get_request_service),
):
    """Signing links stop working; verification of signed signers keeps working."""
    set_context(signature_request_id=request_id)
    archived = await run_in_threadpool(service.archive_request, request_id)
    signers = await run_in_threadpool(service.list_signers, request_id)
    return request_response(archived, [signer_response(s) for s in signers])


@router.put("/{request_id}/fields", response_model=List[SignatureField], responses=ERROR_RESPONSES)
async def replace_signature_fields(
    body: ReplaceFieldsRequest,
    request_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_crm_user),
    field_store: FieldStore = Depends(get_field_store),
):
    set_context(signature_request_id=request_id)
    return await run_in_threadpool(field_store.replace_fields, request_id, body.fields)


@router.get("/{request_id}/fields", response_model=List[SignatureField], responses=ERROR_RESPONSES)
async def list_signature_fields(
    request_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_crm_user),
    field_store: FieldStore = Depends(get_field_store),
):
    return await run_in_threadpool(field_store.list_fields, request_id)


@router.get("/{request_id}/audit", response_model=AuditLogResponse, responses=ERROR_RESPONSES)
async def get_audit_log(
    request_id: str = Path(...),
    user: AuthenticatedUser = Depends(get_crm_user),
    service: SignatureRequestService = Depends(get_request_service),
    audit: AuditTrail = Depends(get_audit_trail),
):
    await run_in_threadpool(service.get_request, request_id)
    entries = await run_in_threadpool(audit.list, request_id)
    return AuditLogResponse(entries=entries)
