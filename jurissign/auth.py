"""
Authentication for CRM-facing endpoints.

The CRM's Supabase Edge Functions call this service with the shared
X-Admin-Secret and identify the acting user with X-User-* headers.
Public signing endpoints are authorized by the signing link token itself
(see SigningFlow.resolve); public verification needs no credentials.
"""
import logging
import secrets as secrets_module

from fastapi import Depends, Request

from jurissign.config import Settings, get_settings
from jurissign.exceptions import AuthenticationError
from jurissign.models import AuthenticatedUser
from jurissign.utils.logging import set_context

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address, handling proxies and Cloud Run.
    """
    # Cloud Run / load balancer headers
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    # Real IP header (some proxies)
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    # Direct connection
    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "")


async def verify_admin_secret(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> bool:
    """
    Verify admin API secret from X-Admin-Secret header.
    Used for Edge Function -> Cloud Run communication.
    """
    admin_secret = request.headers.get("X-Admin-Secret")

    if not admin_secret:
        raise AuthenticationError(
            "Admin secret required",
            "MISSING_ADMIN_SECRET"
        )

    if not settings.admin_api_secret:
        logger.error("ADMIN_API_SECRET not configured")
        raise AuthenticationError(
            "Admin authentication not configured",
            "ADMIN_NOT_CONFIGURED"
        )

    # Constant-time comparison to prevent timing attacks
    if not secrets_module.compare_digest(admin_secret, settings.admin_api_secret):
        raise AuthenticationError(
            "Invalid admin secret",
            "INVALID_ADMIN_SECRET"
        )

    return True


async def get_crm_user(
    request: Request,
    _: bool = Depends(verify_admin_secret),
) -> AuthenticatedUser:
    """
    CRM user acting through an Edge Function.
    The function is trusted once the admin secret matched; X-User-ID is required.
    """
    user_id = request.headers.get("X-User-ID")
    if not user_id:
        raise AuthenticationError("X-User-ID header required", "MISSING_USER_ID")

    user = AuthenticatedUser(
        user_id=user_id,
        email=request.headers.get("X-User-Email"),  # Optional
        name=request.headers.get("X-User-Name"),  # Optional
    )
    logger.info(f"Admin call with X-User-ID: {user_id[:8]}...")
    set_context(user_id=user.user_id)
    return user
