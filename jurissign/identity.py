"""
Google identity confirmation for the first signing step.
"""
import logging
from typing import Optional

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token

from jurissign.config import Settings, get_settings
from jurissign.exceptions import AuthenticationError
from jurissign.models import IdentityClaims
from jurissign.utils.logging import mask_email

logger = logging.getLogger(__name__)


class GoogleIdentityProvider:
    """Verifies Google ID tokens issued to the signing page."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def verify_google_token(self, token: str) -> IdentityClaims:
        """
        Verify the token signature, audience and expiry.

        Raises:
            AuthenticationError: invalid token or missing claims
        """
        if not self.settings.oauth_client_id:
            logger.error("OAUTH_CLIENT_ID not configured")
            raise AuthenticationError("Google sign-in not configured", "GOOGLE_NOT_CONFIGURED")

        try:
            payload = google_id_token.verify_oauth2_token(
                token,
                google_requests.Request(),
                self.settings.oauth_client_id,
            )
        except ValueError as e:
            logger.warning(f"Google ID token rejected: {e}")
            raise AuthenticationError("Invalid Google token", "INVALID_TOKEN")

        email = payload.get("email")
        subject = payload.get("sub")
        if not email or not subject:
            raise AuthenticationError("Invalid token: missing user ID or email", "INVALID_TOKEN")
        if payload.get("email_verified") is False:
            raise AuthenticationError("Google e-mail not verified", "EMAIL_NOT_VERIFIED")

        logger.info(f"Google identity confirmed for {mask_email(email)}")
        return IdentityClaims(
            email=email,
            name=payload.get("name"),
            subject_id=subject,
            picture=payload.get("picture"),
        )


_identity_provider: Optional[GoogleIdentityProvider] = None


def get_identity_provider() -> GoogleIdentityProvider:
    global _identity_provider
    if _identity_provider is None:
        _identity_provider = GoogleIdentityProvider()
    return _identity_provider
