"""
Configuration module - loads secrets from Google Secret Manager.
Falls back to environment variables for local development.
"""
import json
import os
import logging
import re
from functools import lru_cache
from typing import Optional, List, Any

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator, field_validator

logger = logging.getLogger(__name__)


def get_secret_from_gcp(secret_id: str, project_id: Optional[str] = None) -> Optional[str]:
    """
    Fetch secret from Google Secret Manager.
    Returns None if not available (fallback to env vars).
    """
    try:
        from google.cloud import secretmanager

        project = project_id or os.environ.get("GCP_PROJECT_ID") or os.environ.get("GOOGLE_CLOUD_PROJECT")
        if not project:
            return None

        client = secretmanager.SecretManagerServiceClient()
        name = f"projects/{project}/secrets/{secret_id}/versions/latest"
        response = client.access_secret_version(request={"name": name})
        return response.payload.data.decode("UTF-8")
    except Exception as e:
        logger.debug(f"Could not fetch secret {secret_id} from Secret Manager: {e}")
        return None


class Settings(BaseSettings):
    """Application settings with Secret Manager integration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # GCP
    gcp_project_id: str = Field(default="", alias="GCP_PROJECT_ID")
    oauth_client_id: str = Field(default="", alias="OAUTH_CLIENT_ID")

    # Supabase (service key; the CRM's RLS is enforced by the calling Edge Functions)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_key: str = Field(default="", alias="SUPABASE_SERVICE_KEY")

    # GCS
    gcs_bucket: str = Field(default="", alias="GCS_BUCKET")
    gcs_signed_url_expiration_minutes: int = Field(default=10, alias="GCS_SIGNED_URL_EXPIRATION_MINUTES")

    # Resend (Email)
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_from_email: str = Field(default="assinaturas@juriscrm.com.br", alias="RESEND_FROM_EMAIL")

    # App
    app_base_url: str = Field(default="http://localhost:8000", alias="APP_BASE_URL")
    public_app_url: str = Field(default="", alias="PUBLIC_APP_URL")
    signing_token_salt: str = Field(default="", alias="SIGNING_TOKEN_SALT")
    admin_api_secret: str = Field(default="", alias="ADMIN_API_SECRET")
    app_name: str = Field(default="Juris CRM", alias="APP_NAME")

    # Backends ("memory" is for local development and tests)
    storage_backend: str = Field(default="gcs", alias="STORAGE_BACKEND")
    persistence_backend: str = Field(default="supabase", alias="PERSISTENCE_BACKEND")

    # Certification
    display_timezone: str = Field(default="America/Manaus", alias="DISPLAY_TIMEZONE")
    background_strip_threshold: int = Field(
        default=240,
        alias="BACKGROUND_STRIP_THRESHOLD",
        ge=0,
        le=255,
        description="Pixels with R, G and B all above this value become transparent in signature captures",
    )
    artifact_upload_attempts: int = Field(default=3, alias="ARTIFACT_UPLOAD_ATTEMPTS", ge=1)
    signing_link_ttl_days: int = Field(default=30, alias="SIGNING_LINK_TTL_DAYS", ge=1)

    # Rate limiting (public verification)
    verify_rate_limit_requests: int = Field(default=10, alias="VERIFY_RATE_LIMIT_REQUESTS")
    verify_rate_limit_window_seconds: int = Field(default=60, alias="VERIFY_RATE_LIMIT_WINDOW_SECONDS")

    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    load_gcp_secrets: bool = Field(default=True, alias="LOAD_GCP_SECRETS")

    # CORS
    allowed_origins: List[str] = Field(default=[], alias="ALLOWED_ORIGINS")
    allowed_origin_regex: str = Field(default="", alias="ALLOWED_ORIGIN_REGEX")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _parse_allowed_origins(cls, v: Any) -> List[str]:
        """Parse ALLOWED_ORIGINS from JSON list, CSV, semicolon-separated string, or list."""
        if v is None:
            return []
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    return json.loads(s)
                except json.JSONDecodeError:
                    pass  # Fall through to delimiter parsing
            # Semicolon is useful in Cloud Build where comma separates env vars
            parts = [p.strip() for p in s.replace(",", ";").split(";")]
            return [p for p in parts if p]
        return []

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.load_gcp_secrets:
            self._load_secrets_from_gcp()

    def _load_secrets_from_gcp(self):
        """Override settings with values from Secret Manager if available."""
        secret_mappings = {
            "supabase_url": "SUPABASE_URL",
            "supabase_service_key": "SUPABASE_SERVICE_KEY",
            "gcs_bucket": "GCS_BUCKET",
            "resend_api_key": "RESEND_API_KEY",
            "signing_token_salt": "SIGNING_TOKEN_SALT",
            "admin_api_secret": "ADMIN_API_SECRET",
            "oauth_client_id": "OAUTH_CLIENT_ID",
        }

        for attr, secret_id in secret_mappings.items():
            secret_value = get_secret_from_gcp(secret_id, self.gcp_project_id)
            if secret_value:
                setattr(self, attr, secret_value)
                logger.info(f"Loaded {secret_id} from Secret Manager")

    @model_validator(mode="after")
    def validate_urls(self) -> "Settings":
        """Validate URL configuration for the environment."""
        if self.environment == "production":
            if not self.public_app_url:
                logger.error(
                    "CRITICAL: PUBLIC_APP_URL is not set in production! "
                    "Signing and verification links will use APP_BASE_URL which may be incorrect."
                )
            elif not self.public_app_url.startswith("https://"):
                logger.error(f"CRITICAL: PUBLIC_APP_URL ('{self.public_app_url}') must use HTTPS in production!")
            elif "localhost" in self.public_app_url:
                logger.error(f"CRITICAL: PUBLIC_APP_URL ('{self.public_app_url}') contains localhost in production!")

            if not self.signing_token_salt:
                logger.error("CRITICAL: SIGNING_TOKEN_SALT is not set in production!")

        return self

    def get_public_app_url(self) -> str:
        """
        Origin used for /assinar/<token> and /verificar/<code> links.

        Falls back to app_base_url if PUBLIC_APP_URL not set (development only).
        """
        if self.public_app_url:
            return self.public_app_url.rstrip("/")

        if self.environment != "development":
            logger.warning(
                f"PUBLIC_APP_URL not set, falling back to APP_BASE_URL ({self.app_base_url}). "
                "This is likely incorrect for production!"
            )
        return self.app_base_url.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience function for dependency injection
def get_config() -> Settings:
    return get_settings()


# =============================================================================
# CORS Configuration
# =============================================================================

DEFAULT_CORS_ORIGINS = [
    "https://juriscrm.com.br",
    "https://app.juriscrm.com.br",
]

DEV_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def get_cors_origins() -> List[str]:
    """
    Get list of allowed CORS origins.

    Combines:
    1. Default origins (always allowed)
    2. Origins from ALLOWED_ORIGINS env variable
    3. Development origins (if not in production)
    """
    settings = get_settings()
    origins = set(DEFAULT_CORS_ORIGINS)

    if settings.allowed_origins:
        origins.update(settings.allowed_origins)

    if settings.environment != "production":
        origins.update(DEV_CORS_ORIGINS)

    return sorted(origins)


def is_allowed_origin(origin: Optional[str]) -> bool:
    """
    Check if an origin is allowed for CORS.

    Checks:
    1. Exact match in allowed origins list
    2. ALLOWED_ORIGIN_REGEX match
    3. Localhost in development
    """
    if not origin:
        return False

    settings = get_settings()

    if origin in get_cors_origins():
        return True

    if settings.allowed_origin_regex and re.fullmatch(settings.allowed_origin_regex, origin):
        return True

    if settings.environment != "production":
        if origin.startswith("http://localhost:") or origin.startswith("http://127.0.0.1:"):
            return True

    return False
