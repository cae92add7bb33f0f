"""
Logging configuration with request_id correlation.
Structured logging for Cloud Logging compatibility.

PII Protection:
- Never log raw signing tokens, CPF numbers, emails, phones, or captured images
- Use fingerprints (sha256[:8]) for correlation
- All PII fields must go through fingerprint() / mask_*() helpers
"""
import hashlib
import logging
import sys
import uuid
import json
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from jurissign.utils.datetime_utils import utc_now


def fingerprint(value: Optional[str], prefix: str = "") -> str:
    """
    Create a safe fingerprint for logging PII values.

    Args:
        value: The sensitive value to fingerprint (token, email, CPF, etc.)
        prefix: Optional prefix for the fingerprint (e.g., "tok_", "email_")

    Returns:
        8-char hex fingerprint with optional prefix, or "none" if value is None/empty

    Example:
        fingerprint("secret_token_123", "tok_") -> "tok_a1b2c3d4"
    """
    if not value:
        return f"{prefix}none" if prefix else "none"
    fp = hashlib.sha256(value.encode()).hexdigest()[:8]
    return f"{prefix}{fp}" if prefix else fp


def mask_email(email: Optional[str]) -> str:
    """Mask email for safe logging: joao@example.com -> j***@e***.com"""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    domain_parts = domain.split(".")
    masked_local = local[0] + "***" if local else "***"
    masked_domain = domain_parts[0][0] + "***" if domain_parts[0] else "***"
    return f"{masked_local}@{masked_domain}.{domain_parts[-1] if len(domain_parts) > 1 else 'com'}"


def mask_phone(phone: Optional[str]) -> str:
    """Mask phone for safe logging: +5592991234567 -> ***4567"""
    if not phone:
        return "***"
    return "***" + phone[-4:] if len(phone) >= 4 else "***"


def mask_cpf(cpf: Optional[str]) -> str:
    """Mask CPF for safe logging: 123.456.789-09 -> ***.***.***-09"""
    if not cpf:
        return "***"
    digits = "".join(c for c in cpf if c.isdigit())
    if len(digits) < 2:
        return "***"
    return f"***.***.***-{digits[-2:]}"


# Context variables for request correlation
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
signature_request_id_var: ContextVar[Optional[str]] = ContextVar("signature_request_id", default=None)
signer_id_var: ContextVar[Optional[str]] = ContextVar("signer_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
token_fp_var: ContextVar[Optional[str]] = ContextVar("token_fp", default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def set_context(
    signature_request_id: Optional[str] = None,
    signer_id: Optional[str] = None,
    user_id: Optional[str] = None,
    token_fp: Optional[str] = None,
) -> None:
    """
    Set logging context variables.

    Args:
        signature_request_id: Signature request UUID (safe to log)
        signer_id: Signer UUID (safe to log)
        user_id: CRM user UUID (safe to log)
        token_fp: Signing token fingerprint (already hashed, safe to log)
    """
    if signature_request_id:
        signature_request_id_var.set(signature_request_id)
    if signer_id:
        signer_id_var.set(signer_id)
    if user_id:
        user_id_var.set(user_id)
    if token_fp:
        token_fp_var.set(token_fp)


def clear_context() -> None:
    """Clear all context variables."""
    request_id_var.set(None)
    signature_request_id_var.set(None)
    signer_id_var.set(None)
    user_id_var.set(None)
    token_fp_var.set(None)


class CloudLoggingFormatter(logging.Formatter):
    """
    Formatter for Google Cloud Logging structured logs.
    Outputs JSON format compatible with Cloud Logging.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": utc_now().isoformat().replace("+00:00", "Z"),
            "logger": record.name,
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        # Add correlation IDs if available
        request_id = request_id_var.get()
        if request_id:
            log_entry["logging.googleapis.com/trace"] = request_id
            log_entry["request_id"] = request_id

        signature_request_id = signature_request_id_var.get()
        if signature_request_id:
            log_entry["signature_request_id"] = signature_request_id

        signer_id = signer_id_var.get()
        if signer_id:
            log_entry["signer_id"] = signer_id

        user_id = user_id_var.get()
        if user_id:
            log_entry["user_id"] = user_id

        token_fp = token_fp_var.get()
        if token_fp:
            log_entry["token_fp"] = token_fp

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_entry["data"] = record.extra_data

        return json.dumps(log_entry)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get()
        signature_request_id = signature_request_id_var.get()
        signer_id = signer_id_var.get()
        token_fp = token_fp_var.get()

        prefix = f"[{record.levelname}] [{request_id[:8] if request_id else '-'}]"
        if signature_request_id:
            prefix += f" [req:{signature_request_id[:8]}]"
        if signer_id:
            prefix += f" [signer:{signer_id[:8]}]"
        if token_fp:
            prefix += f" [tok:{token_fp}]"

        message = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


def setup_logging(environment: str = "development", level: int = logging.INFO) -> None:
    """
    Configure logging based on environment.
    - production: JSON structured logs for Cloud Logging
    - development: Human-readable format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if environment == "production":
        handler.setFormatter(CloudLoggingFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns a unique request_id to each request.
    Also extracts the signature request id from CRM paths if present.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)

        # /v1/requests/{id}/... carries the signature request id.
        # Signing session paths carry a token; the id is set once it resolves.
        path_parts = request.url.path.split("/")
        for i, part in enumerate(path_parts):
            if part == "requests" and i + 1 < len(path_parts) and path_parts[i + 1] not in ("", "stats"):
                signature_request_id_var.set(path_parts[i + 1])
                break

        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)
