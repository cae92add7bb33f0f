"""
Security utilities: signing token hashing, verification codes,
certificate fingerprints and artifact hash computation.
"""
import hashlib
import logging
import secrets
from typing import Tuple

from jurissign.config import get_settings

logger = logging.getLogger(__name__)

_HEX = "0123456789abcdef"
FINGERPRINT_LENGTH = 64


def hash_signing_token(token: str) -> str:
    """
    Hash a signing token using SHA-256 with salt.
    Used to store tokens securely in database.

    Note: Never log raw token or salt - use fingerprints only.
    """
    salt = get_settings().signing_token_salt

    token_fp = hashlib.sha256(token.encode()).hexdigest()[:8]
    result = hashlib.sha256(f"{salt}{token}".encode()).hexdigest()

    logger.debug(f"hash_signing_token: token_fp={token_fp}, hash_fp={result[:8]}")
    return result


def generate_signing_token() -> Tuple[str, str]:
    """
    Generate a new signing token and its hash.

    Returns:
        Tuple of (plain_token, hashed_token)
    """
    token = secrets.token_urlsafe(32)
    return token, hash_signing_token(token)


def generate_verification_code() -> str:
    """
    Generate the public verification code printed on certificates.
    Format: 16 uppercase hex characters (8 random bytes).
    """
    return secrets.token_hex(8).upper()


def normalize_verification_code(code: str) -> str:
    """Codes are compared case-insensitively; canonical form is uppercase."""
    return (code or "").strip().upper()


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def content_hash(request_id: str, signer_id: str) -> str:
    """
    Deterministic 64-hex-char fingerprint printed on the certificate.

    Seeded from a 32-bit string hash of "<request_id>-<signer_id>" and
    expanded with a linear congruential generator. It identifies a
    signature record visually; it is NOT a cryptographic digest of the
    document. Integrity checks use compute_bytes_hash() of the artifact.
    """
    seed = 0
    for char in f"{request_id}-{signer_id}":
        seed = _to_int32((seed << 5) - seed + ord(char))

    digits = []
    for _ in range(FINGERPRINT_LENGTH):
        seed = (seed * 1103515245 + 12345) & 0x7FFFFFFF
        digits.append(_HEX[seed % 16])
    return "".join(digits)


def compute_bytes_hash(data: bytes) -> str:
    """Compute SHA-256 hash of bytes."""
    return hashlib.sha256(data).hexdigest()


def normalize_sha256(value: str) -> str:
    """Lowercase and strip a submitted SHA-256 hex digest."""
    return (value or "").strip().lower()


def build_verification_url(origin: str, code: str) -> str:
    """Public verification link: <origin>/verificar/<code>"""
    return f"{origin.rstrip('/')}/verificar/{code}"


def build_signing_url(origin: str, token: str) -> str:
    """Signer link: <origin>/assinar/<token>"""
    return f"{origin.rstrip('/')}/assinar/{token}"
