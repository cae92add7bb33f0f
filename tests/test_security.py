"""
Tests for security utilities.
"""
import re

from jurissign.utils.security import (
    build_signing_url,
    build_verification_url,
    compute_bytes_hash,
    content_hash,
    generate_signing_token,
    generate_verification_code,
    hash_signing_token,
    normalize_sha256,
    normalize_verification_code,
)


class TestTokenHashing:
    """Tests for signing token hashing."""

    def test_hash_signing_token_deterministic(self, settings):
        """Same token produces same hash."""
        hash1 = hash_signing_token("test-token-12345")
        hash2 = hash_signing_token("test-token-12345")

        assert hash1 == hash2
        assert len(hash1) == 64  # SHA-256 hex length

    def test_different_tokens_different_hashes(self, settings):
        """Different tokens produce different hashes."""
        assert hash_signing_token("token-1") != hash_signing_token("token-2")

    def test_salt_changes_hash(self, settings, monkeypatch):
        """The salt is part of the hash."""
        before = hash_signing_token("token-1")
        monkeypatch.setattr(settings, "signing_token_salt", "other-salt")

        assert hash_signing_token("token-1") != before

    def test_generate_signing_token(self, settings):
        """The returned hash is the salted hash of the returned token."""
        token, token_hash = generate_signing_token()

        assert len(token) >= 32
        assert token_hash == hash_signing_token(token)
        assert token_hash != hash_signing_token(token + "x")


class TestVerificationCode:
    """Tests for verification codes."""

    def test_format(self):
        """16 uppercase hex characters."""
        code = generate_verification_code()

        assert re.fullmatch(r"[0-9A-F]{16}", code)

    def test_unique(self):
        codes = {generate_verification_code() for _ in range(50)}
        assert len(codes) == 50

    def test_normalize(self):
        """Codes are matched case-insensitively."""
        assert normalize_verification_code("  ab12cd34ef56ab78 ") == "AB12CD34EF56AB78"
        assert normalize_verification_code(None) == ""


class TestContentHash:
    """Tests for the certificate fingerprint."""

    def test_deterministic(self):
        """Same request and signer always give the same fingerprint."""
        assert content_hash("req-1", "signer-1") == content_hash("req-1", "signer-1")

    def test_shape(self):
        """64 lowercase hex characters."""
        assert re.fullmatch(r"[0-9a-f]{64}", content_hash("req-1", "signer-1"))

    def test_depends_on_both_ids(self):
        base = content_hash("req-1", "signer-1")
        assert content_hash("req-2", "signer-1") != base
        assert content_hash("req-1", "signer-2") != base

    def test_empty_ids(self):
        """Works for degenerate input (seed from "-")."""
        assert len(content_hash("", "")) == 64


class TestHashes:
    """Tests for artifact hashes and links."""

    def test_compute_bytes_hash(self):
        assert compute_bytes_hash(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_normalize_sha256(self):
        assert normalize_sha256("  ABCDEF  ") == "abcdef"

    def test_links(self):
        """Links are built on the public origin without double slashes."""
        assert build_verification_url("https://crm.example.com/", "ABC") == "https://crm.example.com/verificar/ABC"
        assert build_signing_url("https://crm.example.com", "tok") == "https://crm.example.com/assinar/tok"
