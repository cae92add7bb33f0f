"""
Google Cloud Storage client module.
Handles uploads, downloads and signed download URLs.
"""
import logging
from datetime import timedelta
from typing import Optional

import google.auth
from google.auth.transport.requests import Request
from google.cloud import storage
from google.cloud.storage import Blob

from jurissign.config import Settings, get_settings
from jurissign.exceptions import StorageError

logger = logging.getLogger(__name__)


def normalize_storage_path(path: str) -> str:
    """
    Validate an object path before it reaches the bucket.

    Raises ValueError for empty, absolute or traversal paths.
    """
    if not path or not path.strip():
        raise ValueError("Storage path cannot be empty")

    # Security: reject path traversal and absolute paths
    if ".." in path:
        raise ValueError("Path traversal not allowed")
    if path.startswith("/"):
        raise ValueError("Absolute paths not allowed")

    return path.strip()


class GCSClient:
    """Google Cloud Storage client wrapper (ObjectStorage)."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[storage.Client] = None
        self._bucket: Optional[storage.Bucket] = None

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = storage.Client()
        return self._client

    @property
    def bucket(self) -> storage.Bucket:
        if self._bucket is None:
            self._bucket = self.client.bucket(self.settings.gcs_bucket)
        return self._bucket

    def _generate_iam_signed_url(
        self,
        blob: Blob,
        method: str,
        expiration_delta: timedelta,
    ) -> str:
        """
        Generates a V4 signed URL using the runtime service account's identity (IAM).
        This is the recommended way for Cloud Run, App Engine, etc.
        """
        credentials, _ = google.auth.default()
        req = Request()
        credentials.refresh(req)

        return blob.generate_signed_url(
            version="v4",
            expiration=expiration_delta,
            method=method,
            service_account_email=credentials.service_account_email,
            access_token=credentials.token,
        )

    def put(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes. Raises StorageError on failure."""
        path = normalize_storage_path(path)
        blob = self.bucket.blob(path)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except Exception as e:
            logger.error(f"Upload to {path} failed: {e}")
            raise StorageError(f"Upload failed: {e}")
        logger.info(f"Uploaded {len(data)} bytes to {path}")
        return path

    def get(self, path: str) -> bytes:
        """Download bytes. Raises FileNotFoundError when the object is missing."""
        path = normalize_storage_path(path)
        blob = self.bucket.blob(path)
        if not blob.exists():
            raise FileNotFoundError(f"File not found in GCS: {path}")
        return blob.download_as_bytes()

    def signed_url(self, path: str, ttl_seconds: int) -> str:
        """Short-lived V4 download URL."""
        path = normalize_storage_path(path)
        blob = self.bucket.blob(path)
        if not blob.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return self._generate_iam_signed_url(
            blob=blob,
            method="GET",
            expiration_delta=timedelta(seconds=ttl_seconds),
        )

    def exists(self, path: str) -> bool:
        """Check if a blob exists."""
        return self.bucket.blob(normalize_storage_path(path)).exists()


# Singleton instance
_gcs_client: Optional[GCSClient] = None


def get_gcs_client() -> GCSClient:
    """Get the GCS client singleton."""
    global _gcs_client
    if _gcs_client is None:
        _gcs_client = GCSClient()
    return _gcs_client
