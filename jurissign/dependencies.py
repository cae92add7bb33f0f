"""
FastAPI dependency getters.

Backends are selected by settings: STORAGE_BACKEND=gcs|memory and
PERSISTENCE_BACKEND=supabase|memory. Tests override these getters through
app.dependency_overrides.
"""
import logging
from typing import Optional

from fastapi import Depends

from jurissign.adapters.memory import InMemoryRepository, InMemoryStorage
from jurissign.config import Settings, get_settings
from jurissign.gcs import get_gcs_client
from jurissign.identity import get_identity_provider
from jurissign.notifications import CompositeNotifier, EmailNotifier, InAppNotifier
from jurissign.pdf.certify import CertificationPipeline
from jurissign.ports import IdentityProvider, Notifier, ObjectStorage, SignatureRepository
from jurissign.services.audit import AuditTrail
from jurissign.services.certification import CertificationService
from jurissign.services.field_store import FieldStore
from jurissign.services.requests import SignatureRequestService
from jurissign.services.signing_flow import SigningFlow
from jurissign.services.verification import VerificationService
from jurissign.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

# Singletons for the in-memory backends
_memory_storage: Optional[InMemoryStorage] = None
_memory_repository: Optional[InMemoryRepository] = None


def get_storage(settings: Settings = Depends(get_settings)) -> ObjectStorage:
    global _memory_storage
    if settings.storage_backend == "memory":
        if _memory_storage is None:
            logger.warning("Using in-memory object storage")
            _memory_storage = InMemoryStorage()
        return _memory_storage
    return get_gcs_client()


def get_repository(settings: Settings = Depends(get_settings)) -> SignatureRepository:
    global _memory_repository
    if settings.persistence_backend == "memory":
        if _memory_repository is None:
            logger.warning("Using in-memory repository")
            _memory_repository = InMemoryRepository()
        return _memory_repository
    return get_supabase_client()


def get_identity() -> IdentityProvider:
    return get_identity_provider()


def get_notifier(settings: Settings = Depends(get_settings)) -> Notifier:
    channels = [EmailNotifier(settings)]
    if settings.persistence_backend != "memory":
        channels.insert(0, InAppNotifier(get_supabase_client()))
    return CompositeNotifier(channels)


def get_audit_trail(repo: SignatureRepository = Depends(get_repository)) -> AuditTrail:
    return AuditTrail(repo)


def get_field_store(repo: SignatureRepository = Depends(get_repository)) -> FieldStore:
    return FieldStore(repo)


def get_signing_flow(
    repo: SignatureRepository = Depends(get_repository),
    storage: ObjectStorage = Depends(get_storage),
    identity: IdentityProvider = Depends(get_identity),
    notifier: Notifier = Depends(get_notifier),
    audit: AuditTrail = Depends(get_audit_trail),
    settings: Settings = Depends(get_settings),
) -> SigningFlow:
    return SigningFlow(repo, storage, identity, notifier, audit=audit, settings=settings)


def get_request_service(
    repo: SignatureRepository = Depends(get_repository),
    storage: ObjectStorage = Depends(get_storage),
    flow: SigningFlow = Depends(get_signing_flow),
    field_store: FieldStore = Depends(get_field_store),
    audit: AuditTrail = Depends(get_audit_trail),
    settings: Settings = Depends(get_settings),
) -> SignatureRequestService:
    return SignatureRequestService(repo, storage, flow, field_store=field_store, audit=audit, settings=settings)


def get_verification_service(repo: SignatureRepository = Depends(get_repository)) -> VerificationService:
    return VerificationService(repo)


def get_certification_pipeline(
    storage: ObjectStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> CertificationPipeline:
    return CertificationPipeline(
        storage,
        background_threshold=settings.background_strip_threshold,
        timezone=settings.display_timezone,
        app_name=settings.app_name,
    )


def get_certification_service(
    repo: SignatureRepository = Depends(get_repository),
    storage: ObjectStorage = Depends(get_storage),
    pipeline: CertificationPipeline = Depends(get_certification_pipeline),
    settings: Settings = Depends(get_settings),
) -> CertificationService:
    return CertificationService(repo, storage, pipeline=pipeline, settings=settings)
