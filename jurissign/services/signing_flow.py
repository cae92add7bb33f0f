"""
Signer workflow state machine.

Steps: google_auth -> data -> signature -> location -> facial -> confirm -> committed.

The current step lives server side (SigningProgress) and every action is
checked against TRANSITIONS, so a client cannot jump over a step. Step data
that fails validation leaves the progress where it was. Only commit touches
the signer row; it is guarded twice: an explicit pending check and a
compare-and-swap update in the repository.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from jurissign.config import Settings, get_settings
from jurissign.exceptions import (
    AlreadySignedOrCancelled,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from jurissign.models import (
    AuditAction,
    AuthProvider,
    Geolocation,
    SignatureRequest,
    SignatureStatus,
    Signer,
    SigningProgress,
    SigningStep,
    StepAction,
)
from jurissign.pdf.images import sniff_image_type
from jurissign.ports import (
    BestEffortResult,
    IdentityProvider,
    Notifier,
    ObjectStorage,
    RequestCompletedEvent,
    SignatureRepository,
    SignerCommit,
)
from jurissign.services.audit import AuditTrail
from jurissign.utils.datetime_utils import is_expired, utc_now
from jurissign.utils.logging import fingerprint, mask_cpf, mask_email, mask_phone, set_context
from jurissign.utils.security import (
    build_verification_url,
    generate_verification_code,
    hash_signing_token,
)
from jurissign.utils.user_agent import truncate_user_agent

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[Tuple[SigningStep, StepAction], SigningStep] = {
    (SigningStep.GOOGLE_AUTH, StepAction.CONFIRM_IDENTITY): SigningStep.DATA,
    (SigningStep.GOOGLE_AUTH, StepAction.CONFIRM_ALTERNATE_IDENTITY): SigningStep.DATA,
    (SigningStep.DATA, StepAction.SUBMIT_DATA): SigningStep.SIGNATURE,
    (SigningStep.SIGNATURE, StepAction.SUBMIT_SIGNATURE): SigningStep.LOCATION,
    (SigningStep.LOCATION, StepAction.SUBMIT_LOCATION): SigningStep.FACIAL,
    (SigningStep.LOCATION, StepAction.SKIP_LOCATION): SigningStep.FACIAL,
    (SigningStep.FACIAL, StepAction.SUBMIT_FACIAL): SigningStep.CONFIRM,
    (SigningStep.FACIAL, StepAction.SKIP_FACIAL): SigningStep.CONFIRM,
    (SigningStep.CONFIRM, StepAction.COMMIT): SigningStep.COMMITTED,
    # back
    (SigningStep.DATA, StepAction.BACK): SigningStep.GOOGLE_AUTH,
    (SigningStep.SIGNATURE, StepAction.BACK): SigningStep.DATA,
    (SigningStep.LOCATION, StepAction.BACK): SigningStep.SIGNATURE,
    (SigningStep.FACIAL, StepAction.BACK): SigningStep.LOCATION,
    (SigningStep.CONFIRM, StepAction.BACK): SigningStep.FACIAL,
}

MIN_NAME_LENGTH = 3
CPF_DIGITS = 11

_CONTENT_TYPES = {"png": "image/png", "jpeg": "image/jpeg"}
_EXTENSIONS = {"png": "png", "jpeg": "jpg"}


def next_step(current: SigningStep, action: StepAction) -> SigningStep:
    """Look up a transition. Raises InvalidTransitionError when not allowed."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(current.value, action.value)
    return target


def capture_path(request_id: str, signer_id: str, kind: str, image_type: str) -> str:
    """Storage path of a capture: signatures/<request>/<signer>/<kind>.<ext>"""
    return f"signatures/{request_id}/{signer_id}/{kind}.{_EXTENSIONS[image_type]}"


@dataclass
class SigningSession:
    """A resolved signing link."""
    signer: Signer
    request: SignatureRequest
    token_hash: str


@dataclass
class CommitResult:
    signer: Signer
    request: SignatureRequest
    verification_url: str
    request_completed: bool
    notification: BestEffortResult
    audit: BestEffortResult


class SigningFlow:
    def __init__(
        self,
        repo: SignatureRepository,
        storage: ObjectStorage,
        identity: IdentityProvider,
        notifier: Notifier,
        audit: Optional[AuditTrail] = None,
        settings: Optional[Settings] = None,
    ):
        self.repo = repo
        self.storage = storage
        self.identity = identity
        self.notifier = notifier
        self.audit = audit or AuditTrail(repo)
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def resolve(self, token: str) -> SigningSession:
        """
        Resolve a signing link token.

        Unknown tokens, archived requests and expired pending links all
        raise the same NotFoundError.
        """
        if not token:
            raise NotFoundError("Signing link")

        token_hash = hash_signing_token(token)
        set_context(token_fp=fingerprint(token, "tok_"))

        signer = self.repo.get_signer_by_token_hash(token_hash)
        if signer is None:
            logger.info("Signing link not found")
            raise NotFoundError("Signing link")

        request = self.repo.get_request(signer.signature_request_id)
        if request is None or request.archived_at is not None:
            logger.info(f"Signing link for signer {signer.id} points to a missing or archived request")
            raise NotFoundError("Signing link")

        if signer.status == SignatureStatus.PENDING and is_expired(request.expires_at):
            logger.info(f"Signing link for signer {signer.id} expired")
            raise NotFoundError("Signing link")

        set_context(signature_request_id=request.id, signer_id=signer.id)
        return SigningSession(signer=signer, request=request, token_hash=token_hash)

    def get_progress(self, signer_id: str) -> SigningProgress:
        return self.repo.get_progress(signer_id) or SigningProgress(signer_id=signer_id)

    def _begin(self, token: str, action: StepAction) -> Tuple[SigningSession, SigningProgress, SigningStep]:
        session = self.resolve(token)
        self._ensure_pending(session)
        progress = self.get_progress(session.signer.id)
        return session, progress, next_step(progress.step, action)

    @staticmethod
    def _ensure_pending(session: SigningSession) -> None:
        if session.signer.status != SignatureStatus.PENDING:
            raise AlreadySignedOrCancelled()
        if session.request.status == SignatureStatus.CANCELLED:
            raise AlreadySignedOrCancelled()

    def _save(self, progress: SigningProgress, step: SigningStep, **updates) -> SigningProgress:
        data = progress.model_dump()
        data.update(updates)
        data["step"] = step
        data["updated_at"] = utc_now()
        saved = self.repo.save_progress(SigningProgress.model_validate(data))
        logger.info(f"Signer {saved.signer_id} moved from {progress.step.value} to {step.value}")
        return saved

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def confirm_google_identity(self, token: str, id_token: str) -> SigningProgress:
        session, progress, target = self._begin(token, StepAction.CONFIRM_IDENTITY)
        claims = self.identity.verify_google_token(id_token)

        if claims.email.lower() != session.signer.email.lower():
            logger.info(
                f"Signer {session.signer.id} confirmed with a different Google account "
                f"({mask_email(claims.email)})"
            )

        return self._save(
            progress,
            target,
            auth_provider=AuthProvider.GOOGLE,
            auth_email=claims.email.lower(),
            auth_google_sub=claims.subject_id,
            auth_google_picture=claims.picture,
            auth_name=claims.name,
        )

    def confirm_alternate_identity(
        self,
        token: str,
        provider: AuthProvider,
        contact: str,
        name: Optional[str] = None,
    ) -> SigningProgress:
        """Record a contact already confirmed by e-mail link or phone."""
        if provider == AuthProvider.GOOGLE:
            raise ValidationError("Use the Google identity step for provider 'google'")
        contact = (contact or "").strip()
        if not contact:
            raise ValidationError("Confirmed contact is required")

        session, progress, target = self._begin(token, StepAction.CONFIRM_ALTERNATE_IDENTITY)

        updates = {
            "auth_provider": provider,
            "auth_google_sub": None,
            "auth_google_picture": None,
            "auth_name": name,
        }
        if provider == AuthProvider.EMAIL_LINK:
            if "@" not in contact:
                raise ValidationError("Invalid e-mail address")
            updates["auth_email"] = contact.lower()
            masked = mask_email(contact)
        else:
            updates["auth_email"] = None
            updates["declared_phone"] = contact
            masked = mask_phone(contact)
        logger.info(f"Signer {session.signer.id} confirmed by {provider.value} ({masked})")
        return self._save(progress, target, **updates)

    def submit_data(self, token: str, name: str, cpf: str, phone: Optional[str] = None) -> SigningProgress:
        session, progress, target = self._begin(token, StepAction.SUBMIT_DATA)

        name = (name or "").strip()
        if len(name) < MIN_NAME_LENGTH:
            raise ValidationError(
                f"Name must have at least {MIN_NAME_LENGTH} characters",
                details={"field": "name"},
            )
        cpf_digits = re.sub(r"\D", "", cpf or "")
        if len(cpf_digits) != CPF_DIGITS:
            raise ValidationError("CPF must have 11 digits", details={"field": "cpf"})

        phone = (phone or "").strip() or progress.declared_phone
        logger.info(f"Signer {session.signer.id} declared data (cpf {mask_cpf(cpf_digits)})")
        return self._save(
            progress,
            target,
            declared_name=name,
            declared_cpf=cpf_digits,
            declared_phone=phone,
        )

    def submit_signature(self, token: str, image: bytes) -> SigningProgress:
        session, progress, target = self._begin(token, StepAction.SUBMIT_SIGNATURE)
        if not image:
            raise ValidationError("Signature capture is required", code="SIGNATURE_REQUIRED")
        image_type = sniff_image_type(image)
        if image_type is None:
            raise ValidationError("Signature image must be PNG or JPEG")

        path = capture_path(session.request.id, session.signer.id, "signature", image_type)
        self.storage.put(path, image, _CONTENT_TYPES[image_type])
        logger.info(f"Stored signature capture for signer {session.signer.id} ({len(image)} bytes)")
        return self._save(progress, target, signature_image_path=path)

    def submit_location(self, token: str, location: Geolocation) -> SigningProgress:
        _, progress, target = self._begin(token, StepAction.SUBMIT_LOCATION)
        return self._save(progress, target, geolocation=location, location_skipped=False)

    def skip_location(self, token: str) -> SigningProgress:
        _, progress, target = self._begin(token, StepAction.SKIP_LOCATION)
        return self._save(progress, target, geolocation=None, location_skipped=True)

    def submit_facial(
        self,
        token: str,
        image: bytes,
        document_image: Optional[bytes] = None,
    ) -> SigningProgress:
        """
        Store the selfie (and the ID document image when given).

        Uploads are best-effort unless the signer's auth method requires the
        capture: an optional capture that cannot be stored is recorded as
        skipped, a required one fails the step.
        """
        session, progress, target = self._begin(token, StepAction.SUBMIT_FACIAL)
        signer = session.signer

        image_type = sniff_image_type(image)
        if image_type is None:
            raise ValidationError("Facial image must be PNG or JPEG")
        document_type = None
        if document_image:
            document_type = sniff_image_type(document_image)
            if document_type is None:
                raise ValidationError("Document image must be PNG or JPEG")
        elif signer.auth_method.requires_document:
            raise ValidationError("Identity document image is required", code="DOCUMENT_REQUIRED")

        stored = self._store_capture(session, "facial", image, image_type)
        if stored is None:
            if signer.auth_method.requires_facial:
                raise StorageError("Could not store facial capture")
            return self._save(progress, target, facial_image_path=None, document_image_path=None, facial_skipped=True)

        document_path = None
        if document_image:
            document_path = self._store_capture(session, "document", document_image, document_type)
            if document_path is None and signer.auth_method.requires_document:
                raise StorageError("Could not store identity document capture")

        return self._save(
            progress,
            target,
            facial_image_path=stored,
            document_image_path=document_path,
            facial_skipped=False,
        )

    def skip_facial(self, token: str) -> SigningProgress:
        session, progress, target = self._begin(token, StepAction.SKIP_FACIAL)
        if session.signer.auth_method.requires_facial:
            raise ValidationError(
                "Facial capture is required for this signer",
                code="FACIAL_REQUIRED",
            )
        return self._save(progress, target, facial_image_path=None, document_image_path=None, facial_skipped=True)

    def back(self, token: str) -> SigningProgress:
        _, progress, target = self._begin(token, StepAction.BACK)
        return self._save(progress, target)

    def _store_capture(self, session: SigningSession, kind: str, image: bytes, image_type: str) -> Optional[str]:
        path = capture_path(session.request.id, session.signer.id, kind, image_type)
        try:
            self.storage.put(path, image, _CONTENT_TYPES[image_type])
            return path
        except Exception as e:
            logger.warning(f"Upload of {kind} capture for signer {session.signer.id} failed: {e}")
            return None

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(
        self,
        token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> CommitResult:
        """
        Terminal transition of a signer to signed.

        Raises:
            AlreadySignedOrCancelled: the signer is not pending, or a
                concurrent commit won the compare-and-swap
            InvalidTransitionError: the signer has not reached confirm
            ValidationError: no signature capture
        """
        session = self.resolve(token)
        self._ensure_pending(session)
        signer, request = session.signer, session.request

        progress = self.get_progress(signer.id)
        target = next_step(progress.step, StepAction.COMMIT)
        if not progress.signature_image_path:
            raise ValidationError("Signature capture is required", code="SIGNATURE_REQUIRED")
        if signer.auth_method.requires_facial and not progress.facial_image_path:
            raise ValidationError("Facial capture is required for this signer", code="FACIAL_REQUIRED")

        signed_at = utc_now()
        commit = SignerCommit(
            signed_at=signed_at,
            verification_code=generate_verification_code(),
            name=progress.declared_name or signer.name,
            email=signer.email,
            cpf=progress.declared_cpf or signer.cpf,
            phone=progress.declared_phone or signer.phone,
            signature_image_path=progress.signature_image_path,
            facial_image_path=progress.facial_image_path,
            document_image_path=progress.document_image_path,
            signer_ip=ip_address,
            signer_user_agent=truncate_user_agent(user_agent),
            geolocation=progress.geolocation,
            auth_provider=progress.auth_provider,
            auth_email=progress.auth_email,
            auth_google_sub=progress.auth_google_sub,
            auth_google_picture=progress.auth_google_picture,
        )

        updated = self.repo.commit_signer(signer.id, commit)
        if updated is None:
            logger.warning(f"Commit for signer {signer.id} lost the pending check")
            raise AlreadySignedOrCancelled()

        self._save(progress, target)
        logger.info(f"Signer {signer.id} signed request {request.id}")

        audit = self.audit.try_append(
            request.id,
            AuditAction.SIGNED,
            f"Documento assinado por {updated.name}",
            signer_id=signer.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        completed, notification = self.recompute_request(request.id)
        origin = self.settings.get_public_app_url()
        return CommitResult(
            signer=updated,
            request=self.repo.get_request(request.id) or request,
            verification_url=build_verification_url(origin, updated.verification_code),
            request_completed=completed,
            notification=notification,
            audit=audit,
        )

    def recompute_request(self, request_id: str) -> Tuple[bool, BestEffortResult]:
        """
        Transition the request to signed once every signer has signed.

        Safe to call repeatedly: the creator is notified only by the caller
        whose compare-and-swap moved the request to signed.
        """
        signers = self.repo.list_signers(request_id)
        if not signers or any(s.status != SignatureStatus.SIGNED for s in signers):
            return False, BestEffortResult.skipped("Request has pending signers")

        if not self.repo.mark_request_signed(request_id, utc_now()):
            logger.info(f"Request {request_id} already transitioned to signed")
            return True, BestEffortResult.skipped("Request already signed")

        request = self.repo.get_request(request_id)
        creator = self.repo.get_creator(request.created_by) if request else None
        event = RequestCompletedEvent(
            request_id=request_id,
            document_name=request.document_name if request else "",
            creator_id=request.created_by if request else "",
            total_signers=len(signers),
            signed_signers=len(signers),
            creator_email=creator.email if creator else None,
            signer_names=[s.name for s in signers],
        )
        logger.info(f"Request {request_id} fully signed ({len(signers)} signer(s)), notifying creator")
        try:
            return True, self.notifier.request_fully_signed(event)
        except Exception as e:
            logger.error(f"Completion notification for request {request_id} failed: {e}")
            return True, BestEffortResult.failure(str(e))
