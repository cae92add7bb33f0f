"""
Creator notifications for fully signed requests.

Two channels: an in-app notification row (Supabase user_notifications) and
an e-mail through the Resend HTTP API with retry. Both are best-effort:
they report a BestEffortResult and never raise.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

import httpx

from jurissign.config import Settings, get_settings
from jurissign.ports import BestEffortResult, Notifier, RequestCompletedEvent
from jurissign.utils.datetime_utils import utc_now
from jurissign.utils.logging import fingerprint

logger = logging.getLogger(__name__)


# Retry configuration
MAX_RETRY_ATTEMPTS = 3
RETRY_DELAYS_SECONDS = [0, 2, 4]  # Exponential backoff: immediate, 2s, 4s

NOTIFICATION_TITLE = "Documento Totalmente Assinado!"


def completion_message(event: RequestCompletedEvent) -> str:
    return (
        f'"{event.document_name}" foi assinado por todos '
        f"({event.signed_signers}/{event.total_signers})"
    )


class EmailDeliveryStatus(str, Enum):
    """Email delivery status for tracking."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Email not configured or no recipient


@dataclass
class EmailAttempt:
    """Record of a single email send attempt."""
    attempt_number: int
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


@dataclass
class EmailResult:
    """Result of email send operation with delivery tracking."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    delivery_status: EmailDeliveryStatus = EmailDeliveryStatus.PENDING
    attempts: List[EmailAttempt] = field(default_factory=list)
    total_attempts: int = 0

    @property
    def is_delivered(self) -> bool:
        return self.delivery_status == EmailDeliveryStatus.SENT


class EmailNotifier:
    """E-mail to the request creator via Resend."""

    RESEND_API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._sleep = sleep

    def is_configured(self) -> bool:
        return bool(self.settings.resend_api_key)

    def send_email(self, to_email: str, subject: str, html: str) -> EmailResult:
        """Send one e-mail with up to MAX_RETRY_ATTEMPTS attempts."""
        email_fp = fingerprint(to_email, "email_")
        if not self.is_configured():
            logger.info(f"Email to {email_fp} skipped: RESEND_API_KEY not configured")
            return EmailResult(success=False, error="Email not configured", delivery_status=EmailDeliveryStatus.SKIPPED)

        payload = {
            "from": self.settings.resend_from_email,
            "to": [to_email],
            "subject": subject,
            "html": html,
        }
        headers = {
            "Authorization": f"Bearer {self.settings.resend_api_key}",
            "Content-Type": "application/json",
        }

        attempts: List[EmailAttempt] = []
        last_error: Optional[str] = None
        client = self._http_client or httpx.Client(timeout=30.0)
        try:
            for attempt_num in range(1, MAX_RETRY_ATTEMPTS + 1):
                if attempt_num > 1:
                    delay = RETRY_DELAYS_SECONDS[attempt_num - 1] if attempt_num - 1 < len(RETRY_DELAYS_SECONDS) else 4
                    logger.info(f"Email retry {attempt_num}/{MAX_RETRY_ATTEMPTS} to {email_fp}, waiting {delay}s")
                    self._sleep(delay)

                try:
                    response = client.post(self.RESEND_API_URL, json=payload, headers=headers)
                except httpx.TimeoutException as e:
                    last_error = f"Timeout: {e}"
                    attempts.append(EmailAttempt(attempt_number=attempt_num, success=False, error=last_error))
                    logger.warning(f"Email attempt {attempt_num}/{MAX_RETRY_ATTEMPTS} to {email_fp} timed out")
                    continue
                except httpx.HTTPError as e:
                    last_error = str(e)
                    attempts.append(EmailAttempt(attempt_number=attempt_num, success=False, error=last_error))
                    logger.warning(f"Email attempt {attempt_num}/{MAX_RETRY_ATTEMPTS} to {email_fp} failed: {last_error}")
                    continue

                if response.status_code in (200, 201):
                    message_id = response.json().get("id")
                    attempts.append(EmailAttempt(attempt_number=attempt_num, success=True, message_id=message_id))
                    logger.info(f"Email sent to {email_fp} on attempt {attempt_num}, message_id: {message_id}")
                    return EmailResult(
                        success=True,
                        message_id=message_id,
                        delivery_status=EmailDeliveryStatus.SENT,
                        attempts=attempts,
                        total_attempts=attempt_num,
                    )

                last_error = f"API error {response.status_code}: {response.text[:200]}"
                attempts.append(EmailAttempt(attempt_number=attempt_num, success=False, error=last_error))
                logger.warning(f"Email attempt {attempt_num}/{MAX_RETRY_ATTEMPTS} to {email_fp} failed: {last_error}")
        finally:
            if self._http_client is None:
                client.close()

        logger.error(f"Email to {email_fp} failed after {MAX_RETRY_ATTEMPTS} attempts. Last error: {last_error}")
        return EmailResult(
            success=False,
            error=last_error,
            delivery_status=EmailDeliveryStatus.FAILED,
            attempts=attempts,
            total_attempts=MAX_RETRY_ATTEMPTS,
        )

    def request_fully_signed(self, event: RequestCompletedEvent) -> BestEffortResult:
        if not event.creator_email:
            return BestEffortResult.skipped("Creator has no e-mail")
        if not self.is_configured():
            return BestEffortResult.skipped("Email not configured")

        signers = "".join(f"<li>{name}</li>" for name in event.signer_names)
        html = (
            f"<p>{completion_message(event)}.</p>"
            f"<ul>{signers}</ul>"
            f"<p>{self.settings.app_name}</p>"
        )
        result = self.send_email(event.creator_email, f"{NOTIFICATION_TITLE} {event.document_name}", html)
        if result.success:
            return BestEffortResult.success(result)
        return BestEffortResult(ran=True, ok=False, error=result.error, value=result)


class InAppNotifier:
    """Inserts a row into the CRM's user_notifications table."""

    def __init__(self, supabase):
        self.supabase = supabase

    def request_fully_signed(self, event: RequestCompletedEvent) -> BestEffortResult:
        row = {
            "user_id": event.creator_id,
            "title": NOTIFICATION_TITLE,
            "message": completion_message(event),
            "type": "process_updated",
            "read": False,
            "created_at": utc_now().isoformat(),
            "metadata": {
                "signature_type": "completed",
                "document_name": event.document_name,
                "signed_count": event.signed_signers,
                "total_signers": event.total_signers,
                "request_id": event.request_id,
            },
        }
        try:
            self.supabase.insert_user_notification(row)
        except Exception as e:
            logger.warning(f"In-app notification for request {event.request_id} failed: {e}")
            return BestEffortResult.failure(str(e))
        logger.info(f"In-app notification created for request {event.request_id}")
        return BestEffortResult.success()


class CompositeNotifier:
    """Fans out to several channels; ok when at least one channel delivered."""

    def __init__(self, notifiers: Sequence[Notifier]):
        self.notifiers = list(notifiers)

    def request_fully_signed(self, event: RequestCompletedEvent) -> BestEffortResult:
        results = []
        for notifier in self.notifiers:
            try:
                results.append(notifier.request_fully_signed(event))
            except Exception as e:
                logger.warning(f"{type(notifier).__name__} raised: {e}")
                results.append(BestEffortResult.failure(str(e)))

        ran = [r for r in results if r.ran]
        if not ran:
            return BestEffortResult(ran=False, ok=False, error="No channel configured", value=results)
        errors = [r.error for r in ran if not r.ok and r.error]
        return BestEffortResult(
            ran=True,
            ok=any(r.ok for r in ran),
            error="; ".join(errors) or None,
            value=results,
        )
