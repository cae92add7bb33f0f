"""
Append-only audit trail of a signature request.
"""
import logging
import uuid
from typing import List, Optional

from jurissign.models import AuditAction, AuditLogEntry
from jurissign.ports import BestEffortResult, SignatureRepository
from jurissign.utils.datetime_utils import utc_now
from jurissign.utils.user_agent import truncate_user_agent

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, repo: SignatureRepository):
        self.repo = repo

    def append(
        self,
        request_id: str,
        action: AuditAction,
        description: str,
        signer_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            signature_request_id=request_id,
            signer_id=signer_id,
            action=action,
            description=description,
            ip_address=ip_address,
            user_agent=truncate_user_agent(user_agent),
            created_at=utc_now(),
        )
        stored = self.repo.insert_audit_entry(entry)
        logger.info(f"Audit {action.value} for request {request_id}")
        return stored

    def try_append(self, request_id: str, action: AuditAction, description: str, **kwargs) -> BestEffortResult:
        """Like append(), but reports failure instead of raising."""
        try:
            return BestEffortResult.success(self.append(request_id, action, description, **kwargs))
        except Exception as e:
            logger.warning(f"Audit {action.value} for request {request_id} not recorded: {e}")
            return BestEffortResult.failure(str(e))

    def list(self, request_id: str) -> List[AuditLogEntry]:
        return sorted(self.repo.list_audit_entries(request_id), key=lambda e: e.created_at)

    def record_viewed(
        self,
        request_id: str,
        signer_id: str,
        signer_name: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Record the first view of a signing link.

        viewed_at is set with a compare-and-swap; only the caller that sets it
        writes the audit row. Returns True for that caller.
        """
        if not self.repo.mark_signer_viewed(signer_id, utc_now()):
            return False
        self.try_append(
            request_id,
            AuditAction.VIEWED,
            f"Documento visualizado por {signer_name}",
            signer_id=signer_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return True
