"""
Placement fields of a signature request.

Fields are replaced wholesale: the editor always submits the complete set.
"""
import logging
import uuid
from typing import List, Optional, Sequence

from jurissign.exceptions import ConflictError, NotFoundError, ValidationError
from jurissign.models import FieldInput, FieldType, SignatureField, SignatureStatus
from jurissign.pdf.geometry import validate_fields
from jurissign.ports import SignatureRepository

logger = logging.getLogger(__name__)

_LOCKED_STATUSES = (SignatureStatus.SIGNED, SignatureStatus.CANCELLED)


class FieldStore:
    def __init__(self, repo: SignatureRepository):
        self.repo = repo

    def replace_fields(self, request_id: str, inputs: Sequence[FieldInput]) -> List[SignatureField]:
        """
        Validate every field, then replace the request's fields in one
        transaction. An invalid field rejects the whole batch and leaves the
        previous set untouched.

        Raises:
            NotFoundError: unknown request
            ConflictError: the request is already signed or cancelled, or
                one of its signers has signed
            ValidationError: a field violates the geometry invariants or
                references a signer of another request
        """
        request = self.repo.get_request(request_id)
        if request is None:
            raise NotFoundError("Signature request")
        if request.status in _LOCKED_STATUSES:
            raise ConflictError(
                f"Fields cannot be changed on a {request.status.value} request",
                code="REQUEST_LOCKED",
            )
        if any(s.status == SignatureStatus.SIGNED for s in self.repo.list_signers(request_id)):
            raise ConflictError(
                "Fields cannot be changed after a signer has signed",
                code="REQUEST_LOCKED",
            )

        fields = [
            SignatureField(
                id=str(uuid.uuid4()),
                signature_request_id=request_id,
                **item.model_dump(),
            )
            for item in inputs
        ]
        validate_fields(fields)
        self._check_signers(request_id, fields)

        stored = self.repo.replace_fields(request_id, fields)
        logger.info(f"Replaced fields for request {request_id}: {len(stored)} field(s)")
        return self._ordered(stored)

    def list_fields(self, request_id: str) -> List[SignatureField]:
        return self._ordered(self.repo.list_fields(request_id))

    def fields_for_signer(
        self,
        request_id: str,
        signer_id: str,
        field_type: Optional[FieldType] = None,
    ) -> List[SignatureField]:
        """Fields owned by the signer plus unowned ones, optionally of one type."""
        return [
            f for f in self.list_fields(request_id)
            if (f.signer_id is None or f.signer_id == signer_id)
            and (field_type is None or f.field_type == field_type)
        ]

    def _check_signers(self, request_id: str, fields: Sequence[SignatureField]) -> None:
        owned = {f.signer_id for f in fields if f.signer_id}
        if not owned:
            return
        known = {s.id for s in self.repo.list_signers(request_id)}
        unknown = sorted(owned - known)
        if unknown:
            raise ValidationError(
                "Field references a signer of another request",
                details={"signer_ids": unknown},
            )

    @staticmethod
    def _ordered(fields: Sequence[SignatureField]) -> List[SignatureField]:
        return sorted(fields, key=lambda f: f.page_number)
