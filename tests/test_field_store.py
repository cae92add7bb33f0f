"""
Tests for placement field replacement.
"""
import pytest

from jurissign.exceptions import ConflictError, NotFoundError, ValidationError
from jurissign.models import FieldInput, FieldType, SignatureStatus, SignerInput

from conftest import walk_to_confirm


def field_input(**overrides) -> FieldInput:
    data = dict(page_number=1, x_percent=10, y_percent=80, w_percent=25, h_percent=8)
    data.update(overrides)
    return FieldInput(**data)


class TestReplaceFields:
    """Test FieldStore.replace_fields()."""

    def test_replace_is_idempotent(self, create_request, field_store):
        """Submitting the same set twice leaves exactly that set."""
        created, _ = create_request()
        inputs = [field_input(), field_input(page_number=2, x_percent=50)]

        field_store.replace_fields(created.request.id, inputs)
        stored = field_store.replace_fields(created.request.id, inputs)

        assert len(stored) == 2
        assert len(field_store.list_fields(created.request.id)) == 2
        assert [f.page_number for f in stored] == [1, 2]

    def test_replace_removes_previous_fields(self, create_request, field_store):
        created, _ = create_request()
        field_store.replace_fields(created.request.id, [field_input(), field_input(page_number=2)])

        field_store.replace_fields(created.request.id, [field_input(page_number=2)])

        assert [f.page_number for f in field_store.list_fields(created.request.id)] == [2]

    def test_empty_set_clears_fields(self, create_request, field_store):
        created, _ = create_request()
        field_store.replace_fields(created.request.id, [field_input()])

        assert field_store.replace_fields(created.request.id, []) == []
        assert field_store.list_fields(created.request.id) == []

    def test_invalid_field_rejects_whole_batch(self, create_request, field_store):
        """One bad rectangle keeps the previous set untouched."""
        created, _ = create_request()
        field_store.replace_fields(created.request.id, [field_input()])

        with pytest.raises(ValidationError):
            field_store.replace_fields(
                created.request.id,
                [field_input(page_number=2), field_input(x_percent=90, w_percent=20)],
            )

        stored = field_store.list_fields(created.request.id)
        assert [f.page_number for f in stored] == [1]

    def test_insert_failure_rolls_back(self, create_request, field_store, repo):
        """A failing insert restores the previous fields."""
        created, _ = create_request()
        field_store.replace_fields(created.request.id, [field_input()])
        repo.fail_next_field_insert = True

        with pytest.raises(RuntimeError):
            field_store.replace_fields(created.request.id, [field_input(page_number=2)])

        assert [f.page_number for f in field_store.list_fields(created.request.id)] == [1]

    def test_unknown_request(self, field_store):
        with pytest.raises(NotFoundError):
            field_store.replace_fields("missing", [field_input()])

    def test_signer_of_another_request_rejected(self, create_request, field_store):
        first, _ = create_request()
        second, _ = create_request()
        other_signer = second.signers[0].id

        with pytest.raises(ValidationError) as exc_info:
            field_store.replace_fields(first.request.id, [field_input(signer_id=other_signer)])

        assert exc_info.value.details["signer_ids"] == [other_signer]

    def test_locked_after_cancel(self, create_request, field_store, request_service):
        """Fields of a cancelled request cannot change."""
        created, _ = create_request()
        request_service.cancel_request(created.request.id)

        with pytest.raises(ConflictError) as exc_info:
            field_store.replace_fields(created.request.id, [field_input()])

        assert exc_info.value.code == "REQUEST_LOCKED"

    def test_locked_once_a_signer_has_signed(self, create_request, field_store, flow, repo, signature_png):
        """A pending request with one committed signer keeps its fields."""
        created, tokens = create_request(signers=[
            SignerInput(name="Maria Silva", email="maria@example.com"),
            SignerInput(name="Joao Santos", email="joao@example.com"),
        ])
        maria, joao = created.signers
        field_store.replace_fields(created.request.id, [
            field_input(signer_id=maria.id),
            field_input(signer_id=joao.id, x_percent=60),
        ])
        walk_to_confirm(flow, tokens[0], signature_png, name=maria.name)
        flow.commit(tokens[0])
        assert repo.get_request(created.request.id).status == SignatureStatus.PENDING

        with pytest.raises(ConflictError) as exc_info:
            field_store.replace_fields(created.request.id, [field_input(signer_id=maria.id, page_number=2)])

        assert exc_info.value.code == "REQUEST_LOCKED"
        stored = field_store.list_fields(created.request.id)
        assert sorted((f.signer_id, f.page_number, f.x_percent) for f in stored) == sorted([
            (maria.id, 1, 10),
            (joao.id, 1, 60),
        ])

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_field_rejects_whole_batch(self, create_request, field_store, value):
        """NaN or infinite coordinates never reach the repository."""
        created, _ = create_request()
        field_store.replace_fields(created.request.id, [field_input()])

        with pytest.raises(ValidationError):
            field_store.replace_fields(created.request.id, [field_input(page_number=2, y_percent=value)])

        assert [f.page_number for f in field_store.list_fields(created.request.id)] == [1]


class TestFieldsForSigner:
    """Test FieldStore.fields_for_signer()."""

    def test_owned_and_unowned_fields(self, create_request, field_store):
        created, _ = create_request(signers=[
            SignerInput(name="Maria Silva", email="maria@example.com"),
            SignerInput(name="Joao Santos", email="joao@example.com"),
        ])
        maria, joao = created.signers
        field_store.replace_fields(created.request.id, [
            field_input(signer_id=maria.id),
            field_input(signer_id=joao.id, page_number=2),
            field_input(field_type=FieldType.DATE, x_percent=50),
        ])

        maria_fields = field_store.fields_for_signer(created.request.id, maria.id)
        maria_signatures = field_store.fields_for_signer(created.request.id, maria.id, FieldType.SIGNATURE)

        assert len(maria_fields) == 2
        assert len(maria_signatures) == 1
        assert maria_signatures[0].signer_id == maria.id
