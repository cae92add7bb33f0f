"""
Tests for creator notifications: e-mail retry logic and the in-app row.
"""
from unittest.mock import MagicMock

import httpx
import pytest

from jurissign.notifications import (
    CompositeNotifier,
    EmailDeliveryStatus,
    EmailNotifier,
    InAppNotifier,
    MAX_RETRY_ATTEMPTS,
    NOTIFICATION_TITLE,
    RETRY_DELAYS_SECONDS,
)
from jurissign.ports import BestEffortResult, RequestCompletedEvent

from conftest import RecordingNotifier


def make_event(**overrides):
    data = dict(
        request_id="req-1",
        document_name="Contrato de Honorarios",
        creator_id="user-1",
        total_signers=2,
        signed_signers=2,
        creator_email="ana@escritorio.com.br",
        signer_names=["Maria Silva", "Joao Pereira"],
    )
    data.update(overrides)
    return RequestCompletedEvent(**data)


def ok_response(message_id="msg_123"):
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = {"id": message_id}
    return response


def error_response(status_code=500, text="Internal Server Error"):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
def email_settings():
    settings = MagicMock()
    settings.resend_api_key = "test_api_key"
    settings.resend_from_email = "test@example.com"
    settings.app_name = "Juris CRM"
    return settings


@pytest.fixture
def http_client():
    return MagicMock(spec=httpx.Client)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def email_notifier(email_settings, http_client, sleeps):
    return EmailNotifier(settings=email_settings, http_client=http_client, sleep=sleeps.append)


class TestEmailRetryLogic:
    """Test retry logic in send_email()."""

    def test_success_on_first_attempt(self, email_notifier, http_client, sleeps):
        """Email succeeds on first attempt - no retries needed."""
        http_client.post.return_value = ok_response()

        result = email_notifier.send_email("test@test.com", "Test", "<p>Test</p>")

        assert result.success is True
        assert result.delivery_status == EmailDeliveryStatus.SENT
        assert result.is_delivered is True
        assert result.message_id == "msg_123"
        assert result.total_attempts == 1
        assert result.attempts[0].success is True
        assert sleeps == []

    def test_fail_twice_succeed_third(self, email_notifier, http_client, sleeps):
        """Email fails twice, succeeds on third attempt."""
        http_client.post.side_effect = [error_response(), error_response(), ok_response("msg_456")]

        result = email_notifier.send_email("test@test.com", "Test", "<p>Test</p>")

        assert result.success is True
        assert result.message_id == "msg_456"
        assert result.total_attempts == 3
        assert [a.success for a in result.attempts] == [False, False, True]
        assert sleeps == RETRY_DELAYS_SECONDS[1:]

    def test_all_attempts_fail(self, email_notifier, http_client):
        """All attempts fail - FAILED status with the last error."""
        http_client.post.return_value = error_response(502, "Bad Gateway")

        result = email_notifier.send_email("test@test.com", "Test", "<p>Test</p>")

        assert result.success is False
        assert result.delivery_status == EmailDeliveryStatus.FAILED
        assert result.total_attempts == MAX_RETRY_ATTEMPTS
        assert http_client.post.call_count == MAX_RETRY_ATTEMPTS
        assert "502" in result.error

    def test_timeout_is_retried(self, email_notifier, http_client):
        http_client.post.side_effect = [httpx.TimeoutException("timed out"), ok_response()]

        result = email_notifier.send_email("test@test.com", "Test", "<p>Test</p>")

        assert result.success is True
        assert result.total_attempts == 2
        assert result.attempts[0].error.startswith("Timeout")

    def test_connection_error_is_retried(self, email_notifier, http_client):
        http_client.post.side_effect = [httpx.ConnectError("refused"), ok_response()]

        result = email_notifier.send_email("test@test.com", "Test", "<p>Test</p>")

        assert result.success is True
        assert result.attempts[0].error == "refused"

    def test_not_configured_skips(self, email_settings, http_client):
        email_settings.resend_api_key = ""
        notifier = EmailNotifier(settings=email_settings, http_client=http_client)

        result = notifier.send_email("test@test.com", "Test", "<p>Test</p>")

        assert result.delivery_status == EmailDeliveryStatus.SKIPPED
        http_client.post.assert_not_called()

    def test_payload_sent_to_resend(self, email_notifier, http_client):
        http_client.post.return_value = ok_response()

        email_notifier.send_email("test@test.com", "Assunto", "<p>Corpo</p>")

        url = http_client.post.call_args.args[0]
        kwargs = http_client.post.call_args.kwargs
        assert url == EmailNotifier.RESEND_API_URL
        assert kwargs["json"]["to"] == ["test@test.com"]
        assert kwargs["json"]["from"] == "test@example.com"
        assert kwargs["headers"]["Authorization"] == "Bearer test_api_key"


class TestEmailRequestFullySigned:
    """Test EmailNotifier.request_fully_signed()."""

    def test_sends_to_creator(self, email_notifier, http_client):
        http_client.post.return_value = ok_response()

        result = email_notifier.request_fully_signed(make_event())

        assert result.ran and result.ok
        payload = http_client.post.call_args.kwargs["json"]
        assert payload["to"] == ["ana@escritorio.com.br"]
        assert payload["subject"].startswith(NOTIFICATION_TITLE)
        assert "<li>Joao Pereira</li>" in payload["html"]

    def test_no_creator_email(self, email_notifier, http_client):
        result = email_notifier.request_fully_signed(make_event(creator_email=None))

        assert result.ran is False
        http_client.post.assert_not_called()

    def test_delivery_failure_reported(self, email_notifier, http_client):
        http_client.post.return_value = error_response()

        result = email_notifier.request_fully_signed(make_event())

        assert result.ran is True
        assert result.ok is False
        assert "500" in result.error


class TestInAppNotifier:
    """Test InAppNotifier.request_fully_signed()."""

    def test_inserts_notification_row(self):
        supabase = MagicMock()

        result = InAppNotifier(supabase).request_fully_signed(make_event())

        assert result.ok
        row = supabase.insert_user_notification.call_args.args[0]
        assert row["user_id"] == "user-1"
        assert row["title"] == NOTIFICATION_TITLE
        assert row["type"] == "process_updated"
        assert row["read"] is False
        assert row["message"] == '"Contrato de Honorarios" foi assinado por todos (2/2)'
        assert row["metadata"]["signature_type"] == "completed"
        assert row["metadata"]["request_id"] == "req-1"

    def test_insert_failure_does_not_raise(self):
        supabase = MagicMock()
        supabase.insert_user_notification.side_effect = RuntimeError("connection reset")

        result = InAppNotifier(supabase).request_fully_signed(make_event())

        assert result.ran is True
        assert result.ok is False
        assert "connection reset" in result.error


class TestCompositeNotifier:
    """Test CompositeNotifier fan-out."""

    def test_ok_when_any_channel_delivers(self):
        failing = RecordingNotifier(fail=True)
        working = RecordingNotifier()

        result = CompositeNotifier([failing, working]).request_fully_signed(make_event())

        assert result.ran is True
        assert result.ok is True
        assert "notification backend down" in result.error
        assert len(working.events) == 1

    def test_not_ran_when_no_channel_ran(self):
        skipping = MagicMock()
        skipping.request_fully_signed.return_value = BestEffortResult.skipped("not configured")

        result = CompositeNotifier([skipping]).request_fully_signed(make_event())

        assert result.ran is False
        assert result.ok is False

    def test_all_channels_fail(self):
        result = CompositeNotifier([RecordingNotifier(fail=True)]).request_fully_signed(make_event())

        assert result.ran is True
        assert result.ok is False
