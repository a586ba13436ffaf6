"""
Unit tests for Resend delivery and the disclosure gate.
"""

import pytest
import resend

from app.core.config import Settings
from app.services.email_service import EmailService, Notifier


@pytest.fixture
def sent(monkeypatch):
    """Capture resend.Emails.send calls"""
    calls = []

    def fake_send(params):
        calls.append(params)
        return {"id": "msg_123"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)
    return calls


class TestEmailService:
    """Test EmailService against a mocked Resend SDK"""

    def test_unconfigured_does_not_send(self, sent):
        service = EmailService(api_key="", from_email="noreply@example.com", from_name="Clutch")

        assert service.is_configured is False
        assert service.send_verification_email("jd1@essex.ac.uk", "482193") is False
        assert sent == []

    def test_send_builds_message(self, sent):
        service = EmailService(api_key="re_test", from_email="noreply@example.com", from_name="Clutch")

        assert service.send_verification_email("jd1@essex.ac.uk", "482193") is True

        params = sent[0]
        assert params["to"] == ["jd1@essex.ac.uk"]
        assert params["from"] == "Clutch <noreply@example.com>"
        assert "482193" in params["html"]
        assert "482193" in params["text"]
        assert "10 minutes" in params["text"]

    def test_send_error_returns_false(self, monkeypatch):
        def failing_send(params):
            raise RuntimeError("timeout")

        monkeypatch.setattr(resend.Emails, "send", failing_send)
        service = EmailService(api_key="re_test", from_email="noreply@example.com", from_name="Clutch")

        assert service.send_verification_email("jd1@essex.ac.uk", "482193") is False


class TestNotifier:
    """Test delivery results and the production disclosure gate"""

    def test_delivered(self, sent):
        notifier = Notifier.from_settings(Settings(RESEND_API_KEY="re_test"))

        result = notifier.send("jd1@essex.ac.uk", "482193")

        assert result.delivered is True
        assert result.disclosed is False
        assert result.code is None

    def test_disclosed_in_development(self):
        notifier = Notifier.from_settings(Settings(RESEND_API_KEY="", ENVIRONMENT="development"))

        result = notifier.send("jd1@essex.ac.uk", "482193")

        assert result.delivered is False
        assert result.disclosed is True
        assert result.code == "482193"

    def test_never_disclosed_in_production(self):
        notifier = Notifier.from_settings(Settings(
            RESEND_API_KEY="",
            ENVIRONMENT="production",
            ALLOW_CODE_DISCLOSURE=True,
        ))

        result = notifier.send("jd1@essex.ac.uk", "482193")

        assert result.delivered is False
        assert result.disclosed is False
        assert result.code is None

    def test_disclosure_can_be_switched_off(self):
        notifier = Notifier.from_settings(Settings(
            RESEND_API_KEY="",
            ENVIRONMENT="development",
            ALLOW_CODE_DISCLOSURE=False,
        ))

        assert notifier.send("jd1@essex.ac.uk", "482193").disclosed is False

    def test_failed_delivery_falls_back_to_disclosure(self, monkeypatch):
        def failing_send(params):
            raise RuntimeError("resend down")

        monkeypatch.setattr(resend.Emails, "send", failing_send)
        notifier = Notifier.from_settings(Settings(RESEND_API_KEY="re_test", ENVIRONMENT="development"))

        result = notifier.send("jd1@essex.ac.uk", "482193")

        assert result.disclosed is True
        assert result.code == "482193"
