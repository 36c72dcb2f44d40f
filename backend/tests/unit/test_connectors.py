"""
Unit Tests for Messaging Connectors and the Groq Extraction Provider
External clients are patched; nothing leaves the process.
"""
import json
import smtplib
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from leadflow.domain.interfaces.extraction_provider import ExtractionError
from leadflow.domain.services.message_composer import ComposedMessage, MessageType
from leadflow.infrastructure.connectors.email import SMTPEmailProvider, EmailSendError
from leadflow.infrastructure.connectors.sms import VonageSMSProvider, SMSResult
from leadflow.infrastructure.connectors.sms.base import normalize_danish_number, segment_count
from leadflow.infrastructure.llm.factory import ExtractionProviderFactory
from leadflow.infrastructure.llm.groq import GroqExtractionProvider
from leadflow.services.notification_service import NotificationService

SMTP_CONFIG = {
    "host": "smtp.example.dk",
    "port": 587,
    "user": "info@rendetalje.dk",
    "password": "app-password",
    "from_email": "info@rendetalje.dk",
    "from_name": "Rendetalje",
    "use_tls": True,
}

VONAGE_CONFIG = {"api_key": "key", "api_secret": "secret", "from_number": "Rendetalje"}


def make_message():
    return ComposedMessage(
        message_type=MessageType.CONFIRMATION,
        subject="Booking bekræftet - Hjemmerengøring",
        body="Hej Lars!\nDin booking er bekræftet.",
        sms_body="Hej Lars, din booking er bekræftet",
    )


class TestSMTPEmailProvider:
    """Tests for SMTPEmailProvider."""

    @pytest.mark.asyncio
    async def test_send_email(self):
        provider = SMTPEmailProvider(SMTP_CONFIG)

        with patch("leadflow.infrastructure.connectors.email.smtp.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            sent = await provider.send_email(
                to=["lars@example.dk"],
                subject="Hej",
                body="Tekst",
                body_html="<p>Tekst</p>",
                reply_to="info@rendetalje.dk",
            )

        smtp_cls.assert_called_once_with("smtp.example.dk", 587)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("info@rendetalje.dk", "app-password")
        from_addr, to_addrs, raw = server.sendmail.call_args.args
        assert from_addr == "info@rendetalje.dk"
        assert to_addrs == ["lars@example.dk"]
        assert "Reply-To: info@rendetalje.dk" in raw
        assert sent.id.endswith("@rendetalje.dk>")
        assert sent.to == ["lars@example.dk"]

    @pytest.mark.asyncio
    async def test_authentication_failure(self):
        provider = SMTPEmailProvider(SMTP_CONFIG)

        with patch("leadflow.infrastructure.connectors.email.smtp.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            with pytest.raises(EmailSendError, match="authentication"):
                await provider.send_email(to=["lars@example.dk"], subject="Hej", body="Tekst")

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        provider = SMTPEmailProvider(SMTP_CONFIG)

        with patch("leadflow.infrastructure.connectors.email.smtp.smtplib.SMTP", side_effect=OSError("refused")):
            with pytest.raises(EmailSendError, match="refused"):
                await provider.send_email(to=["lars@example.dk"], subject="Hej", body="Tekst")

    def test_unresolved_placeholders_are_not_configured(self, monkeypatch):
        for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "SMTP_FROM_EMAIL"):
            monkeypatch.delenv(name, raising=False)

        provider = SMTPEmailProvider({"host": "${SMTP_HOST}", "user": "${SMTP_USER}"})

        assert not provider.is_configured()

    @pytest.mark.asyncio
    async def test_send_when_not_configured(self, monkeypatch):
        for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "SMTP_FROM_EMAIL"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(EmailSendError, match="not configured"):
            await SMTPEmailProvider({}).send_email(to=["a@b.dk"], subject="x", body="y")


class TestVonageSMSProvider:
    """Tests for VonageSMSProvider."""

    @pytest.mark.asyncio
    async def test_send_sms(self):
        response = MagicMock()
        response.messages = [MagicMock(status="0", message_id="msg-123", message_price="0.05")]

        with patch("leadflow.infrastructure.connectors.sms.vonage_sms.Vonage") as vonage_cls, \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.Auth"), \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.SmsMessage") as sms_message:
            vonage_cls.return_value.sms.send.return_value = response
            result = await VonageSMSProvider(VONAGE_CONFIG).send_sms("12 34 56 78", "Hej Lars")

        assert result.success
        assert result.message_id == "msg-123"
        assert result.to_number == "+4512345678"
        sms_message.assert_called_once_with(to="4512345678", from_="Rendetalje", text="Hej Lars")

    @pytest.mark.asyncio
    async def test_rejected_by_vonage(self):
        response = MagicMock()
        response.messages = [MagicMock(status="4", error_text="Bad Credentials")]

        with patch("leadflow.infrastructure.connectors.sms.vonage_sms.Vonage") as vonage_cls, \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.Auth"), \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.SmsMessage"):
            vonage_cls.return_value.sms.send.return_value = response
            result = await VonageSMSProvider(VONAGE_CONFIG).send_sms("12345678", "Hej")

        assert not result.success
        assert result.error == "Bad Credentials"

    @pytest.mark.asyncio
    async def test_client_exception_becomes_result(self):
        with patch("leadflow.infrastructure.connectors.sms.vonage_sms.Vonage") as vonage_cls, \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.Auth"), \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.SmsMessage"):
            vonage_cls.return_value.sms.send.side_effect = ConnectionError("timeout")
            result = await VonageSMSProvider(VONAGE_CONFIG).send_sms("12345678", "Hej")

        assert not result.success
        assert "timeout" in result.error

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("VONAGE_API_KEY", raising=False)
        monkeypatch.delenv("VONAGE_API_SECRET", raising=False)

        result = await VonageSMSProvider({"api_key": "${VONAGE_API_KEY}"}).send_sms("12345678", "Hej")

        assert not result.success
        assert "not configured" in result.error

    @pytest.mark.asyncio
    async def test_long_message_reports_segments(self):
        response = MagicMock()
        response.messages = [MagicMock(status="0", message_id="msg-7")]

        with patch("leadflow.infrastructure.connectors.sms.vonage_sms.Vonage") as vonage_cls, \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.Auth"), \
                patch("leadflow.infrastructure.connectors.sms.vonage_sms.SmsMessage"):
            vonage_cls.return_value.sms.send.return_value = response
            result = await VonageSMSProvider(VONAGE_CONFIG).send_sms("12345678", "x" * 200, message_type="reminder")

        assert result.success
        assert result.segments == 2
        assert result.message_type == "reminder"


class TestDanishNumbers:

    @pytest.mark.parametrize("raw,expected", [
        ("12345678", "+4512345678"),
        ("+45 12 34 56 78", "+4512345678"),
        ("0045 12 34 56 78", "+4512345678"),
        ("4512345678", "+4512345678"),
        ("(+45) 12-34-56-78", "+4512345678"),
    ])
    def test_normalization(self, raw, expected):
        assert normalize_danish_number(raw) == expected

    @pytest.mark.parametrize("length,parts", [(0, 1), (160, 1), (161, 2), (306, 2), (307, 3)])
    def test_segment_count(self, length, parts):
        assert segment_count("a" * length) == parts


class TestNotificationService:
    """Tests for multi-channel delivery."""

    @pytest.mark.asyncio
    async def test_both_channels(self, notifier, email_provider, sms_provider):
        report = await notifier.deliver(make_message(), email="lars@example.dk", phone="12345678")

        assert report.email_sent and report.sms_sent
        assert report.errors == []
        kwargs = email_provider.send_email.call_args.kwargs
        assert kwargs["to"] == ["lars@example.dk"]
        assert kwargs["body_html"] == "Hej Lars!<br>\nDin booking er bekræftet."
        assert sms_provider.send_sms.call_args.kwargs["message"] == "Hej Lars, din booking er bekræftet"
        assert sms_provider.send_sms.call_args.kwargs["message_type"] == "confirmation"

    @pytest.mark.asyncio
    async def test_no_contact(self, notifier, email_provider, sms_provider):
        report = await notifier.deliver(make_message(), email="", phone="")

        assert not report.delivered
        assert report.errors == ["customer has neither email nor phone"]
        email_provider.send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, email_provider):
        email_provider.is_configured.return_value = False
        notifier = NotificationService(email_provider=email_provider, sms_provider=None)

        report = await notifier.deliver(make_message(), email="lars@example.dk", phone="12345678")

        assert not report.delivered
        assert report.errors == ["email provider not configured", "sms provider not configured"]

    @pytest.mark.asyncio
    async def test_report_serializes(self, notifier, sms_provider):
        sms_provider.send_sms.return_value = SMSResult(success=False, provider="vonage", error="Throttled")

        report = await notifier.deliver(make_message(), email="lars@example.dk", phone="12345678")

        assert report.to_dict() == {
            "email_sent": True,
            "sms_sent": False,
            "email_message_id": "<msg-1@rendetalje.dk>",
            "sms_message_id": None,
            "errors": ["sms: Throttled"],
        }


def completion(content):
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    result = MagicMock()
    result.choices = [choice]
    return result


class TestGroqExtractionProvider:
    """Tests for GroqExtractionProvider with a patched client."""

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)

        with pytest.raises(ValueError, match="API key"):
            await GroqExtractionProvider().initialize({"api_key": "${GROQ_API_KEY}"})

    @pytest.mark.asyncio
    async def test_returns_parsed_object(self):
        with patch("leadflow.infrastructure.llm.groq.AsyncGroq") as groq_cls:
            client = groq_cls.return_value
            client.chat.completions.create = AsyncMock(
                return_value=completion(json.dumps({"customerName": "Lars Nielsen", "estimatedHours": 3}))
            )
            provider = GroqExtractionProvider()
            await provider.initialize({"api_key": "gsk-test", "model": "llama-3.1-8b-instant"})

            data = await provider.extract_structured("prompt", {"type": "object"})

        assert data == {"customerName": "Lars Nielsen", "estimatedHours": 3}
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.1-8b-instant"
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", "[1, 2]", ""])
    async def test_unusable_output(self, content):
        with patch("leadflow.infrastructure.llm.groq.AsyncGroq") as groq_cls:
            groq_cls.return_value.chat.completions.create = AsyncMock(return_value=completion(content))
            provider = GroqExtractionProvider()
            await provider.initialize({"api_key": "gsk-test"})

            with pytest.raises(ExtractionError):
                await provider.extract_structured("prompt", {"type": "object"})

    @pytest.mark.asyncio
    async def test_api_failure(self):
        with patch("leadflow.infrastructure.llm.groq.AsyncGroq") as groq_cls:
            groq_cls.return_value.chat.completions.create = AsyncMock(side_effect=RuntimeError("503"))
            provider = GroqExtractionProvider()
            await provider.initialize({"api_key": "gsk-test"})

            with pytest.raises(ExtractionError, match="503"):
                await provider.extract_structured("prompt", {"type": "object"})

    @pytest.mark.asyncio
    async def test_cleanup_closes_client(self):
        with patch("leadflow.infrastructure.llm.groq.AsyncGroq") as groq_cls:
            groq_cls.return_value.close = AsyncMock()
            provider = GroqExtractionProvider()
            await provider.initialize({"api_key": "gsk-test"})

            await provider.cleanup()

        groq_cls.return_value.close.assert_awaited_once()


class TestExtractionProviderFactory:

    @pytest.mark.asyncio
    async def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown extraction provider"):
            await ExtractionProviderFactory.create("openai", {})

    @pytest.mark.asyncio
    async def test_register_custom_provider(self, monkeypatch):
        monkeypatch.setattr(ExtractionProviderFactory, "_providers", dict(ExtractionProviderFactory._providers))
        custom = MagicMock()
        custom.return_value.initialize = AsyncMock()

        ExtractionProviderFactory.register("custom", custom)
        provider = await ExtractionProviderFactory.create("custom", {"model": "x"})

        assert ExtractionProviderFactory.list_providers() == ["groq", "custom"]
        provider.initialize.assert_awaited_once_with({"model": "x"})
