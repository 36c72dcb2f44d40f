"""
SMTP Email Provider
Sends offer, confirmation and reminder emails through the company mailbox.

Environment Variables:
    SMTP_HOST: SMTP server hostname (e.g., smtp.gmail.com)
    SMTP_PORT: SMTP port (default: 587 for TLS)
    SMTP_USER: SMTP username/email
    SMTP_PASSWORD: SMTP password or app password
    SMTP_FROM_EMAIL: Default sender email address
    SMTP_FROM_NAME: Default sender display name (optional)
    SMTP_USE_TLS: Use TLS (default: true)
"""
import os
import ssl
import asyncio
import logging
import smtplib
from typing import List, Optional
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr, make_msgid

from leadflow.infrastructure.connectors.email.base import EmailProvider, EmailMessage, EmailSendError

logger = logging.getLogger(__name__)


class SMTPEmailProvider(EmailProvider):
    """
    SMTP email provider configured from environment variables or the
    ``providers.email.smtp`` config section.
    """

    def __init__(self, config: Optional[dict] = None):
        config = config or {}
        self.host = config.get("host") or os.getenv("SMTP_HOST")
        self.port = int(config.get("port") or os.getenv("SMTP_PORT", "587"))
        self.user = config.get("user") or os.getenv("SMTP_USER")
        self.password = config.get("password") or os.getenv("SMTP_PASSWORD")
        self.from_email = config.get("from_email") or os.getenv("SMTP_FROM_EMAIL")
        self.from_name = config.get("from_name") or os.getenv("SMTP_FROM_NAME", "Rendetalje")
        self.use_tls = str(config.get("use_tls", os.getenv("SMTP_USE_TLS", "true"))).lower() == "true"

        # Unresolved ${VAR} placeholders from YAML count as missing
        for attr in ("host", "user", "password", "from_email"):
            value = getattr(self, attr)
            if isinstance(value, str) and value.startswith("${"):
                setattr(self, attr, None)

        if not self.is_configured():
            logger.warning("SMTP not fully configured - emails will not be sent")

    @property
    def provider_name(self) -> str:
        return "smtp"

    def is_configured(self) -> bool:
        """Check if SMTP is properly configured."""
        return all([self.host, self.user, self.password, self.from_email])

    def _build_message(
        self,
        to: List[str],
        subject: str,
        body: str,
        body_html: Optional[str],
        reply_to: Optional[str]
    ):
        if body_html:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(body, "plain", "utf-8"))
            message.attach(MIMEText(body_html, "html", "utf-8"))
        else:
            message = MIMEText(body, "plain", "utf-8")

        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = ", ".join(to)
        message["Message-ID"] = make_msgid(domain=self.from_email.split("@")[-1])
        if reply_to:
            message["Reply-To"] = reply_to
        return message

    def _deliver(self, to: List[str], message) -> None:
        with smtplib.SMTP(self.host, self.port) as server:
            if self.use_tls:
                context = ssl.create_default_context()
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
            server.login(self.user, self.password)
            server.sendmail(self.from_email, to, message.as_string())

    async def send_email(
        self,
        to: List[str],
        subject: str,
        body: str,
        body_html: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> EmailMessage:
        """
        Send an email via SMTP.

        Raises:
            EmailSendError: If SMTP is not configured or the server rejects the message
        """
        if not self.is_configured():
            raise EmailSendError(
                "SMTP not configured. Required environment variables: "
                "SMTP_HOST, SMTP_USER, SMTP_PASSWORD, SMTP_FROM_EMAIL"
            )

        message = self._build_message(to, subject, body, body_html, reply_to)

        try:
            await asyncio.to_thread(self._deliver, to, message)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {e}")
            raise EmailSendError("Email authentication failed. Please check SMTP credentials.")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error: {e}")
            raise EmailSendError(f"Failed to send email: {str(e)}")

        logger.info(f"Email sent via SMTP to {len(to)} recipients")

        return EmailMessage(
            id=message["Message-ID"],
            subject=subject,
            body=body,
            body_html=body_html,
            from_email=self.from_email,
            to=to,
            reply_to=reply_to,
            sent_at=datetime.now(timezone.utc)
        )
