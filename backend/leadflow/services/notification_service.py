"""
Notification Service
Delivers composed customer messages by email and SMS.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from leadflow.domain.services.message_composer import ComposedMessage
from leadflow.infrastructure.connectors.email import EmailProvider, EmailMessage, EmailSendError
from leadflow.infrastructure.connectors.sms import SMSProvider, SMSResult

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """What happened on each channel for one message"""
    email: Optional[EmailMessage] = None
    sms: Optional[SMSResult] = None
    errors: List[str] = field(default_factory=list)

    @property
    def email_sent(self) -> bool:
        return self.email is not None

    @property
    def sms_sent(self) -> bool:
        return self.sms is not None and self.sms.success

    @property
    def delivered(self) -> bool:
        """At least one channel reached the customer"""
        return self.email_sent or self.sms_sent

    def to_dict(self) -> dict:
        return {
            "email_sent": self.email_sent,
            "sms_sent": self.sms_sent,
            "email_message_id": self.email.id if self.email else None,
            "sms_message_id": self.sms.message_id if self.sms else None,
            "errors": self.errors,
        }


class NotificationService:
    """
    Sends a ComposedMessage over every channel the customer has.

    Email goes out when an address is known, SMS when a phone number is.
    Provider failures are collected in the DeliveryReport, never raised.
    """

    def __init__(
        self,
        email_provider: Optional[EmailProvider] = None,
        sms_provider: Optional[SMSProvider] = None,
        reply_to: Optional[str] = None
    ):
        self.email_provider = email_provider
        self.sms_provider = sms_provider
        self.reply_to = reply_to

    async def deliver(
        self,
        message: ComposedMessage,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> DeliveryReport:
        """
        Deliver a message.

        Args:
            message: Composed texts
            email: Customer email address, may be empty
            phone: Customer phone number, may be empty

        Returns:
            DeliveryReport
        """
        report = DeliveryReport()

        if not email and not phone:
            report.errors.append("customer has neither email nor phone")
            return report

        if email:
            await self._send_email(message, email, report)
        if phone:
            await self._send_sms(message, phone, report)

        logger.info(
            f"Delivered {message.message_type.value}: "
            f"email={report.email_sent}, sms={report.sms_sent}, errors={len(report.errors)}"
        )
        return report

    async def _send_email(self, message: ComposedMessage, email: str, report: DeliveryReport) -> None:
        if self.email_provider is None or not self.email_provider.is_configured():
            report.errors.append("email provider not configured")
            return
        try:
            report.email = await self.email_provider.send_email(
                to=[email],
                subject=message.subject,
                body=message.body,
                body_html=message.body_html,
                reply_to=self.reply_to,
            )
        except EmailSendError as e:
            logger.error(f"Email delivery of {message.message_type.value} failed: {e.message}")
            report.errors.append(f"email: {e.message}")

    async def _send_sms(self, message: ComposedMessage, phone: str, report: DeliveryReport) -> None:
        if self.sms_provider is None or not self.sms_provider.is_configured():
            report.errors.append("sms provider not configured")
            return
        result = await self.sms_provider.send_sms(
            to_number=phone,
            message=message.sms_body,
            message_type=message.message_type.value,
        )
        report.sms = result
        if not result.success:
            logger.error(f"SMS delivery of {message.message_type.value} failed: {result.error}")
            report.errors.append(f"sms: {result.error}")
