"""
Email Provider Base Class
Abstract interface for outbound customer email.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class EmailMessage(BaseModel):
    """Represents a sent email message."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    subject: str = ""
    body: str = ""
    body_html: Optional[str] = None
    from_email: Optional[str] = None
    to: List[str] = Field(default_factory=list)
    reply_to: Optional[str] = None
    sent_at: Optional[datetime] = None


class EmailSendError(Exception):
    """Raised when an email could not be delivered to the provider."""
    def __init__(self, message: str = "Failed to send email"):
        self.message = message
        super().__init__(self.message)


class EmailProvider(ABC):
    """
    Abstract base class for email providers.

    All email providers must implement:
    - send_email(): Deliver one message
    - is_configured(): Check if provider is properly configured
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (e.g., 'smtp')."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to: List[str],
        subject: str,
        body: str,
        body_html: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> EmailMessage:
        """
        Send an email.

        Args:
            to: List of recipient emails
            subject: Email subject
            body: Plain text body
            body_html: Optional HTML body
            reply_to: Reply-to address

        Returns:
            Sent EmailMessage with provider's message ID

        Raises:
            EmailSendError: If the provider rejects the message
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the provider has valid configuration."""
        pass
