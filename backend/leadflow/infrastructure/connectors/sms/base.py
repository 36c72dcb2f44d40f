"""
SMS Provider Base Classes
Contract for outbound customer SMS (offers, confirmations, reminders).
"""
from abc import ABC, abstractmethod
from typing import Optional
from dataclasses import dataclass
from datetime import datetime
import logging
import re

logger = logging.getLogger(__name__)

DANISH_COUNTRY_CODE = "45"
SINGLE_SMS_LENGTH = 160
CONCATENATED_PART_LENGTH = 153

_FORMATTING = re.compile(r"[\s\-().]")


def normalize_danish_number(number: str) -> str:
    """
    Normalize a phone number to E.164, assuming Denmark for local numbers.

    '12 34 56 78' and '0045 12345678' both become '+4512345678'.
    """
    number = _FORMATTING.sub("", number or "")

    if number.startswith("00"):
        return "+" + number[2:]
    if number.startswith("+"):
        return number
    if len(number) == 8:
        return f"+{DANISH_COUNTRY_CODE}{number}"
    if len(number) >= 10:
        return "+" + number
    return number


def segment_count(text: str) -> int:
    """Number of SMS parts the carrier will bill for"""
    if len(text) <= SINGLE_SMS_LENGTH:
        return 1
    return -(-len(text) // CONCATENATED_PART_LENGTH)


@dataclass
class SMSResult:
    """Outcome of one SMS send; failures are values, not exceptions."""
    success: bool
    message_id: Optional[str] = None
    provider: str = ""
    to_number: str = ""
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    segments: int = 1
    message_type: Optional[str] = None


class SMSProvider(ABC):
    """
    Abstract base class for SMS providers.

    Implementations never raise from send_sms(); every failure is reported
    through SMSResult so a lead is never dropped because a carrier is down.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (e.g., 'vonage')."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_number: str,
        message: str,
        message_type: Optional[str] = None
    ) -> SMSResult:
        """
        Send an SMS message.

        Args:
            to_number: Customer phone number, Danish local format accepted
            message: Message text, composed to fit one 160 character SMS
            message_type: Which outbound message this is (offer, confirmation, reminder)
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the provider has valid configuration."""
        pass
