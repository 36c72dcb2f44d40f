"""
SMS Connectors Package
Provides SMS sending capabilities via Vonage.
"""
from .base import SMSProvider, SMSResult
from .vonage_sms import VonageSMSProvider

__all__ = [
    "SMSProvider",
    "SMSResult",
    "VonageSMSProvider",
]
