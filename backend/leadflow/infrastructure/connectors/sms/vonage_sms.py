"""
Vonage SMS Provider
Sends customer SMS through the Vonage SMS API (SDK v4).
"""
import os
import asyncio
import logging
from typing import Optional
from datetime import datetime, timezone

from vonage import Vonage, Auth
from vonage_sms import SmsMessage

from .base import SMSProvider, SMSResult, normalize_danish_number, segment_count

logger = logging.getLogger(__name__)

# Vonage status "0" means the message was accepted by the carrier
VONAGE_ACCEPTED = "0"


class VonageSMSProvider(SMSProvider):
    """
    Vonage SMS provider.

    Config keys (``providers.sms.vonage``) fall back to the environment:
    - VONAGE_API_KEY
    - VONAGE_API_SECRET
    - VONAGE_FROM_NUMBER (alphanumeric sender ID, e.g. "Rendetalje")
    """

    def __init__(self, config: Optional[dict] = None):
        config = config or {}
        self._client: Optional[Vonage] = None

        self._api_key = self._resolve(config.get("api_key")) or os.getenv("VONAGE_API_KEY")
        self._api_secret = self._resolve(config.get("api_secret")) or os.getenv("VONAGE_API_SECRET")
        self._sender_id = self._resolve(config.get("from_number")) or os.getenv("VONAGE_FROM_NUMBER")

    @staticmethod
    def _resolve(value: Optional[str]) -> Optional[str]:
        """Treat unresolved ${VAR} placeholders as missing"""
        if isinstance(value, str) and value.startswith("${"):
            return None
        return value

    @property
    def provider_name(self) -> str:
        return "vonage"

    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_secret and self._sender_id)

    def _get_client(self) -> Optional[Vonage]:
        if self._client is None and self.is_configured():
            self._client = Vonage(auth=Auth(api_key=self._api_key, api_secret=self._api_secret))
            logger.info("Vonage SMS client created")
        return self._client

    def _failure(self, to_number: str, error: str, message_type: Optional[str]) -> SMSResult:
        return SMSResult(
            success=False,
            provider=self.provider_name,
            to_number=to_number,
            error=error,
            message_type=message_type,
        )

    async def send_sms(
        self,
        to_number: str,
        message: str,
        message_type: Optional[str] = None
    ) -> SMSResult:
        """Send one SMS; the blocking SDK call runs in a worker thread"""
        to_number = normalize_danish_number(to_number)

        client = self._get_client()
        if client is None:
            return self._failure(
                to_number,
                "Vonage SMS not configured. Set VONAGE_API_KEY, VONAGE_API_SECRET and VONAGE_FROM_NUMBER.",
                message_type,
            )

        segments = segment_count(message)
        if segments > 1:
            logger.warning(f"{message_type or 'SMS'} to {to_number[:6]}... spans {segments} parts")

        try:
            response = await asyncio.to_thread(
                client.sms.send,
                SmsMessage(to=to_number.lstrip("+"), from_=self._sender_id, text=message),
            )
        except Exception as e:
            logger.error(f"Vonage SMS request failed: {e}", exc_info=True)
            return self._failure(to_number, str(e), message_type)

        messages = getattr(response, "messages", None)
        if not messages:
            return self._failure(to_number, "Unexpected response format from Vonage", message_type)

        first = messages[0]
        if str(getattr(first, "status", "")) != VONAGE_ACCEPTED:
            error_text = getattr(first, "error_text", None) or "Unknown error"
            logger.error(f"Vonage rejected {message_type or 'SMS'} to {to_number[:6]}...: {error_text}")
            return self._failure(to_number, error_text, message_type)

        message_id = getattr(first, "message_id", None) or "unknown"
        logger.info(f"Sent {message_type or 'SMS'} via Vonage: {message_id}")
        return SMSResult(
            success=True,
            message_id=message_id,
            provider=self.provider_name,
            to_number=to_number,
            sent_at=datetime.now(timezone.utc),
            segments=segments,
            message_type=message_type,
        )
