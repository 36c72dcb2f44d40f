"""
Shared fixtures for unit tests
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from leadflow.core.config import BusinessSettings
from leadflow.domain.models.lead import Lead, LeadSource, LeadStatus
from leadflow.domain.models.offer import Offer
from leadflow.domain.services.message_composer import OutboundComposer
from leadflow.domain.services.slot_generator import generate_slots
from leadflow.infrastructure.connectors.email import EmailMessage
from leadflow.infrastructure.connectors.sms import SMSResult
from leadflow.infrastructure.storage.memory import InMemoryLeadRepository
from leadflow.services.notification_service import NotificationService

# Monday 15 January 2024, 09:00 in Copenhagen
REFERENCE_TIME = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def reference_time():
    return REFERENCE_TIME


@pytest.fixture
def business_settings():
    return BusinessSettings()


@pytest.fixture
def composer(business_settings):
    return OutboundComposer(company=business_settings.company, working_hours=business_settings.working_hours)


@pytest.fixture
def repository():
    return InMemoryLeadRepository()


@pytest.fixture
def offer_factory(business_settings):
    """Build a valid three-slot offer generated at ``created_at``"""
    def _make(created_at=REFERENCE_TIME, hours=3.0, ttl_hours=48):
        slots = generate_slots(created_at, business_settings.working_hours, hours)
        return Offer(slots=slots, created_at=created_at, expires_at=created_at + timedelta(hours=ttl_hours))
    return _make


@pytest.fixture
def lead_factory():
    """Build a lead with sensible defaults"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = dict(
            id=f"lead-{counter['n']}",
            customer_name="Lars Nielsen",
            customer_email="lars@example.dk",
            customer_phone="+45 12 34 56 78",
            source=LeadSource.LEADMAIL,
            service_type="Hjemmerengøring",
            address="Nørrebrogade 123",
            city="København",
            postal_code="2200",
            estimated_hours=3.0,
            estimated_price=1047.0,
            status=LeadStatus.NEW,
            created_at=REFERENCE_TIME,
            updated_at=REFERENCE_TIME,
        )
        data.update(overrides)
        return Lead(**data)
    return _make


@pytest.fixture
def email_provider():
    provider = MagicMock()
    provider.provider_name = "smtp"
    provider.is_configured.return_value = True
    provider.send_email = AsyncMock(return_value=EmailMessage(id="<msg-1@rendetalje.dk>"))
    return provider


@pytest.fixture
def sms_provider():
    provider = MagicMock()
    provider.provider_name = "vonage"
    provider.is_configured.return_value = True
    provider.send_sms = AsyncMock(return_value=SMSResult(success=True, message_id="sms-1", provider="vonage"))
    return provider


@pytest.fixture
def notifier(email_provider, sms_provider):
    return NotificationService(email_provider=email_provider, sms_provider=sms_provider)
