"""
Service Container
Builds the repository, providers and services from configuration.
Shared by the API process and the background workers.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import create_client, Client

from leadflow.core.config import BusinessSettings, ConfigManager
from leadflow.domain.interfaces.extraction_provider import StructuredExtractionProvider
from leadflow.domain.interfaces.lead_repository import LeadRepository
from leadflow.domain.services.lead_extractor import LeadExtractor
from leadflow.domain.services.message_composer import OutboundComposer
from leadflow.infrastructure.connectors.email import SMTPEmailProvider
from leadflow.infrastructure.connectors.sms import VonageSMSProvider
from leadflow.infrastructure.llm.factory import ExtractionProviderFactory
from leadflow.infrastructure.storage.memory import InMemoryLeadRepository
from leadflow.infrastructure.storage.supabase_repository import SupabaseLeadRepository
from leadflow.services.booking_service import BookingService
from leadflow.services.intake_service import LeadIntakeService
from leadflow.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def get_supabase() -> Client:
    """
    Get Supabase client with validation.

    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not url:
        raise RuntimeError(
            "SUPABASE_URL is not configured. "
            "Set SUPABASE_URL environment variable."
        )
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set SUPABASE_SERVICE_KEY environment variable."
        )

    return create_client(url, key)


@dataclass
class ServiceContainer:
    """Wired-up application services"""
    settings: BusinessSettings
    repository: LeadRepository
    composer: OutboundComposer
    notifier: NotificationService
    extractor: LeadExtractor
    intake: LeadIntakeService
    bookings: BookingService
    extraction_provider: Optional[StructuredExtractionProvider] = None

    async def close(self) -> None:
        """Release provider resources"""
        if self.extraction_provider is not None:
            await self.extraction_provider.cleanup()
            self.extraction_provider = None


def build_repository(storage_backend: str) -> LeadRepository:
    """Repository for the configured storage backend ("memory" or "supabase")"""
    if storage_backend == "supabase":
        return SupabaseLeadRepository(get_supabase())
    if storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        return InMemoryLeadRepository()
    raise ValueError(f"Unknown storage backend: {storage_backend}. Available: memory, supabase")


async def create_extraction_provider(config: ConfigManager) -> Optional[StructuredExtractionProvider]:
    """
    Create the configured AI provider.

    Returns None when it is not configured, in which case intake uses the
    heuristic extractor only.
    """
    try:
        provider_name = config.get_active_provider("extraction")
        provider_config = config.get_provider_config("extraction")
        provider = await ExtractionProviderFactory.create(provider_name, provider_config)
    except ValueError as e:
        logger.warning(f"AI extraction disabled: {e}")
        return None
    logger.info(f"AI extraction provider ready: {provider!r}")
    return provider


async def build_container(
    config: ConfigManager,
    storage_backend: str = "memory",
    repository: Optional[LeadRepository] = None,
    extraction_provider: Optional[StructuredExtractionProvider] = None
) -> ServiceContainer:
    """
    Build all services from configuration.

    Args:
        config: Loaded configuration
        storage_backend: "memory" or "supabase", ignored if repository is given
        repository: Pre-built repository (tests)
        extraction_provider: Pre-built AI provider (tests); created from config if None
    """
    settings = config.get_business_settings()
    repository = repository or build_repository(storage_backend)
    if extraction_provider is None:
        extraction_provider = await create_extraction_provider(config)

    composer = OutboundComposer(company=settings.company, working_hours=settings.working_hours)
    notifier = NotificationService(
        email_provider=SMTPEmailProvider(config.get_provider_config("email")),
        sms_provider=VonageSMSProvider(config.get_provider_config("sms")),
        reply_to=settings.company.email,
    )
    extractor = LeadExtractor(
        extraction_provider,
        default_hours=settings.default_hours,
        hourly_rate=settings.hourly_rate,
    )

    return ServiceContainer(
        settings=settings,
        repository=repository,
        composer=composer,
        notifier=notifier,
        extractor=extractor,
        intake=LeadIntakeService(repository, extractor, composer, notifier, settings),
        bookings=BookingService(repository, composer, notifier, settings),
        extraction_provider=extraction_provider,
    )
