"""
API Dependencies
Shared dependencies giving endpoints access to the wired services
"""
from fastapi import HTTPException, Request, status

from leadflow.core.container import ServiceContainer
from leadflow.domain.interfaces.lead_repository import LeadRepository
from leadflow.services.booking_service import BookingService
from leadflow.services.intake_service import LeadIntakeService


def get_container(request: Request) -> ServiceContainer:
    """
    Services built during application startup.

    Raises:
        HTTPException: 503 if startup has not completed
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialized"
        )
    return container


def get_repository(request: Request) -> LeadRepository:
    return get_container(request).repository


def get_intake_service(request: Request) -> LeadIntakeService:
    return get_container(request).intake


def get_booking_service(request: Request) -> BookingService:
    return get_container(request).bookings
