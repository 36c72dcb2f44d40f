"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from leadflow.api.v1.endpoints import (
    health,
    webhooks,
    leads,
    bookings,
)

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(webhooks.router)
api_router.include_router(leads.router)
api_router.include_router(bookings.router)
