"""
Health Check Endpoint
Provides health status for Docker health checks and monitoring
"""
from fastapi import APIRouter, Request, status
from datetime import datetime, timezone
from typing import Any, Dict

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Health check endpoint for Docker and monitoring systems.

    Returns:
        Dict with status, timestamp and whether AI extraction is enabled
    """
    container = getattr(request.app.state, "container", None)
    return {
        "status": "healthy" if container is not None else "starting",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "leadflow",
        "ai_extraction": bool(container and container.extraction_provider),
    }
