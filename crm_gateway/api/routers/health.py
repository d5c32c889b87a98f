"""Health check API router."""

from fastapi import APIRouter

from crm_gateway.infra.config import config
from crm_gateway.infra.metrics import get_metrics_response
from crm_gateway.services.tool_catalog import get_tool_catalog

router = APIRouter()


@router.get("/api/health", tags=["Health"])
async def health_check():
    """Combined health check endpoint."""
    return {
        "status": "ok",
        "service": "crm-tool-gateway",
        "version": "1.0.0",
        "tools": len(get_tool_catalog()),
        "credentials_configured": not config.missing_credentials(),
    }


@router.get("/api/health/live", tags=["Health"])
async def liveness_probe():
    """Liveness probe - indicates if the process is running."""
    return {"status": "alive"}


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
