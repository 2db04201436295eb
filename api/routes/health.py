"""Health check endpoints."""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.dependencies import get_connector
from connectors.sankhya import SankhyaConnector
from core.observability.metrics import get_metrics


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]
    metrics: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(connector: SankhyaConnector = Depends(get_connector)) -> HealthResponse:
    """Health check endpoint (never calls the ERP)."""
    cache_stats = await connector.cache.get_stats()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        version="1.0.0",
        services={
            "api": "up",
            "sankhya": "authenticated" if connector.token_manager.has_token else "not_authenticated",
            "cache": str(cache_stats.get("backend", "unknown")),
        },
        metrics=get_metrics().get_summary(),
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
