"""Cache management endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.dependencies import get_connector
from connectors.sankhya import SankhyaConnector


router = APIRouter()


class InvalidateRequest(BaseModel):
    """Remove every cache key containing `pattern`."""
    pattern: str = Field(..., min_length=1)


class InvalidateResponse(BaseModel):
    pattern: str
    removed: int


CATEGORY_INVALIDATORS = {
    "products": "invalidate_products",
    "stock": "invalidate_stock",
    "prices": "invalidate_prices",
    "partners": "invalidate_partners",
}


@router.get("/stats")
async def cache_stats(connector: SankhyaConnector = Depends(get_connector)) -> Dict[str, Any]:
    return await connector.cache.get_stats()


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate_pattern(
    request: InvalidateRequest,
    connector: SankhyaConnector = Depends(get_connector),
) -> InvalidateResponse:
    removed = await connector.cache.invalidate_pattern(request.pattern)
    return InvalidateResponse(pattern=request.pattern, removed=removed)


@router.post("/invalidate/{category}", response_model=InvalidateResponse)
async def invalidate_category(
    category: str,
    connector: SankhyaConnector = Depends(get_connector),
) -> InvalidateResponse:
    method_name = CATEGORY_INVALIDATORS.get(category)
    if method_name is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown cache category: {category}. Available: {list(CATEGORY_INVALIDATORS)}",
        )
    removed = await getattr(connector, method_name)()
    return InvalidateResponse(pattern=category, removed=removed)
