"""Product endpoints.

Paged product listing, per-product price and stock, and batch info.
"""

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.dependencies import get_connector, get_settings
from connectors.sankhya import SankhyaConnector
from core.config import SankhyaSettings
from core.observability.logging import get_logger, with_correlation

logger = get_logger(__name__)

router = APIRouter()


class PriceResponse(BaseModel):
    """Price of one product."""
    codigo: str
    preco: float


@router.get("")
async def list_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, alias="pageSize", ge=1, le=500),
    search_name: str = Query("", alias="searchName"),
    search_code: str = Query("", alias="searchCode"),
    connector: SankhyaConnector = Depends(get_connector),
    settings: SankhyaSettings = Depends(get_settings),
) -> Any:
    """List one page of products (stock and price loaded separately)."""
    try:
        result = await asyncio.wait_for(
            connector.list_products(page, page_size, search_name, search_code),
            timeout=settings.listing_timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Product listing exceeded {settings.listing_timeout}s")
        return JSONResponse(
            status_code=504,
            content={"error": "Product listing took too long. Please try again."},
        )
    return result.model_dump(by_alias=True)


@router.get("/{code}/preco", response_model=PriceResponse)
async def get_price(
    code: str,
    connector: SankhyaConnector = Depends(get_connector),
) -> PriceResponse:
    """Price of one product (0 when unavailable)."""
    price = await connector.get_product_price(code)
    return PriceResponse(codigo=code, preco=price)


@router.get("/{code}/estoque")
async def get_stock(
    code: str,
    local: str = Query(""),
    connector: SankhyaConnector = Depends(get_connector),
) -> Dict[str, Any]:
    """Stock rows of one product and their total."""
    with with_correlation(product_code=code):
        summary = await connector.get_product_stock(code, local)
    return summary.model_dump(by_alias=True)


@router.post("/batch-info")
async def batch_info(
    payload: Dict[str, Any] = Body(...),
    connector: SankhyaConnector = Depends(get_connector),
) -> JSONResponse:
    """Price and stock for up to 10 products: `{"codigos": [...]}`."""
    results = await connector.get_batch_product_info(payload.get("codigos"))
    return JSONResponse(
        content={code: info.model_dump(by_alias=True) for code, info in results.items()},
        headers={"Cache-Control": "public, max-age=300"},
    )
