"""Order endpoints.

Lists order headers according to the caller's role. Identity is not
resolved here: role and seller code arrive as query parameters and are
trusted as given, so `?role=administrador` returns every order. Deploy
these routes only behind a trusted layer (gateway or session middleware)
that authenticates the user and sets `role` and `sellerCode` itself,
discarding any values sent by the client.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_connector
from connectors.sankhya import SankhyaConnector
from core.observability.logging import get_logger, with_correlation

logger = get_logger(__name__)

router = APIRouter()

ROLE_ADMIN = "administrador"
ROLE_MANAGER = "gerente"
ROLE_SELLER = "vendedor"


@router.get("/listar")
async def list_orders(
    role: str = Query(""),
    seller_code: Optional[str] = Query(None, alias="sellerCode"),
    date_start: Optional[str] = Query(None, alias="dataInicio"),
    date_end: Optional[str] = Query(None, alias="dataFim"),
    connector: SankhyaConnector = Depends(get_connector),
) -> List[Dict[str, Any]]:
    """List orders visible to the given role.

    - administrador: every order
    - gerente: orders of the manager's sellers
    - vendedor: the seller's own orders
    - anything else (or no seller code): nothing
    """
    role = role.strip().lower()
    date_start = date_start or None
    date_end = date_end or None

    with with_correlation(user_role=role or None, seller_code=seller_code):
        if role == ROLE_ADMIN:
            orders = await connector.list_orders(None, date_start, date_end)
        elif role == ROLE_MANAGER and seller_code:
            orders = await connector.list_orders_by_manager(seller_code, date_start, date_end)
        elif role == ROLE_SELLER and seller_code:
            orders = await connector.list_orders(seller_code, date_start, date_end)
        else:
            logger.info("Caller has no order permission or seller code")
            orders = []

        logger.info(f"Orders found: {len(orders)}")
    return orders
