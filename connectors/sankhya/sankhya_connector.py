"""Sankhya ERP Connector.

Domain queries used by the sales-force UI: product pages, price and stock
lookups, batch product info, and order listings. Each query builds a
loadRecords data set, runs it through the authenticated client, normalizes
the rows, and goes through the response cache where results are reusable.
"""

import asyncio
import math
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

from connectors.sankhya.sankhya_auth import SankhyaAuthConfig, SankhyaTokenManager
from connectors.sankhya.sankhya_client import (
    RetryConfig,
    SankhyaApiClient,
    SankhyaApiConfig,
    SankhyaApiError,
    SankhyaValidationError,
)
from connectors.sankhya.sankhya_models import (
    ORDER_ID_FIELD,
    BatchProductInfo,
    ProductPage,
    Record,
    StockSummary,
    normalize_entities,
    parse_number,
    parse_total,
)
from connectors.sankhya.sankhya_queries import (
    manager_sellers_data_set,
    order_data_set,
    parse_code,
    product_list_data_set,
    stock_data_set,
)
from core.cache.backends import CacheBackend, InMemoryCacheBackend
from core.config import SankhyaSettings
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics, record_processing_time

logger = get_logger(__name__)

PRICE_TTL = 10 * 60  # seconds
STOCK_TTL = 5 * 60  # seconds
PRICE_TIMEOUT = 5  # seconds
MAX_BATCH_CODES = 10
BATCH_DELAY = 0.1  # seconds between codes


def price_cache_key(product_code: str) -> str:
    return f"preco:{product_code}"


def stock_cache_key(product_code: str, local_filter: str = "") -> str:
    return f"estoque:{product_code}:{local_filter}"


def extract_price(body: Any) -> float:
    """First `produtos[].valor` of a price response, 0 when absent."""
    if not isinstance(body, dict):
        return 0.0
    products = body.get("produtos")
    if not isinstance(products, list) or not products:
        return 0.0
    first = products[0]
    return parse_number(first.get("valor")) if isinstance(first, dict) else 0.0


class SankhyaConnector:
    """Sankhya connector implementation.

    Owns the token manager, the HTTP client and the response cache; all three
    can be injected (tests build them with zero delays and fake transports).

    Usage:
        connector = SankhyaConnector(load_settings())
        await connector.connect()
        page = await connector.list_products(page=1, page_size=50, name_filter="parafuso")
        price = await connector.get_product_price("10")
        await connector.disconnect()
    """

    def __init__(
        self,
        settings: Optional[SankhyaSettings] = None,
        cache: Optional[CacheBackend] = None,
        token_manager: Optional[SankhyaTokenManager] = None,
        api_client: Optional[SankhyaApiClient] = None,
        price_retry_config: Optional[RetryConfig] = None,
        batch_delay: float = BATCH_DELAY,
    ):
        self.settings = settings or SankhyaSettings()

        self.token_manager = token_manager or SankhyaTokenManager(
            SankhyaAuthConfig(
                token=self.settings.token,
                app_key=self.settings.app_key,
                username=self.settings.username,
                password=self.settings.password,
                base_url=self.settings.base_url,
            )
        )
        self.api_client = api_client or SankhyaApiClient(
            self.token_manager,
            SankhyaApiConfig(
                base_url=self.settings.base_url,
                price_table=self.settings.price_table,
            ),
        )
        self.cache = cache or InMemoryCacheBackend(default_ttl=self.settings.cache_default_ttl)
        self.price_retry_config = price_retry_config or RetryConfig(
            max_retries=1,
            base_delay=0.5,
            auth_retry_delay=0.5,
        )
        self.batch_delay = batch_delay

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> None:
        await self.api_client.connect()

    async def disconnect(self) -> None:
        await self.token_manager.logout()
        await self.api_client.disconnect()

    async def test_connection(self) -> bool:
        """Check that the configured credentials are accepted."""
        try:
            await self.token_manager.ensure_token()
            return True
        except SankhyaApiError as e:
            logger.warning(f"Sankhya connection test failed: {e}")
            return False

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextmanager
    def _operation(self, name: str, **context):
        started = time.perf_counter()
        with with_correlation(operation=name, **context):
            try:
                yield
            finally:
                record_processing_time(name, (time.perf_counter() - started) * 1000)

    async def _cache_get(self, key: str) -> Optional[Any]:
        value = await self.cache.get(key)
        if value is None:
            get_metrics().record_cache_miss(key)
        else:
            get_metrics().record_cache_hit(key)
        return value

    # =========================================================================
    # Products
    # =========================================================================

    async def list_products(
        self,
        page: int = 1,
        page_size: int = 50,
        name_filter: str = "",
        code_filter: str = "",
    ) -> ProductPage:
        """List one page of products.

        Stock and price are not fetched per item: each product carries
        ESTOQUE "0" and VLRCOMERC defaults to "0" until loaded separately.

        Args:
            page: 1-based page number
            page_size: Products per page
            name_filter: Description substring (case-insensitive)
            code_filter: Exact product code

        Returns:
            ProductPage with at most `page_size` products
        """
        with self._operation("list_products"):
            data_set = product_list_data_set(page, page_size, name_filter, code_filter)
            entities = await self.api_client.load_records(data_set)

            if not entities or not entities.get("entity"):
                logger.info("No products found", extra_fields={"page": page, "name": name_filter, "code": code_filter})
                return ProductPage(products=[], total=0, page=page, page_size=page_size, total_pages=0)

            products = normalize_entities(entities)[:page_size]
            for product in products:
                product["ESTOQUE"] = "0"
                product["VLRCOMERC"] = product.get("VLRCOMERC") or "0"

            reported_total = parse_total(entities)
            if reported_total is not None:
                total = reported_total
                total_pages = math.ceil(reported_total / page_size)
            else:
                total = len(products)
                total_pages = 1

            return ProductPage(
                products=products,
                total=total,
                page=page,
                page_size=page_size,
                total_pages=total_pages,
            )

    async def get_product_price(self, product_code: str) -> float:
        """Price of one product from the price table endpoint.

        Failures are logged and reported as 0 so batch displays keep working;
        a 0 caused by a failure is not cached.
        """
        key = price_cache_key(product_code)
        cached = await self._cache_get(key)
        if cached is not None:
            return float(cached)

        with self._operation("get_product_price", product_code=str(product_code)):
            try:
                code = parse_code(product_code, "product code")
                body = await self.api_client.request(
                    "GET",
                    self.api_client.api_config.price_url(code),
                    retry_config=self.price_retry_config,
                    timeout=PRICE_TIMEOUT,
                )
            except Exception as e:
                logger.warning(f"Price lookup failed for product {product_code}, using 0: {e}")
                return 0.0

            price = extract_price(body)
            await self.cache.set(key, price, PRICE_TTL)
            return price

    async def get_product_stock(self, product_code: str, local_filter: str = "") -> StockSummary:
        """Stock rows for one product and their total quantity."""
        key = stock_cache_key(product_code, local_filter)
        cached = await self._cache_get(key)
        if cached is not None:
            return StockSummary.model_validate(cached)

        with self._operation("get_product_stock", product_code=str(product_code)):
            entities = await self.api_client.load_records(stock_data_set(product_code, local_filter))

            if not entities or not entities.get("entity"):
                return StockSummary(rows=[], total=0, total_stock=0.0)

            rows = normalize_entities(entities)
            summary = StockSummary(
                rows=rows,
                total=len(rows),
                total_stock=sum(parse_number(row.get("ESTOQUE")) for row in rows),
            )

            await self.cache.set(key, summary.model_dump(), STOCK_TTL)
            return summary

    async def get_batch_product_info(self, codes: Sequence[str]) -> Dict[str, BatchProductInfo]:
        """Price and total stock for up to MAX_BATCH_CODES products.

        Codes are handled one at a time (price and stock concurrently) with a
        short pause between them. A failing code is reported with zero values
        and `error=True`; the rest of the batch continues.

        Raises:
            SankhyaValidationError: `codes` is not a list
        """
        if not isinstance(codes, (list, tuple)):
            raise SankhyaValidationError("Product codes are required and must be a list")

        selected = [str(code) for code in codes[:MAX_BATCH_CODES]]
        results: Dict[str, BatchProductInfo] = {}

        with self._operation("get_batch_product_info"):
            for index, code in enumerate(selected):
                try:
                    price, stock = await asyncio.gather(
                        self.get_product_price(code),
                        self.get_product_stock(code),
                    )
                    results[code] = BatchProductInfo(price=price or 0.0, stock=stock.total_stock or 0.0)
                except Exception as e:
                    logger.warning(f"Batch info failed for product {code}: {type(e).__name__}: {e}")
                    results[code] = BatchProductInfo(price=0.0, stock=0.0, error=True)

                if index < len(selected) - 1:
                    await asyncio.sleep(self.batch_delay)

        return results

    # =========================================================================
    # Orders
    # =========================================================================

    async def list_orders(
        self,
        seller_code: Optional[str] = None,
        date_start: Optional[str] = None,
        date_end: Optional[str] = None,
    ) -> List[Record]:
        """List order headers, optionally by seller and negotiation-date range.

        Without filters every order is returned; restricting visibility by
        role is up to the caller.
        """
        seller_codes = [seller_code] if seller_code not in (None, "") else []
        return await self._load_orders(seller_codes, date_start, date_end)

    async def list_orders_by_manager(
        self,
        manager_code: str,
        date_start: Optional[str] = None,
        date_end: Optional[str] = None,
    ) -> List[Record]:
        """List orders of a manager's team (the manager included)."""
        with self._operation("list_manager_sellers", seller_code=str(manager_code)):
            entities = await self.api_client.load_records(manager_sellers_data_set(manager_code))
            sellers = normalize_entities(entities, id_field="CODVEND")

        seller_codes = [parse_code(manager_code, "manager code")]
        for seller in sellers:
            code = seller.get("CODVEND")
            if code not in (None, "") and str(code) not in seller_codes:
                seller_codes.append(str(code))

        logger.info(
            f"Manager {manager_code} has {len(seller_codes) - 1} sellers",
            extra_fields={"seller_codes": seller_codes},
        )
        return await self._load_orders(seller_codes, date_start, date_end)

    async def _load_orders(
        self,
        seller_codes: Sequence[str],
        date_start: Optional[str],
        date_end: Optional[str],
    ) -> List[Record]:
        with self._operation("list_orders"):
            data_set = order_data_set(seller_codes, date_start, date_end)
            entities = await self.api_client.load_records(data_set)
            if not entities or not entities.get("entity"):
                return []
            return normalize_entities(entities, id_field=ORDER_ID_FIELD)

    # =========================================================================
    # Cache Invalidation
    # =========================================================================

    async def invalidate_products(self) -> int:
        return await self.cache.invalidate_products()

    async def invalidate_stock(self) -> int:
        return await self.cache.invalidate_stock()

    async def invalidate_prices(self) -> int:
        return await self.cache.invalidate_prices()

    async def invalidate_partners(self) -> int:
        return await self.cache.invalidate_partners()
