"""ERP Connectors.

This package holds the Sankhya integration used by the sales-force API:
- Sankhya authentication (static service credentials -> bearer token)
- Retrying, credential-refreshing HTTP client
- Normalization of the loadRecords field-indexed shape
- Product, stock, price and order queries

API routes depend only on SankhyaConnector and the result models;
the raw Sankhya response shape does not leak past the connector.
"""

from connectors.sankhya import (
    SankhyaConnector,
    SankhyaApiError,
    SankhyaAuthError,
    SankhyaServiceUnavailableError,
    SankhyaUpstreamError,
    SankhyaValidationError,
    BatchProductInfo,
    ProductPage,
    StockSummary,
)

__all__ = [
    "SankhyaConnector",
    "SankhyaApiError",
    "SankhyaAuthError",
    "SankhyaServiceUnavailableError",
    "SankhyaUpstreamError",
    "SankhyaValidationError",
    "BatchProductInfo",
    "ProductPage",
    "StockSummary",
]
