"""Sankhya Connector Package.

Authenticated access to the Sankhya ERP REST API: token management,
retrying HTTP client, record normalization and domain queries.
"""

from connectors.sankhya.sankhya_connector import SankhyaConnector
from connectors.sankhya.sankhya_auth import SankhyaAuthConfig, SankhyaTokenManager
from connectors.sankhya.sankhya_client import (
    RetryConfig,
    SankhyaApiClient,
    SankhyaApiConfig,
    SankhyaApiError,
    SankhyaAuthError,
    SankhyaServiceUnavailableError,
    SankhyaUpstreamError,
    SankhyaValidationError,
)
from connectors.sankhya.sankhya_models import (
    BatchProductInfo,
    ProductPage,
    StockSummary,
    normalize_entities,
)

__all__ = [
    # Connector
    "SankhyaConnector",
    # Auth
    "SankhyaAuthConfig",
    "SankhyaTokenManager",
    # Client
    "RetryConfig",
    "SankhyaApiClient",
    "SankhyaApiConfig",
    # Errors
    "SankhyaApiError",
    "SankhyaAuthError",
    "SankhyaServiceUnavailableError",
    "SankhyaUpstreamError",
    "SankhyaValidationError",
    # Models
    "BatchProductInfo",
    "ProductPage",
    "StockSummary",
    "normalize_entities",
]
