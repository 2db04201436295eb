"""Sankhya HTTP Client.

Low-level HTTP client for Sankhya API calls.
Handles bearer headers, credential refresh, retries, and error handling.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from dataclasses import dataclass, field
import asyncio
import json

import aiohttp

from core.observability.logging import get_logger
from core.observability.metrics import get_metrics, record_upstream_retry

if TYPE_CHECKING:
    from connectors.sankhya.sankhya_auth import SankhyaTokenManager

logger = get_logger(__name__)

LOAD_RECORDS_SERVICE = "CRUDServiceProvider.loadRecords"


class SankhyaApiError(Exception):
    """Base exception for Sankhya API errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class SankhyaAuthError(SankhyaApiError):
    """Credential rejected or expired (login failure, repeated 401/403)."""
    pass


class SankhyaServiceUnavailableError(SankhyaApiError):
    """Upstream down or overloaded after retries (5xx, timeout, DNS)."""
    pass


class SankhyaUpstreamError(SankhyaApiError):
    """Unexpected upstream status or response."""
    pass


class SankhyaValidationError(SankhyaApiError):
    """Caller supplied malformed input."""
    def __init__(self, message: str):
        super().__init__(message, 400)


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Transient failures wait `base_delay * attempt` (linear backoff).
    """
    max_retries: int = 2
    base_delay: float = 1.0  # seconds
    auth_retry_delay: float = 0.5  # seconds before retrying with a fresh token

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (1-based)."""
        return self.base_delay * attempt


@dataclass
class SankhyaApiConfig:
    """Configuration for the Sankhya API client."""
    base_url: str = "https://api.sandbox.sankhya.com.br"
    price_table: int = 0
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    timeout_seconds: float = 15

    def service_url(self, service_name: str) -> str:
        return f"{self.base_url}/gateway/v1/mge/service.sbr?serviceName={service_name}&outputType=json"

    @property
    def load_records_url(self) -> str:
        return self.service_url(LOAD_RECORDS_SERVICE)

    def price_url(self, product_code: str) -> str:
        return f"{self.base_url}/v1/precos/produto/{product_code}/tabela/{self.price_table}?pagina=1"


def parse_body(text: str) -> Any:
    """Decode a JSON body, keeping the raw text when it is not JSON."""
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return text


def upstream_message(body: Any) -> Optional[str]:
    """Pull the human-readable error message out of an upstream body."""
    if isinstance(body, dict):
        for key in ("statusMessage", "error", "message"):
            value = body.get(key)
            if isinstance(value, dict):
                value = value.get("$") or value.get("message")
            if value:
                return str(value)
        return None
    if isinstance(body, str) and body.strip():
        return body.strip()[:500]
    return None


def _body_text(body: Any) -> str:
    return body if isinstance(body, str) else json.dumps(body, default=str)


class SankhyaApiClient:
    """HTTP client for the Sankhya API.

    Provides:
    - Bearer-authenticated API calls
    - Credential refresh on 401/403 (once per consecutive failure)
    - Bounded retries with linear backoff on 5xx, timeouts and connection errors
    - loadRecords envelope handling

    Usage:
        client = SankhyaApiClient(token_manager, api_config)
        async with client:
            entities = await client.load_records(data_set)
    """

    def __init__(self, token_manager: "SankhyaTokenManager", api_config: Optional[SankhyaApiConfig] = None):
        """Initialize API client.

        Args:
            token_manager: Owner of the bearer credential
            api_config: API configuration
        """
        self.token_manager = token_manager
        self.api_config = api_config or SankhyaApiConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

    async def disconnect(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "SankhyaApiClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[Dict[str, Any]],
        timeout: float,
    ) -> Tuple[int, Any]:
        """Perform one HTTP exchange and return (status, decoded body)."""
        if self._session is None or self._session.closed:
            await self.connect()

        async with self._session.request(
            method,
            url,
            headers=headers,
            json=data,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            text = await response.text(errors="replace")
            return response.status, parse_body(text)

    async def _backoff(self, retry_config: RetryConfig, attempt: int, reason: str, url: str) -> None:
        delay = retry_config.get_delay(attempt)
        logger.warning(
            f"Request failed ({reason}), retrying in {delay:.1f}s "
            f"(attempt {attempt}/{retry_config.max_retries})",
            extra_fields={"url": url, "attempt": attempt},
        )
        record_upstream_retry(reason)
        await asyncio.sleep(delay)

    def _failed(self, error: SankhyaApiError, method: str, url: str) -> SankhyaApiError:
        logger.error(
            f"Sankhya request failed: {error.message}",
            extra_fields={"url": url, "method": method, "status": error.status_code},
        )
        get_metrics().record_upstream_failure(type(error).__name__)
        return error

    async def request(
        self,
        method: str,
        url: str,
        data: Optional[Dict[str, Any]] = None,
        retry_config: Optional[RetryConfig] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Make an authenticated API request with automatic retries.

        Args:
            method: HTTP method
            url: Full request URL
            data: JSON request body
            retry_config: Override the client's retry policy for this call
            timeout: Override the client's timeout (seconds) for this call

        Returns:
            Decoded response body

        Raises:
            SankhyaAuthError: Credential could not be obtained or was rejected twice
            SankhyaServiceUnavailableError: Transient failures outlasted the retries
            SankhyaUpstreamError: Any other error status
        """
        retry_config = retry_config or self.api_config.retry_config
        timeout = timeout or self.api_config.timeout_seconds
        method = method.upper()

        transient_attempts = 0
        auth_failures = 0

        while True:
            token = await self.token_manager.ensure_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
            get_metrics().record_upstream_request()

            try:
                status, body = await self._send(method, url, headers, data, timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if transient_attempts < retry_config.max_retries:
                    transient_attempts += 1
                    await self._backoff(retry_config, transient_attempts, type(e).__name__, url)
                    continue
                if isinstance(e, asyncio.TimeoutError):
                    message = "Upstream response timed out. Please try again."
                else:
                    message = "Service temporarily unavailable. Please try again."
                raise self._failed(SankhyaServiceUnavailableError(message), method, url) from e

            if status in (401, 403):
                self.token_manager.invalidate()
                if auth_failures < 1:
                    auth_failures += 1
                    logger.info("Token expired, obtaining a new token...", extra_fields={"status": status})
                    get_metrics().record_auth_refresh()
                    await asyncio.sleep(retry_config.auth_retry_delay)
                    continue
                raise self._failed(
                    SankhyaAuthError("Session expired. Please try again.", status, _body_text(body)),
                    method,
                    url,
                )
            auth_failures = 0

            if status >= 500:
                if transient_attempts < retry_config.max_retries:
                    transient_attempts += 1
                    await self._backoff(retry_config, transient_attempts, f"HTTP {status}", url)
                    continue
                raise self._failed(
                    SankhyaServiceUnavailableError(
                        "Service temporarily unavailable. Please try again.",
                        status,
                        _body_text(body),
                    ),
                    method,
                    url,
                )

            if status >= 400:
                raise self._failed(
                    SankhyaUpstreamError(
                        upstream_message(body) or f"Sankhya API error {status}",
                        status,
                        _body_text(body),
                    ),
                    method,
                    url,
                )

            return body

    async def load_records(self, data_set: Dict[str, Any], timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Run a CRUDServiceProvider.loadRecords query.

        Args:
            data_set: The `dataSet` description (root entity, fieldset, criteria, paging)

        Returns:
            `responseBody.entities`, or None when the response lacks that structure
        """
        body = await self.request(
            "POST",
            self.api_config.load_records_url,
            {"requestBody": {"dataSet": data_set}},
            timeout=timeout,
        )

        response_body = body.get("responseBody") if isinstance(body, dict) else None
        entities = response_body.get("entities") if isinstance(response_body, dict) else None
        if not entities:
            logger.warning(
                "Response without the expected entities structure",
                extra_fields={"root_entity": data_set.get("rootEntity"), "body": _body_text(body)[:500]},
            )
            return None
        return entities
