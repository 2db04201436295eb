"""Shared fixtures for the Sankhya core tests."""

from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock

import pytest

from connectors.sankhya.sankhya_auth import SankhyaAuthConfig, SankhyaTokenManager
from connectors.sankhya.sankhya_client import RetryConfig, SankhyaApiClient, SankhyaApiConfig
from connectors.sankhya.sankhya_connector import SankhyaConnector
from core.cache.backends import InMemoryCacheBackend
from core.observability.metrics import MetricsCollector


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_entities(
    field_names: Sequence[str],
    rows: Sequence[Sequence[Optional[str]]],
    total: Optional[int] = None,
) -> Dict[str, Any]:
    """Build a loadRecords `entities` block; None values leave the slot out."""
    entity = [
        {f"f{i}": {"$": value} for i, value in enumerate(row) if value is not None}
        for row in rows
    ]
    entities: Dict[str, Any] = {
        "metadata": {"fields": {"field": [{"name": name} for name in field_names]}},
        "entity": entity,
    }
    if total is not None:
        entities["total"] = str(total)
    return entities


def load_records_body(entities: Dict[str, Any]) -> Dict[str, Any]:
    """Full loadRecords response wrapping `entities`."""
    return {
        "serviceName": "CRUDServiceProvider.loadRecords",
        "status": "1",
        "responseBody": {"entities": entities},
    }


@pytest.fixture(autouse=True)
def reset_metrics():
    MetricsCollector.instance().reset()
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock) -> InMemoryCacheBackend:
    return InMemoryCacheBackend(clock=clock)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_retries=2, base_delay=0, auth_retry_delay=0)


@pytest.fixture
def auth_config() -> SankhyaAuthConfig:
    return SankhyaAuthConfig(
        token="integration-token",
        app_key="app-key",
        username="servico@empresa.com.br",
        password="secret",
        base_url="https://erp.test",
        retry_base_delay=0,
    )


@pytest.fixture
def token_manager(auth_config) -> SankhyaTokenManager:
    """Token manager whose login endpoint always succeeds."""
    manager = SankhyaTokenManager(auth_config)
    manager._post_login = AsyncMock(return_value=(200, {"bearerToken": "token-1"}))
    return manager


@pytest.fixture
def api_client(token_manager, fast_retry) -> SankhyaApiClient:
    """API client with a mocked transport (`_send`)."""
    client = SankhyaApiClient(
        token_manager,
        SankhyaApiConfig(base_url="https://erp.test", retry_config=fast_retry),
    )
    client._send = AsyncMock(return_value=(200, {}))
    return client


@pytest.fixture
def connector(token_manager, api_client, memory_cache) -> SankhyaConnector:
    return SankhyaConnector(
        cache=memory_cache,
        token_manager=token_manager,
        api_client=api_client,
        price_retry_config=RetryConfig(max_retries=1, base_delay=0, auth_retry_delay=0),
        batch_delay=0,
    )


class FakeResponse:
    """aiohttp response stand-in holding raw body bytes."""

    def __init__(self, status: int, body: bytes):
        self.status = status
        self._body = body

    async def text(self, encoding: Optional[str] = None, errors: str = "strict") -> str:
        return self._body.decode(encoding or "utf-8", errors)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class FakeSession:
    """aiohttp.ClientSession stand-in answering every call with one response."""

    closed = False

    def __init__(self, response: FakeResponse):
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, **kwargs) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.response

    def post(self, url, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None
