"""Sankhya Token Manager.

Obtains and caches the bearer credential used for every Sankhya call.
Logs in with static service credentials (token, appkey, username, password).
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import aiohttp

from connectors.sankhya.sankhya_client import (
    SankhyaAuthError,
    parse_body,
    upstream_message,
)
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics

logger = get_logger(__name__)

LOGOUT_SERVICE = "MobileLoginSP.logout"


@dataclass
class SankhyaAuthConfig:
    """Configuration for Sankhya authentication.

    Attributes:
        token: Integration token issued by Sankhya
        app_key: Application key
        username: Service user login
        password: Service user password
        base_url: Sankhya API root
        max_retries: Login retries on HTTP 5xx
        retry_base_delay: Linear backoff base (seconds)
    """
    token: str
    app_key: str
    username: str
    password: str
    base_url: str = "https://api.sandbox.sankhya.com.br"
    timeout_seconds: float = 10
    max_retries: int = 3
    retry_base_delay: float = 1.0

    @property
    def login_url(self) -> str:
        return f"{self.base_url}/login"

    @property
    def logout_url(self) -> str:
        return f"{self.base_url}/gateway/v1/mge/service.sbr?serviceName={LOGOUT_SERVICE}&outputType=json"

    @property
    def login_headers(self) -> dict:
        return {
            "token": self.token,
            "appkey": self.app_key,
            "username": self.username,
            "password": self.password,
        }


class SankhyaTokenManager:
    """Owner of the Sankhya bearer credential.

    The credential has no known expiry: it stays cached until the API rejects
    it (the client calls `invalidate()`) or `logout()` is called.

    Concurrent callers may each trigger a login while no token is cached; the
    last one to finish wins.

    Usage:
        config = SankhyaAuthConfig(token="...", app_key="...", username="...", password="...")
        tokens = SankhyaTokenManager(config)
        token = await tokens.ensure_token()
    """

    def __init__(self, config: SankhyaAuthConfig):
        self.config = config
        self._token: Optional[str] = None

    @property
    def has_token(self) -> bool:
        return self._token is not None

    async def _post_login(self) -> Tuple[int, Any]:
        """Call the login endpoint and return (status, decoded body)."""
        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.config.login_url,
                json={},
                headers=self.config.login_headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            ) as response:
                return response.status, parse_body(await response.text(errors="replace"))

    async def ensure_token(self) -> str:
        """Return the cached credential, logging in when there is none.

        Raises:
            SankhyaAuthError: Login rejected, unreachable, or 5xx after retries
        """
        if self._token:
            return self._token

        attempt = 0
        while True:
            try:
                status, body = await self._post_login()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self._token = None
                logger.error(f"Sankhya login failed: {type(e).__name__}: {e}")
                raise SankhyaAuthError(f"Sankhya authentication failed: {e}") from e

            get_metrics().record_login()

            if status >= 500 and attempt < self.config.max_retries:
                attempt += 1
                delay = self.config.retry_base_delay * attempt
                logger.warning(
                    f"Sankhya login returned {status}, retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{self.config.max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            if status >= 400:
                self._token = None
                message = upstream_message(body) or f"HTTP {status}"
                if status >= 500:
                    message = f"Sankhya service temporarily unavailable: {message}"
                logger.error(f"Sankhya login failed: {message}", extra_fields={"status": status})
                raise SankhyaAuthError(
                    f"Sankhya authentication failed: {message}",
                    status,
                    body if isinstance(body, str) else str(body),
                )

            token = None
            if isinstance(body, dict):
                token = body.get("bearerToken") or body.get("token")
            if not token:
                self._token = None
                logger.error("Sankhya login response did not contain a token")
                raise SankhyaAuthError(
                    "Sankhya login response did not contain the expected token.",
                    status,
                )

            self._token = token
            logger.info("Sankhya login succeeded")
            return token

    def invalidate(self) -> None:
        """Forget the cached credential."""
        self._token = None

    async def logout(self) -> None:
        """End the ERP session (best effort) and forget the credential."""
        token = self._token
        self.invalidate()
        if not token:
            return

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.config.logout_url,
                    json={},
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                ) as response:
                    if response.status >= 400:
                        logger.warning(f"Sankhya logout returned {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Sankhya logout failed: {e}")
