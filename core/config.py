"""Application settings.

Reads Sankhya credentials, cache and logging options from the environment.
A `.env` file at the repository root is loaded first when present.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parents[1] / ".env"

DEFAULT_BASE_URL = "https://api.sandbox.sankhya.com.br"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass
class SankhyaSettings:
    """Runtime configuration for the Sankhya core.

    Attributes:
        base_url: Sankhya API root (sandbox by default)
        token, app_key, username, password: Static service credentials sent to /login
        price_table: Price table number used by the price endpoint
        redis_url: Enables the Redis cache backend when set
        cache_default_ttl: TTL in seconds for entries stored without one
        cache_sweep_interval: Seconds between expired-entry sweeps
        listing_timeout: Caller-side deadline for product listing calls
    """
    base_url: str = DEFAULT_BASE_URL
    token: str = ""
    app_key: str = ""
    username: str = ""
    password: str = ""
    price_table: int = 0
    redis_url: Optional[str] = None
    cache_default_ttl: float = 300.0
    cache_sweep_interval: float = 600.0
    listing_timeout: float = 30.0
    log_level: str = "INFO"
    log_json: bool = False

    def validate(self) -> List[str]:
        """Return the names of missing credential variables."""
        missing = []
        for env_name, value in (
            ("SANKHYA_TOKEN", self.token),
            ("SANKHYA_APPKEY", self.app_key),
            ("SANKHYA_USERNAME", self.username),
            ("SANKHYA_PASSWORD", self.password),
        ):
            if not value:
                missing.append(env_name)
        return missing


def load_settings(env_file: Optional[Path] = None) -> SankhyaSettings:
    """Build settings from environment variables.

    Args:
        env_file: Optional .env path (defaults to the repository root .env)
    """
    env_path = env_file or ENV_PATH
    if env_path.exists():
        load_dotenv(env_path)

    return SankhyaSettings(
        base_url=os.getenv("SANKHYA_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        token=os.getenv("SANKHYA_TOKEN", ""),
        app_key=os.getenv("SANKHYA_APPKEY", ""),
        username=os.getenv("SANKHYA_USERNAME", ""),
        password=os.getenv("SANKHYA_PASSWORD", ""),
        price_table=int(_env_float("SANKHYA_PRICE_TABLE", 0)),
        redis_url=os.getenv("REDIS_URL") or None,
        cache_default_ttl=_env_float("CACHE_DEFAULT_TTL_SECONDS", 300.0),
        cache_sweep_interval=_env_float("CACHE_SWEEP_INTERVAL_SECONDS", 600.0),
        listing_timeout=_env_float("LISTING_TIMEOUT_SECONDS", 30.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON"),
    )
