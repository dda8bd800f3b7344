"""Configuration management for the RMM dashboard."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

__all__ = [
    "ConfigError",
    "DattoConfig",
    "DattoAvConfig",
    "SophosConfig",
    "RocketCyberConfig",
    "Config",
]


class ConfigError(Exception):
    """Raised when required settings are missing or malformed."""


@dataclass(frozen=True)
class DattoConfig:
    api_url: str
    api_key: str
    secret_key: str


@dataclass(frozen=True)
class DattoAvConfig:
    url: str
    secret: str


@dataclass(frozen=True)
class SophosConfig:
    client_id: str
    secret: str


@dataclass(frozen=True)
class RocketCyberConfig:
    api_url: str
    api_key: str


def _optional_group(env: Mapping[str, str], *names: str) -> Optional[tuple[str, ...]]:
    values = tuple(env.get(name, "").strip() for name in names)
    if all(values):
        return values
    return None


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass
class Config:
    """Configuration settings for the dashboard."""

    datto: DattoConfig

    # Optional backends; None means the adapter is disabled
    datto_av: Optional[DattoAvConfig] = None
    sophos: Optional[SophosConfig] = None
    rocket_cyber: Optional[RocketCyberConfig] = None

    # Event loop and debounce tuning
    tick_rate_ms: int = 250
    debounce_ms: int = 500
    min_search_length: int = 3
    page_size: int = 50

    # Backend request timeout in seconds
    http_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        env_file: str | None = None,
    ) -> "Config":
        """
        Build a config from environment variables.

        A ``.env`` file is loaded first (existing variables win). Passing an
        explicit ``env`` mapping skips the dotenv step, which is what the
        tests do.

        Raises:
            ConfigError: if the RMM credentials are missing.
        """
        if env is None:
            load_dotenv(dotenv_path=env_file, override=False)
            env = os.environ

        missing = [
            name
            for name in ("DATTO_API_URL", "DATTO_API_KEY", "DATTO_SECRET_KEY")
            if not env.get(name, "").strip()
        ]
        if missing:
            raise ConfigError(f"{', '.join(missing)} must be set")

        datto = DattoConfig(
            api_url=env["DATTO_API_URL"].strip().rstrip("/"),
            api_key=env["DATTO_API_KEY"].strip(),
            secret_key=env["DATTO_SECRET_KEY"].strip(),
        )

        datto_av = None
        values = _optional_group(env, "DATTO_AV_URL", "DATTO_AV_SECRET")
        if values:
            datto_av = DattoAvConfig(url=values[0].rstrip("/"), secret=values[1])

        sophos = None
        values = _optional_group(env, "SOPHOS_CLIENT_ID", "SOPHOS_CLIENT_SECRET")
        if values:
            sophos = SophosConfig(client_id=values[0], secret=values[1])

        rocket_cyber = None
        values = _optional_group(env, "ROCKETCYBER_API_URL", "ROCKETCYBER_API_KEY")
        if values:
            rocket_cyber = RocketCyberConfig(api_url=values[0].rstrip("/"), api_key=values[1])

        log_file = env.get("DASHBOARD_LOG_FILE", "").strip() or None

        return cls(
            datto=datto,
            datto_av=datto_av,
            sophos=sophos,
            rocket_cyber=rocket_cyber,
            tick_rate_ms=_int_setting(env, "DASHBOARD_TICK_MS", 250),
            debounce_ms=_int_setting(env, "DASHBOARD_DEBOUNCE_MS", 500),
            min_search_length=_int_setting(env, "DASHBOARD_MIN_SEARCH", 3),
            page_size=_int_setting(env, "DASHBOARD_PAGE_SIZE", 50),
            log_level=env.get("DASHBOARD_LOG_LEVEL", "INFO").strip() or "INFO",
            log_file=log_file,
        )
