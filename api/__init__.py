"""Backend adapters used by the dashboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from common.config import Config

from .datto_av import DattoAvClient
from .http import (
    ApiError,
    AuthenticationError,
    BackendNotConfigured,
    DecodeError,
    ServerError,
    TransportError,
)
from .rmm import RmmClient
from .rocket_cyber import RocketCyberClient
from .sophos import SophosClient

__all__ = [
    "ApiError",
    "AuthenticationError",
    "BackendNotConfigured",
    "DecodeError",
    "ServerError",
    "TransportError",
    "Backends",
    "build_backends",
    "DattoAvClient",
    "RmmClient",
    "RocketCyberClient",
    "SophosClient",
]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backends:
    """The adapter handles shared with dispatcher threads."""

    rmm: RmmClient
    datto_av: Optional[DattoAvClient] = None
    sophos: Optional[SophosClient] = None
    rocket_cyber: Optional[RocketCyberClient] = None

    def require_datto_av(self) -> DattoAvClient:
        if self.datto_av is None:
            raise BackendNotConfigured("Datto AV")
        return self.datto_av

    def require_sophos(self) -> SophosClient:
        if self.sophos is None:
            raise BackendNotConfigured("Sophos Central")
        return self.sophos

    def require_rocket_cyber(self) -> RocketCyberClient:
        if self.rocket_cyber is None:
            raise BackendNotConfigured("RocketCyber")
        return self.rocket_cyber


def build_backends(config: Config) -> Backends:
    """Create and authenticate the adapters enabled in ``config``.

    Raises:
        ApiError: if the RMM authentication fails. Optional adapters that fail
        to authenticate are disabled with a warning instead.
    """
    timeout = config.http_timeout
    rmm = RmmClient(
        config.datto.api_url,
        config.datto.api_key,
        config.datto.secret_key,
        timeout=timeout,
    )
    rmm.authenticate()

    datto_av = None
    if config.datto_av:
        datto_av = DattoAvClient(config.datto_av.url, config.datto_av.secret, timeout=timeout)

    sophos = None
    if config.sophos:
        sophos = SophosClient(config.sophos.client_id, config.sophos.secret, timeout=timeout)
        try:
            sophos.authenticate()
        except ApiError as exc:
            LOGGER.warning("Sophos Central disabled: %s", exc)
            sophos = None

    rocket_cyber = None
    if config.rocket_cyber:
        rocket_cyber = RocketCyberClient(
            config.rocket_cyber.api_url,
            config.rocket_cyber.api_key,
            timeout=timeout,
        )

    return Backends(rmm=rmm, datto_av=datto_av, sophos=sophos, rocket_cyber=rocket_cyber)
