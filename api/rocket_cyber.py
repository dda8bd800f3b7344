"""RocketCyber incident feed adapter."""

from __future__ import annotations

import logging
from typing import List

from .http import HttpClient
from .types import Incident, RocketAgent

LOGGER = logging.getLogger(__name__)


class RocketCyberClient:
    def __init__(self, api_url: str, api_key: str, timeout: float = 10.0) -> None:
        base_url = api_url.rstrip("/")
        if base_url.endswith("/v3"):
            base_url = base_url[: -len("/v3")]
        self._http = HttpClient(base_url, timeout=timeout, name="RocketCyber")
        self._api_key = api_key

    def _headers(self) -> dict:
        return {"authorization": f"Bearer {self._api_key}"}

    def get_incidents(self) -> List[Incident]:
        response = self._http.request(
            "GET",
            "/v3/incidents",
            params={"pageSize": 100},
            headers=self._headers(),
        ) or {}
        incidents = [Incident.from_dict(item) for item in response.get("data") or []]
        LOGGER.debug("Fetched %d RocketCyber incidents", len(incidents))
        return incidents

    def get_agents(self, hostname: str) -> List[RocketAgent]:
        response = self._http.request(
            "GET",
            "/v3/agents",
            params={"hostname": hostname},
            headers=self._headers(),
        ) or {}
        return [RocketAgent.from_dict(item) for item in response.get("data") or []]
