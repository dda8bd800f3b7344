"""Datto AV (endpoint protection) adapter."""

from __future__ import annotations

import json
import logging
from typing import List

from .http import HttpClient
from .types import AvAgent

LOGGER = logging.getLogger(__name__)


class DattoAvClient:
    def __init__(self, url: str, secret: str, timeout: float = 10.0) -> None:
        self._http = HttpClient(url, timeout=timeout, name="Datto AV")
        self._secret = secret

    def _headers(self) -> dict:
        return {"authorization": self._secret}

    def get_agent_details(self, hostname: str) -> List[AvAgent]:
        # Loopback style filter, passed as a JSON string
        query = json.dumps({"where": {"hostname": hostname.lower()}})
        response = self._http.request(
            "GET",
            "/api/AgentDetails",
            params={"filter": query},
            headers=self._headers(),
        )
        return [AvAgent.from_dict(item) for item in response or []]

    def scan_agent(self, agent_id: str) -> None:
        self._http.request(
            "POST",
            "/api/Agents/scan",
            json_body={"id": agent_id},
            headers=self._headers(),
            allow_empty=True,
        )
        LOGGER.info("Requested Datto AV scan for agent %s", agent_id)
