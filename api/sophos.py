"""Sophos Central partner API adapter."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from .http import AuthenticationError, DecodeError, HttpClient
from .types import SophosEndpoint, SophosTenant

LOGGER = logging.getLogger(__name__)

TOKEN_URL = "https://id.sophos.com/api/v2/oauth2/token"
GLOBAL_URL = "https://api.central.sophos.com"


def regional_url(data_region: str) -> str:
    return f"https://api-{data_region}.central.sophos.com"


class SophosClient:
    """Client-credentials client for a Sophos Central partner account.

    ``authenticate()`` fetches the token and resolves the partner id through
    ``whoami()``; every tenant scoped call then targets the tenant's regional
    host.
    """

    def __init__(self, client_id: str, secret: str, timeout: float = 10.0) -> None:
        self._client_id = client_id
        self._secret = secret
        self._http = HttpClient(GLOBAL_URL, timeout=timeout, name="Sophos Central")
        self._token: Optional[str] = None
        self._partner_id: Optional[str] = None
        self._lock = threading.Lock()

    def authenticate(self) -> None:
        response = self._http.request(
            "POST",
            TOKEN_URL,
            form={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._secret,
                "scope": "token",
            },
        )
        token = (response or {}).get("access_token")
        if not token:
            raise DecodeError("Sophos token response has no access_token")
        with self._lock:
            self._token = token
        partner_id = self.whoami()
        with self._lock:
            self._partner_id = partner_id
        LOGGER.info("Authenticated against Sophos Central as partner %s", partner_id)

    def _bearer(self) -> Dict[str, str]:
        with self._lock:
            token = self._token
        if not token:
            raise AuthenticationError("Not authenticated with Sophos Central")
        return {"authorization": f"Bearer {token}"}

    def whoami(self) -> str:
        response = self._http.request("GET", "/whoami/v1", headers=self._bearer()) or {}
        identity = response.get("id")
        if not identity:
            raise DecodeError("Sophos whoami response has no id")
        return str(identity)

    def get_tenants(self) -> List[SophosTenant]:
        headers = self._bearer()
        with self._lock:
            headers["x-partner-id"] = self._partner_id or ""
        response = self._http.request("GET", "/partner/v1/tenants", headers=headers) or {}
        return [SophosTenant.from_dict(item) for item in response.get("items") or []]

    def get_endpoints(self, tenant_id: str, data_region: str, hostname: str) -> List[SophosEndpoint]:
        headers = self._bearer()
        headers["x-tenant-id"] = tenant_id
        response = self._http.request(
            "GET",
            f"{regional_url(data_region)}/endpoint/v1/endpoints",
            params={"hostnameContains": hostname},
            headers=headers,
        ) or {}
        return [SophosEndpoint.from_dict(item, tenant_id, data_region) for item in response.get("items") or []]

    def start_scan(self, tenant_id: str, data_region: str, endpoint_id: str) -> None:
        headers = self._bearer()
        headers["x-tenant-id"] = tenant_id
        self._http.request(
            "POST",
            f"{regional_url(data_region)}/endpoint/v1/endpoints/{endpoint_id}/scans",
            json_body={},
            headers=headers,
            allow_empty=True,
        )
        LOGGER.info("Requested Sophos scan for endpoint %s", endpoint_id)


def find_tenant(tenants: List[SophosTenant], site_name: Optional[str]) -> Optional[SophosTenant]:
    """Pick the tenant whose name matches the RMM site name (case-insensitive)."""
    if not site_name:
        return None
    wanted = site_name.lower()
    for tenant in tenants:
        if tenant.name.lower() == wanted:
            return tenant
    return None
