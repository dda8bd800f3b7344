"""Datto RMM API adapter."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from .http import (
    AuthenticationError,
    DecodeError,
    HttpClient,
    basic_auth_header,
)
from .types import (
    ActivityLog,
    Alert,
    Component,
    Device,
    DevicesPage,
    JobOutput,
    JobResult,
    QuickJob,
    Site,
    SitesPage,
    SiteVariable,
)

LOGGER = logging.getLogger(__name__)

# Public client credentials used by the password grant
_OAUTH_CLIENT = ("public-client", "public")


class RmmClient:
    """Blocking client for the Datto RMM v2 API.

    The bearer token is obtained once by ``authenticate()`` and shared by the
    dispatcher threads; it is only ever replaced under the lock.
    """

    def __init__(self, api_url: str, api_key: str, secret_key: str, timeout: float = 10.0) -> None:
        self._http = HttpClient(api_url, timeout=timeout, name="Datto RMM")
        self._api_key = api_key
        self._secret_key = secret_key
        self._token: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return self._http.base_url

    def authenticate(self) -> None:
        response = self._http.request(
            "POST",
            "/auth/oauth/token",
            headers={"authorization": basic_auth_header(*_OAUTH_CLIENT)},
            form={
                "grant_type": "password",
                "username": self._api_key,
                "password": self._secret_key,
            },
        )
        token = (response or {}).get("access_token")
        if not token:
            raise DecodeError("Datto RMM token response has no access_token")
        with self._lock:
            self._token = token
        LOGGER.info("Authenticated against Datto RMM at %s", self._http.base_url)

    def _headers(self) -> Dict[str, str]:
        with self._lock:
            token = self._token
        if not token:
            raise AuthenticationError("Not authenticated with Datto RMM")
        return {"authorization": f"Bearer {token}"}

    def _get(self, path: str, params: Any = None) -> Any:
        return self._http.request("GET", path, params=params, headers=self._headers())

    def _send(self, method: str, path: str, body: Any = None) -> Any:
        return self._http.request(
            method,
            path,
            json_body=body,
            headers=self._headers(),
            allow_empty=True,
        )

    # Sites ------------------------------------------------------------------

    def get_sites(self, page: int = 0, max_results: int = 50, site_name: Optional[str] = None) -> SitesPage:
        params = {"page": page, "max": max_results, "siteName": site_name}
        return SitesPage.from_dict(self._get("/api/v2/account/sites", params) or {})

    def get_site(self, site_uid: str) -> Site:
        return Site.from_dict(self._get(f"/api/v2/site/{site_uid}") or {})

    def update_site(self, site: Site, **changes: Any) -> Site:
        """Write the site with ``changes`` applied.

        The API sometimes answers with an empty body; in that case the locally
        known site with the changes applied is returned.
        """
        body = site.update_request(**changes)
        response = self._send("POST", f"/api/v2/site/{site.uid}", body)
        if response:
            updated = Site.from_dict(response)
            return Site(**{**updated.__dict__, "variables": site.variables})
        return Site(**{**site.__dict__, **changes})

    def get_site_variables(self, site_uid: str) -> List[SiteVariable]:
        response = self._get(f"/api/v2/site/{site_uid}/variables") or {}
        return [SiteVariable.from_dict(item) for item in response.get("variables") or []]

    def create_site_variable(self, site_uid: str, name: str, value: str, masked: bool = False) -> SiteVariable:
        body = {"name": name, "value": value, "masked": masked}
        response = self._send("PUT", f"/api/v2/site/{site_uid}/variable", body)
        if response:
            return SiteVariable.from_dict(response)
        return SiteVariable(id=0, name=name, value=value, masked=masked)

    def update_site_variable(self, site_uid: str, variable_id: int, name: str, value: str) -> SiteVariable:
        body = {"name": name, "value": value}
        response = self._send("POST", f"/api/v2/site/{site_uid}/variable/{variable_id}", body)
        if response:
            return SiteVariable.from_dict(response)
        return SiteVariable(id=variable_id, name=name, value=value)

    # Devices ----------------------------------------------------------------

    def get_devices(self, site_uid: str, page: int = 0, max_results: int = 250) -> DevicesPage:
        params = {"page": page, "max": max_results}
        return DevicesPage.from_dict(self._get(f"/api/v2/site/{site_uid}/devices", params) or {})

    def search_devices(self, hostname: str) -> DevicesPage:
        return DevicesPage.from_dict(self._get("/api/v2/account/devices", {"hostname": hostname}) or {})

    def set_device_udf(self, device: Device, index: int, value: Optional[str]) -> Device:
        """Set UDF ``index`` (zero based) of ``device``."""
        body = {f"udf{index + 1}": value or ""}
        self._send("POST", f"/api/v2/device/{device.uid}/udf", body)
        return device.with_udf(index, value or None)

    def set_device_warranty(self, device: Device, warranty_date: Optional[str]) -> Device:
        self._send("POST", f"/api/v2/device/{device.uid}/warranty", {"warrantyDate": warranty_date})
        return Device(**{**device.__dict__, "warranty_date": warranty_date})

    def move_device(self, device: Device, site: Site) -> Device:
        self._send("PUT", f"/api/v2/device/{device.uid}/site/{site.uid}")
        return Device(
            **{**device.__dict__, "site_uid": site.uid, "site_id": site.id, "site_name": site.name}
        )

    # Alerts and activity ----------------------------------------------------

    def get_site_open_alerts(self, site_uid: str) -> List[Alert]:
        response = self._get(f"/api/v2/site/{site_uid}/alerts/open") or {}
        return [Alert.from_dict(item) for item in response.get("alerts") or []]

    def get_device_open_alerts(self, device_uid: str) -> List[Alert]:
        response = self._get(f"/api/v2/device/{device_uid}/alerts/open") or {}
        return [Alert.from_dict(item) for item in response.get("alerts") or []]

    def get_activity_logs(self, site_ids: Iterable[int], size: int = 50) -> List[ActivityLog]:
        params = [("size", size), ("order", "desc")]
        params.extend(("siteIds", site_id) for site_id in site_ids)
        response = self._get("/api/v2/activity-logs", params) or {}
        return [ActivityLog.from_dict(item) for item in response.get("activities") or []]

    def get_device_activity_logs(self, device: Device, size: int = 50) -> List[ActivityLog]:
        """Activity logs of the device's site, narrowed to the device itself."""
        logs = self.get_activity_logs([device.site_id], size=size)
        return [log for log in logs if log.device_id == device.id]

    # Jobs -------------------------------------------------------------------

    def get_job_result(self, job_uid: str, device_uid: str) -> JobResult:
        return JobResult.from_dict(self._get(f"/api/v2/job/{job_uid}/results/{device_uid}") or {})

    def _job_output(self, job_uid: str, device_uid: str, stream: str) -> List[JobOutput]:
        response = self._http.request(
            "GET",
            f"/api/v2/job/{job_uid}/results/{device_uid}/{stream}",
            headers=self._headers(),
            allow_empty=True,
        )
        if isinstance(response, dict):
            response = [response]
        return [JobOutput.from_dict(item) for item in response or []]

    def get_job_stdout(self, job_uid: str, device_uid: str) -> List[JobOutput]:
        return self._job_output(job_uid, device_uid, "stdout")

    def get_job_stderr(self, job_uid: str, device_uid: str) -> List[JobOutput]:
        return self._job_output(job_uid, device_uid, "stderr")

    def get_components(self, page: int = 0, max_results: int = 250) -> List[Component]:
        response = self._get("/api/v2/account/components", {"page": page, "max": max_results}) or {}
        components = [Component.from_dict(item) for item in response.get("components") or []]
        components.sort(key=lambda component: component.name.lower())
        return components

    def run_quick_job(
        self,
        device_uid: str,
        component: Component,
        variables: Dict[str, str],
    ) -> QuickJob:
        body = {
            "jobName": f"Run {component.name}",
            "jobComponent": {
                "componentUid": component.uid,
                "variables": [{"name": name, "value": value} for name, value in variables.items()],
            },
        }
        return QuickJob.from_dict(self._send("PUT", f"/api/v2/device/{device_uid}/quickjob", body))
