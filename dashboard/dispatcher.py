"""Run backend operations on worker threads and report through the channel."""

from __future__ import annotations

import logging
import threading
import webbrowser
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from api import ApiError, Backends
from api.sophos import find_tenant
from api.types import Device, SophosEndpoint

from .messages import Completed, EventChannel
from .slots import RequestCorrelation

__all__ = ["DispatchRequest", "TaskDispatcher", "DEFAULT_OPERATIONS"]

LOGGER = logging.getLogger(__name__)

Operation = Callable[..., Any]


@dataclass(frozen=True)
class DispatchRequest:
    operation: str
    correlation: RequestCorrelation
    params: Dict[str, Any] = field(default_factory=dict)


def _first_or_none(items: List[Any]) -> Any:
    return items[0] if items else None


def _sophos_endpoint(
    backends: Backends,
    device: Device,
    tenants: Optional[list] = None,
) -> Optional[SophosEndpoint]:
    sophos = backends.require_sophos()
    if tenants is None:
        tenants = sophos.get_tenants()
    tenant = find_tenant(tenants, device.site_name)
    if tenant is None:
        return None
    endpoints = sophos.get_endpoints(tenant.id, tenant.data_region, device.hostname)
    wanted = device.hostname.lower()
    for endpoint in endpoints:
        if endpoint.hostname.lower() == wanted:
            return endpoint
    return _first_or_none(endpoints)


def _job_output(backends: Backends, job_uid: str, device_uid: str, stream: str) -> Any:
    if stream == "stderr":
        return backends.rmm.get_job_stderr(job_uid, device_uid)
    return backends.rmm.get_job_stdout(job_uid, device_uid)


DEFAULT_OPERATIONS: Dict[str, Operation] = {
    "sites": lambda b, page=0, max_results=50: b.rmm.get_sites(page=page, max_results=max_results),
    "incidents": lambda b: b.require_rocket_cyber().get_incidents(),
    "site-variables": lambda b, site_uid: b.rmm.get_site_variables(site_uid),
    "devices": lambda b, site_uid: b.rmm.get_devices(site_uid).devices,
    "site-alerts": lambda b, site_uid: b.rmm.get_site_open_alerts(site_uid),
    "device-alerts": lambda b, device_uid: b.rmm.get_device_open_alerts(device_uid),
    "activities": lambda b, device: b.rmm.get_device_activity_logs(device),
    "job-result": lambda b, job_uid, device_uid: b.rmm.get_job_result(job_uid, device_uid),
    "job-output": _job_output,
    "components": lambda b: b.rmm.get_components(),
    "av-agent": lambda b, hostname: _first_or_none(b.require_datto_av().get_agent_details(hostname)),
    "sophos-tenants": lambda b: b.require_sophos().get_tenants(),
    "sophos-endpoint": _sophos_endpoint,
    "rocket-agent": lambda b, hostname: _first_or_none(b.require_rocket_cyber().get_agents(hostname)),
    "search-devices": lambda b, query: b.rmm.search_devices(query).devices,
    "search-sites": lambda b, query: b.rmm.get_sites(site_name=query).sites,
    "update-site": lambda b, site, changes: b.rmm.update_site(site, **changes),
    "create-variable": lambda b, site_uid, name, value, masked: b.rmm.create_site_variable(
        site_uid, name, value, masked
    ),
    "update-variable": lambda b, site_uid, variable_id, name, value: b.rmm.update_site_variable(
        site_uid, variable_id, name, value
    ),
    "set-udf": lambda b, device, index, value: b.rmm.set_device_udf(device, index, value),
    "set-warranty": lambda b, device, warranty_date: b.rmm.set_device_warranty(device, warranty_date),
    "move-device": lambda b, device, site: b.rmm.move_device(device, site),
    "run-quick-job": lambda b, device_uid, component, variables: b.rmm.run_quick_job(
        device_uid, component, variables
    ),
    "open-web-remote": lambda b, url: webbrowser.open(url),
    "datto-av-scan": lambda b, agent_id: b.require_datto_av().scan_agent(agent_id),
    "sophos-scan": lambda b, tenant_id, data_region, endpoint_id: b.require_sophos().start_scan(
        tenant_id, data_region, endpoint_id
    ),
}


class TaskDispatcher:
    """Spawn one daemon thread per request.

    Every request posts exactly one ``Completed`` message, whatever happens on
    the worker thread.
    """

    def __init__(
        self,
        backends: Backends,
        channel: EventChannel,
        operations: Optional[Dict[str, Operation]] = None,
    ) -> None:
        self._backends = backends
        self._channel = channel
        self._operations = dict(DEFAULT_OPERATIONS if operations is None else operations)

    def dispatch(self, request: DispatchRequest) -> threading.Thread:
        LOGGER.debug(
            "Dispatching %s for %s (ordinal %d)",
            request.operation,
            request.correlation.slot,
            request.correlation.ordinal,
        )
        thread = threading.Thread(
            target=self._run,
            args=(request,),
            daemon=True,
            name=f"dispatch-{request.operation}",
        )
        thread.start()
        return thread

    def dispatch_all(self, requests: List[DispatchRequest]) -> List[threading.Thread]:
        return [self.dispatch(request) for request in requests]

    def _run(self, request: DispatchRequest) -> None:
        value = None
        error = None
        try:
            handler = self._operations.get(request.operation)
            if handler is None:
                raise ValueError(f"Unknown operation: {request.operation}")
            value = handler(self._backends, **request.params)
        except ApiError as exc:
            LOGGER.warning("%s failed: %s", request.operation, exc)
            error = str(exc)
        except Exception as exc:
            LOGGER.exception("Unexpected error in %s", request.operation)
            error = f"Unexpected error: {exc}"
        self._channel.post(Completed(correlation=request.correlation, value=value, error=error))
