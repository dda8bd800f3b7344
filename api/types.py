"""Typed views over the JSON documents returned by the backends."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

__all__ = [
    "PageDetails",
    "DevicesStatus",
    "SiteVariable",
    "Site",
    "SitesPage",
    "PatchManagement",
    "Antivirus",
    "Device",
    "DevicesPage",
    "Alert",
    "ActivityLog",
    "ComponentResult",
    "JobResult",
    "JobOutput",
    "ComponentVariable",
    "Component",
    "QuickJob",
    "Incident",
    "AvAgent",
    "SophosTenant",
    "SophosEndpoint",
    "RocketAgent",
    "UDF_COUNT",
]

UDF_COUNT = 30


def _str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PageDetails:
    count: int = 0
    total_count: Optional[int] = None
    next_page_url: Optional[str] = None
    prev_page_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PageDetails":
        data = data or {}
        total = data.get("totalCount")
        return cls(
            count=_int(data.get("count")),
            total_count=_int(total) if total is not None else None,
            next_page_url=data.get("nextPageUrl"),
            prev_page_url=data.get("prevPageUrl"),
        )

    def total_pages(self, page_size: int) -> int:
        if not self.total_count or page_size <= 0:
            return 1
        return max(1, -(-self.total_count // page_size))


@dataclass(frozen=True)
class DevicesStatus:
    number_of_devices: int = 0
    number_of_online_devices: int = 0
    number_of_offline_devices: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["DevicesStatus"]:
        if not data:
            return None
        return cls(
            number_of_devices=_int(data.get("numberOfDevices")),
            number_of_online_devices=_int(data.get("numberOfOnlineDevices")),
            number_of_offline_devices=_int(data.get("numberOfOfflineDevices")),
        )


@dataclass(frozen=True)
class SiteVariable:
    id: int
    name: str
    value: str
    masked: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiteVariable":
        return cls(
            id=_int(data.get("id")),
            name=str(data.get("name", "")),
            value=str(data.get("value") or ""),
            masked=bool(data.get("masked", False)),
        )


@dataclass(frozen=True)
class Site:
    uid: str
    name: str
    id: int = 0
    description: Optional[str] = None
    notes: Optional[str] = None
    on_demand: bool = False
    splashtop_auto_install: bool = False
    devices_status: Optional[DevicesStatus] = None
    portal_url: Optional[str] = None
    # Per-site enrichment fetched separately; None until it arrives
    variables: Optional[tuple[SiteVariable, ...]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Site":
        return cls(
            uid=str(data.get("uid", "")),
            name=str(data.get("name", "")),
            id=_int(data.get("id")),
            description=data.get("description"),
            notes=data.get("notes"),
            on_demand=bool(data.get("onDemand") or False),
            splashtop_auto_install=bool(data.get("splashtopAutoInstall") or False),
            devices_status=DevicesStatus.from_dict(data.get("devicesStatus")),
            portal_url=data.get("portalUrl"),
        )

    def update_request(self, **changes: Any) -> Dict[str, Any]:
        """Build the full site update body with ``changes`` applied."""
        site = replace(self, **changes)
        return {
            "name": site.name,
            "description": site.description,
            "notes": site.notes,
            "onDemand": site.on_demand,
            "splashtopAutoInstall": site.splashtop_auto_install,
        }


@dataclass(frozen=True)
class SitesPage:
    sites: List[Site]
    page_details: PageDetails

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SitesPage":
        sites = [Site.from_dict(item) for item in data.get("sites") or []]
        sites.sort(key=lambda site: site.name.lower())
        return cls(sites=sites, page_details=PageDetails.from_dict(data.get("pageDetails")))


@dataclass(frozen=True)
class PatchManagement:
    patch_status: Optional[str] = None
    patches_installed: int = 0
    patches_approved_pending: int = 0
    patches_not_approved: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PatchManagement"]:
        if not data:
            return None
        return cls(
            patch_status=data.get("patchStatus"),
            patches_installed=_int(data.get("patchesInstalled")),
            patches_approved_pending=_int(data.get("patchesApprovedPending")),
            patches_not_approved=_int(data.get("patchesNotApproved")),
        )


@dataclass(frozen=True)
class Antivirus:
    product: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Antivirus"]:
        if not data:
            return None
        return cls(product=data.get("antivirusProduct"), status=data.get("antivirusStatus"))


@dataclass(frozen=True)
class Device:
    uid: str
    hostname: str
    id: int = 0
    site_id: int = 0
    site_uid: str = ""
    site_name: Optional[str] = None
    description: Optional[str] = None
    online: bool = False
    operating_system: Optional[str] = None
    device_type: Optional[str] = None
    device_class: Optional[str] = None
    last_seen: Any = None
    last_reboot: Any = None
    last_logged_in_user: Optional[str] = None
    int_ip_address: Optional[str] = None
    ext_ip_address: Optional[str] = None
    warranty_date: Optional[str] = None
    web_remote_url: Optional[str] = None
    patch_management: Optional[PatchManagement] = None
    antivirus: Optional[Antivirus] = None
    udf: tuple[Optional[str], ...] = field(default=(None,) * UDF_COUNT)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        device_type = data.get("deviceType") or {}
        raw_udf = data.get("udf") or {}
        udf = tuple(_str(raw_udf.get(f"udf{index}")) for index in range(1, UDF_COUNT + 1))
        type_name = device_type.get("type")
        if type_name == "Main System Chassis":
            type_name = "Server"
        return cls(
            uid=str(data.get("uid", "")),
            hostname=str(data.get("hostname", "")),
            id=_int(data.get("id")),
            site_id=_int(data.get("siteId")),
            site_uid=str(data.get("siteUid") or ""),
            site_name=data.get("siteName"),
            description=data.get("description"),
            online=bool(data.get("online", False)),
            operating_system=data.get("operatingSystem"),
            device_type=type_name,
            device_class=data.get("deviceClass"),
            last_seen=data.get("lastSeen"),
            last_reboot=data.get("lastReboot"),
            last_logged_in_user=data.get("lastLoggedInUser"),
            int_ip_address=data.get("intIpAddress"),
            ext_ip_address=data.get("extIpAddress"),
            warranty_date=data.get("warrantyDate"),
            web_remote_url=data.get("webRemoteUrl"),
            patch_management=PatchManagement.from_dict(data.get("patchManagement")),
            antivirus=Antivirus.from_dict(data.get("antivirus")),
            udf=udf,
        )

    @property
    def antivirus_product(self) -> str:
        if self.antivirus and self.antivirus.product:
            return self.antivirus.product
        return ""

    def with_udf(self, index: int, value: Optional[str]) -> "Device":
        udf = list(self.udf)
        udf[index] = value
        return replace(self, udf=tuple(udf))


@dataclass(frozen=True)
class DevicesPage:
    devices: List[Device]
    page_details: PageDetails

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DevicesPage":
        return cls(
            devices=[Device.from_dict(item) for item in data.get("devices") or []],
            page_details=PageDetails.from_dict(data.get("pageDetails")),
        )


@dataclass(frozen=True)
class Alert:
    alert_uid: str
    priority: str = "Unknown"
    diagnostics: str = "N/A"
    timestamp: Any = None
    device_name: Optional[str] = None
    resolved: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        source = data.get("alertSourceInfo") or {}
        diagnostics = str(data.get("diagnostics") or "N/A")
        diagnostics = " ".join(diagnostics.replace("\r\n", " ").split())
        return cls(
            alert_uid=str(data.get("alertUid", "")),
            priority=str(data.get("priority") or "Unknown"),
            diagnostics=diagnostics or "N/A",
            timestamp=data.get("timestamp"),
            device_name=source.get("deviceName"),
            resolved=bool(data.get("resolved", False)),
        )


@dataclass(frozen=True)
class ActivityLog:
    id: str
    entity: Optional[str] = None
    category: Optional[str] = None
    action: Optional[str] = None
    date: Optional[float] = None
    site_name: Optional[str] = None
    device_id: Optional[int] = None
    hostname: Optional[str] = None
    user_name: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    has_std_out: bool = False
    has_std_err: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityLog":
        details: Dict[str, Any] = {}
        raw = data.get("details")
        if isinstance(raw, str) and raw.strip():
            try:
                parsed = json.loads(raw)
            except ValueError:
                parsed = {"details": raw}
            if isinstance(parsed, dict):
                details = parsed
        elif isinstance(raw, dict):
            details = raw
        site = data.get("site") or {}
        user = data.get("user") or {}
        device_id = data.get("deviceId")
        return cls(
            id=str(data.get("id", "")),
            entity=data.get("entity"),
            category=data.get("category"),
            action=data.get("action"),
            date=data.get("date"),
            site_name=site.get("name"),
            device_id=_int(device_id) if device_id is not None else None,
            hostname=data.get("hostname"),
            user_name=user.get("userName"),
            details=details,
            has_std_out=bool(data.get("hasStdOut", False)),
            has_std_err=bool(data.get("hasStdErr", False)),
        )

    @property
    def job_uid(self) -> Optional[str]:
        return _str(self.details.get("job.uid"))

    @property
    def job_name(self) -> str:
        return str(self.details.get("job.name") or "")

    @property
    def job_status(self) -> str:
        return str(self.details.get("job.status") or "")

    def extra_details(self) -> List[tuple[str, str]]:
        hidden = {"job.uid", "job.name", "job.status"}
        rows = []
        for key, value in self.details.items():
            if key in hidden:
                continue
            rows.append((key, value if isinstance(value, str) else json.dumps(value)))
        return sorted(rows)


@dataclass(frozen=True)
class ComponentResult:
    component_uid: Optional[str] = None
    component_name: Optional[str] = None
    component_status: Optional[str] = None
    number_of_warnings: int = 0
    has_std_out: bool = False
    has_std_err: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentResult":
        return cls(
            component_uid=data.get("componentUid"),
            component_name=data.get("componentName"),
            component_status=data.get("componentStatus"),
            number_of_warnings=_int(data.get("numberOfWarnings")),
            has_std_out=bool(data.get("hasStdOut", False)),
            has_std_err=bool(data.get("hasStdErr", False)),
        )


@dataclass(frozen=True)
class JobResult:
    job_uid: Optional[str] = None
    device_uid: Optional[str] = None
    ran_on: Any = None
    job_deployment_status: Optional[str] = None
    component_results: tuple[ComponentResult, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobResult":
        return cls(
            job_uid=data.get("jobUid"),
            device_uid=data.get("deviceUid"),
            ran_on=data.get("ranOn"),
            job_deployment_status=data.get("jobDeploymentStatus"),
            component_results=tuple(
                ComponentResult.from_dict(item) for item in data.get("componentResults") or []
            ),
        )


@dataclass(frozen=True)
class JobOutput:
    component_name: Optional[str] = None
    std_data: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobOutput":
        return cls(component_name=data.get("componentName"), std_data=str(data.get("stdData") or ""))


@dataclass(frozen=True)
class ComponentVariable:
    name: str
    default_value: str = ""
    type: str = "string"
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentVariable":
        return cls(
            name=str(data.get("name", "")),
            default_value=str(data.get("defaultVal") or ""),
            type=str(data.get("type") or "string"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class Component:
    uid: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    variables: tuple[ComponentVariable, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Component":
        return cls(
            uid=str(data.get("uid", "")),
            name=str(data.get("name", "")),
            category=data.get("categoryCode"),
            description=data.get("description"),
            variables=tuple(ComponentVariable.from_dict(item) for item in data.get("variables") or []),
        )


@dataclass(frozen=True)
class QuickJob:
    id: Optional[int] = None
    uid: Optional[str] = None
    name: str = "Unknown"
    status: str = "Unknown"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QuickJob":
        job = (data or {}).get("job") or {}
        job_id = job.get("id")
        return cls(
            id=_int(job_id) if job_id is not None else None,
            uid=job.get("uid"),
            name=str(job.get("name") or "Unknown"),
            status=str(job.get("status") or "Unknown"),
        )


@dataclass(frozen=True)
class Incident:
    id: int
    title: str
    status: str
    account_id: int
    account_name: str
    created_at: str = ""
    resolved_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Incident":
        return cls(
            id=_int(data.get("id")),
            title=str(data.get("title", "")),
            status=str(data.get("status", "")),
            account_id=_int(data.get("accountId")),
            account_name=str(data.get("accountName", "")),
            created_at=str(data.get("createdAt", "")),
            resolved_at=data.get("resolvedAt"),
        )


@dataclass(frozen=True)
class AvAgent:
    id: str
    hostname: str
    status: Optional[str] = None
    version: Optional[str] = None
    isolated: bool = False
    alert_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AvAgent":
        return cls(
            id=str(data.get("id", "")),
            hostname=str(data.get("hostname", "")),
            status=data.get("status"),
            version=data.get("version"),
            isolated=bool(data.get("isolated") or False),
            alert_count=_int(data.get("alertCount")),
        )


@dataclass(frozen=True)
class SophosTenant:
    id: str
    name: str
    data_region: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SophosTenant":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            data_region=str(data.get("dataRegion", "")),
        )


@dataclass(frozen=True)
class SophosEndpoint:
    id: str
    hostname: str
    tenant_id: str = ""
    data_region: str = ""
    health: str = "Unknown"
    isolated: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any], tenant_id: str = "", data_region: str = "") -> "SophosEndpoint":
        health = (data.get("health") or {}).get("overall") or "Unknown"
        isolation = data.get("isolation") or {}
        return cls(
            id=str(data.get("id", "")),
            hostname=str(data.get("hostname", "")),
            tenant_id=tenant_id,
            data_region=data_region,
            health=str(health),
            isolated=bool(isolation.get("isIsolated") or False),
        )


@dataclass(frozen=True)
class RocketAgent:
    id: str
    hostname: str
    connectivity: str = "Unknown"
    agent_version: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RocketAgent":
        return cls(
            id=str(data.get("id", "")),
            hostname=str(data.get("hostname", "")),
            connectivity=str(data.get("connectivity") or "Unknown"),
            agent_version=str(data.get("agentVersion") or ""),
        )
