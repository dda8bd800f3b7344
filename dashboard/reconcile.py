"""Match incident feed statistics onto RMM sites."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from api.types import Incident, Site

__all__ = [
    "OVERRIDE_VARIABLE",
    "COLOR_VARIABLE",
    "ROW_COLORS",
    "IncidentStats",
    "SiteRow",
    "build_incident_stats",
    "lookup_key",
    "site_color",
    "reconcile",
]

OVERRIDE_VARIABLE = "tuiMdrId"
COLOR_VARIABLE = "tuiColor"
ROW_COLORS = ("red", "blue", "green", "yellow", "magenta", "cyan", "white", "gray")


@dataclass(frozen=True)
class IncidentStats:
    active: int = 0
    resolved: int = 0

    @property
    def total(self) -> int:
        return self.active + self.resolved


ZERO_STATS = IncidentStats()


@dataclass(frozen=True)
class SiteRow:
    site: Site
    lookup_key: str
    stats: IncidentStats
    color: Optional[str] = None


def build_incident_stats(incidents: Iterable[Incident]) -> Dict[str, IncidentStats]:
    """Count incidents per account name (lowercased) and per account id."""
    counts: Dict[str, List[int]] = {}
    for incident in incidents:
        resolved = incident.status.lower() == "resolved"
        for key in (incident.account_name.lower(), str(incident.account_id)):
            bucket = counts.setdefault(key, [0, 0])
            bucket[1 if resolved else 0] += 1
    return {key: IncidentStats(active=active, resolved=resolved) for key, (active, resolved) in counts.items()}


def _variable(site: Site, name: str) -> Optional[str]:
    for variable in site.variables or ():
        if variable.name == name and variable.value.strip():
            return variable.value.strip()
    return None


def lookup_key(site: Site) -> str:
    override = _variable(site, OVERRIDE_VARIABLE)
    if override is not None:
        return override
    return site.name.lower()


def site_color(site: Site) -> Optional[str]:
    color = _variable(site, COLOR_VARIABLE)
    if color is None:
        return None
    color = color.lower()
    if color == "grey":
        color = "gray"
    return color if color in ROW_COLORS else None


def reconcile(sites: Iterable[Site], stats: Mapping[str, IncidentStats]) -> List[SiteRow]:
    """Attach incident stats to every site. Sites sharing a key share the stats."""
    rows = []
    for site in sites:
        key = lookup_key(site)
        rows.append(SiteRow(site=site, lookup_key=key, stats=stats.get(key, ZERO_STATS), color=site_color(site)))
    return rows
