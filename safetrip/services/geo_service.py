"""Great-circle distance and safe zone evaluation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Protocol

EARTH_RADIUS_M = 6371e3


class ZoneLike(Protocol):
    id: int
    name: str
    type: str
    latitude: float
    longitude: float
    radius: int


@dataclass
class ZoneResult:
    """Containment result for one zone."""

    zone: ZoneLike
    is_within: bool
    distance_m: float

    @property
    def safety_status(self) -> str:
        return "safe" if self.is_within else "outside"


@dataclass
class SafetyReport:
    is_safe: bool
    total_zones_checked: int
    in_safe_zones: int
    nearest: ZoneResult | None
    results: list[ZoneResult] = field(default_factory=list)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in meters."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_point_within(lat: float, lon: float, center_lat: float, center_lon: float, radius_m: float) -> bool:
    """True when the point lies on or inside the circle."""
    return haversine_m(lat, lon, center_lat, center_lon) <= radius_m


def check_location_safety(latitude: float, longitude: float, zones: Iterable[ZoneLike]) -> SafetyReport:
    """
    Evaluate a point against the given zones.

    Nearest is the zone with the smallest distance; ties keep the first zone seen.
    """
    results: list[ZoneResult] = []
    nearest: ZoneResult | None = None
    for zone in zones:
        distance = haversine_m(latitude, longitude, zone.latitude, zone.longitude)
        result = ZoneResult(zone=zone, is_within=distance <= zone.radius, distance_m=distance)
        results.append(result)
        if nearest is None or distance < nearest.distance_m:
            nearest = result

    inside = sum(1 for r in results if r.is_within)
    return SafetyReport(
        is_safe=inside > 0,
        total_zones_checked=len(results),
        in_safe_zones=inside,
        nearest=nearest,
        results=results,
    )
