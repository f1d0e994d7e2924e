"""
radius_utils.py — Coordinates, great-circle distance and safe-zone filtering.

Provides:
    - Coordinate, the validated (lat, lon) point used by every alert
    - Haversine distance calculation between two points
    - Radius filtering of safe zones around a selected alert
    - Bounding-box pre-filter for performance at scale

All distances are in **kilometers**. Coordinates are in **decimal degrees**.

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where φ is latitude and λ longitude in radians, and R is Earth's mean
radius ≈ 6,371 km.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM: float = 6_371.0088  # IAU mean radius


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees. NaN and infinities are rejected."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        """Latitude in radians."""
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        """Longitude in radians."""
        return math.radians(self.longitude)

    def as_pair(self) -> List[float]:
        """``[lat, lon]`` as map libraries expect it."""
        return [self.latitude, self.longitude]


@dataclass
class SafeZone:
    """A non-alert point of interest shown next to a selected alert."""
    id: str
    name: str
    location: Coordinate

    # Set by filter_safe_zones
    distance_km: Optional[float] = field(default=None, repr=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SafeZone":
        """Build from a settings entry ``{id, name, latitude, longitude}``."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            location=Coordinate(float(data["latitude"]), float(data["longitude"])),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "coords": self.location.as_pair(),
        }
        if self.distance_km is not None:
            d["distance_km"] = self.distance_km
            d["distance"] = format_distance(self.distance_km)
        return d


# ---------------------------------------------------------------------------
# Haversine implementation
# ---------------------------------------------------------------------------

def haversine(point1: Coordinate, point2: Coordinate) -> float:
    """
    Great-circle distance between two points, in km rounded to 4 places.

    >>> haversine(Coordinate(13.0827, 80.2707), Coordinate(12.9716, 77.5946))
    290.2122

    >>> haversine(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )

    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))

    return round(EARTH_RADIUS_KM * c, 4)


# ---------------------------------------------------------------------------
# Bounding-box pre-filter (fast rejection before expensive Haversine)
# ---------------------------------------------------------------------------

def _bounding_box(center: Coordinate, radius_km: float) -> tuple:
    """
    Lat/lon box that fully contains the circle (center, radius_km).

    Returns (min_lat, max_lat, min_lon, max_lon) in degrees.
    """
    angular = radius_km / EARTH_RADIUS_KM

    min_lat = center.latitude - math.degrees(angular)
    max_lat = center.latitude + math.degrees(angular)

    # Longitude delta shrinks toward the poles
    lat_rad = math.radians(center.latitude)
    if math.cos(lat_rad) > 1e-10:
        delta_lon = math.degrees(angular / math.cos(lat_rad))
    else:
        delta_lon = 180.0

    return (
        max(min_lat, -90.0),
        min(max_lat, 90.0),
        max(center.longitude - delta_lon, -180.0),
        min(center.longitude + delta_lon, 180.0),
    )


# ---------------------------------------------------------------------------
# Radius filtering
# ---------------------------------------------------------------------------

def is_inside_radius(
    center: Coordinate,
    point: Coordinate,
    radius_km: float,
) -> tuple[bool, float]:
    """
    Check whether ``point`` lies within ``radius_km`` of ``center``.

    Returns (inside, distance_km).

    >>> is_inside_radius(Coordinate(13.0827, 80.2707), Coordinate(13.10, 80.30), 5.0)
    (True, 3.7266)
    """
    if radius_km <= 0:
        raise ValueError(f"Radius must be positive, got {radius_km}")

    dist = haversine(center, point)
    return (dist <= radius_km, dist)


def filter_safe_zones(
    center: Coordinate,
    zones: Sequence[SafeZone],
    radius_km: Optional[float] = None,
) -> List[SafeZone]:
    """
    Safe zones near ``center``, nearest first.

    With ``radius_km=None`` every zone is kept (only distances are filled
    in); otherwise zones outside the radius are dropped. Zones are copied,
    the input sequence is not mutated.
    """
    if radius_km is not None and radius_km <= 0:
        raise ValueError(f"Radius must be positive, got {radius_km}")

    bbox = _bounding_box(center, radius_km) if radius_km is not None else None
    matched: List[SafeZone] = []

    for zone in zones:
        if bbox is not None:
            min_lat, max_lat, min_lon, max_lon = bbox
            if not (min_lat <= zone.location.latitude <= max_lat
                    and min_lon <= zone.location.longitude <= max_lon):
                continue

        if radius_km is None:
            inside, dist = True, haversine(center, zone.location)
        else:
            inside, dist = is_inside_radius(center, zone.location, radius_km)
        if inside:
            matched.append(SafeZone(zone.id, zone.name, zone.location, distance_km=dist))

    matched.sort(key=lambda z: z.distance_km or 0.0)
    return matched


# ---------------------------------------------------------------------------
# Utility: Human-readable distance
# ---------------------------------------------------------------------------

def format_distance(km: float) -> str:
    """
    Format a distance for display.

    >>> format_distance(0.45)
    '450 m'
    >>> format_distance(3.7266)
    '3.73 km'
    """
    if km < 1.0:
        return f"{int(km * 1000)} m"
    return f"{km:.2f} km"
