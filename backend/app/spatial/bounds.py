"""
bounds.py — Map viewport bounds for the alert map.

compute_bounds() returns the minimal axis-aligned region covering every
located alert, or None when no alert has a location (the map then keeps
its current viewport).

BoundsTracker keys the computation by a fingerprint of the located
coordinate set, so the viewport is only refitted when that set actually
changes. Refitting on every collection update makes the map jitter, and
can loop when the refit itself triggers another update.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from backend.app.alerts.models import Alert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingRegion:
    """Axis-aligned lat/lon box, edges inclusive."""
    south: float
    west: float
    north: float
    east: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (self.south <= latitude <= self.north
                and self.west <= longitude <= self.east)

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.south + self.north) / 2.0, (self.west + self.east) / 2.0)

    @property
    def is_point(self) -> bool:
        return self.south == self.north and self.west == self.east

    def to_dict(self) -> Dict[str, Any]:
        return {
            "south": self.south,
            "west": self.west,
            "north": self.north,
            "east": self.east,
            # [[south, west], [north, east]], the shape Leaflet's fitBounds takes
            "corners": [[self.south, self.west], [self.north, self.east]],
        }


def located_points(alerts: Iterable[Alert]) -> List[Tuple[float, float]]:
    """(lat, lon) of every alert that has coordinates."""
    return [
        (a.coordinates.latitude, a.coordinates.longitude)
        for a in alerts
        if a.coordinates is not None
    ]


def _region_for(points: List[Tuple[float, float]]) -> BoundingRegion:
    lats = [p[0] for p in points]
    lons = [p[1] for p in points]
    return BoundingRegion(
        south=min(lats), west=min(lons), north=max(lats), east=max(lons),
    )


def compute_bounds(alerts: Iterable[Alert]) -> Optional[BoundingRegion]:
    """Minimal region containing every located alert; None if there are none."""
    points = located_points(alerts)
    if not points:
        return None
    return _region_for(points)


def coordinate_fingerprint(points: Iterable[Tuple[float, float]]) -> str:
    """Order-independent digest of a coordinate multiset."""
    ordered = sorted(points)
    h = hashlib.sha1(str(len(ordered)).encode("ascii"))
    for lat, lon in ordered:
        h.update(f"|{lat!r},{lon!r}".encode("ascii"))
    return h.hexdigest()


class BoundsTracker:
    """
    Memoized bounds with a revision counter.

    ``update()`` recomputes only when the located-coordinate fingerprint
    changes, and ``revision`` increments only when the region changes. A
    renderer fits its viewport when it sees a revision it has not fitted.
    An empty coordinate set leaves the last region in place.
    """

    def __init__(self) -> None:
        self._fingerprint: Optional[str] = None
        self._region: Optional[BoundingRegion] = None
        self.revision = 0
        self.computations = 0

    @property
    def region(self) -> Optional[BoundingRegion]:
        return self._region

    def update(self, alerts: Iterable[Alert]) -> bool:
        """Feed the current alerts; returns True when the region changed."""
        points = located_points(alerts)
        fingerprint = coordinate_fingerprint(points)
        if fingerprint == self._fingerprint:
            return False
        self._fingerprint = fingerprint

        if not points:
            return False

        self.computations += 1
        region = _region_for(points)
        if region == self._region:
            return False

        self._region = region
        self.revision += 1
        logger.debug(
            "Viewport bounds r%d over %d points: %s", self.revision, len(points), region,
        )
        return True

    def reset(self) -> None:
        """Forget the region for a new mount. ``revision`` keeps counting up
        so the first region of the next mount is always a new revision."""
        self._fingerprint = None
        self._region = None
        self.computations = 0
