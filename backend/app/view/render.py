"""
render.py — What the front end draws, built from a DashboardSnapshot.

The map and video are external capabilities. This module only produces the
requests they consume:

    tables      rows per feed, newest first, "N/A" for missing location
    main map    one MarkerRequest per located alert + bounds/revision
    detail map  selected alert + nearby safe zones, or None
    video       modal visibility, stream URL, failure message

Alerts without coordinates appear in their table and nowhere else.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.alerts.controller import DashboardSnapshot
from backend.app.alerts.models import Alert, SourceKind
from backend.app.core.config import Settings
from backend.app.spatial.radius_utils import filter_safe_zones

NOT_AVAILABLE = "N/A"
IMAGE_MIME = "image/jpeg"


class MarkerIcon(str, Enum):
    """Icon classes understood by the map front end."""
    ALERT          = "blinking-icon"    # every alert on the main map
    HIGH_SEVERITY  = "blinking-marker"  # selected alert with severity HIGH
    DEFAULT        = "default"          # other selected alerts, safe zones


@dataclass(frozen=True)
class MarkerRequest:
    """One "draw marker at (lat, lon) with popup" request."""
    position: List[float]
    icon: MarkerIcon
    popup_title: str
    popup_lines: List[str]
    key: str
    alert_id: Optional[str] = None
    source: Optional[SourceKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "position": self.position,
            "icon": self.icon.value,
            "popup": {"title": self.popup_title, "lines": self.popup_lines},
            "alert_id": self.alert_id,
            "source": self.source.value if self.source else None,
        }


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def _or_na(value: Any) -> Any:
    return NOT_AVAILABLE if value is None or value == "" else value


def image_data_uri(alert: Alert) -> Optional[str]:
    if not alert.image:
        return None
    return f"data:{IMAGE_MIME};base64,{alert.image}"


def table_rows(snapshot: DashboardSnapshot, kind: SourceKind) -> List[Dict[str, Any]]:
    """Rows for one feed's table, newest (last received) first."""
    rows: List[Dict[str, Any]] = []
    for alert in reversed(snapshot.alerts[kind]):
        lat = alert.coordinates.latitude if alert.coordinates else None
        lon = alert.coordinates.longitude if alert.coordinates else None
        if kind == SourceKind.PRIMARY:
            rows.append({
                "alert_id": alert.id,
                "message": alert.message,
                "address": _or_na(alert.address),
                "latitude": _or_na(lat),
                "longitude": _or_na(lon),
                "timestamp": alert.timestamp,
                "image": image_data_uri(alert),
            })
        else:
            rows.append({
                "alert_id": alert.id,
                "name": alert.person,
                "message": alert.message,
                "latitude": _or_na(lat),
                "longitude": _or_na(lon),
            })
    return rows


def table_view(snapshot: DashboardSnapshot, kind: SourceKind) -> Dict[str, Any]:
    status = snapshot.sources[kind]
    return {
        "source": kind.value,
        "label": kind.label,
        "visible": snapshot.toggles.visible_table == kind,
        "state": status.state.value,
        "inline_message": status.inline_message,
        "rows": table_rows(snapshot, kind),
    }


# ---------------------------------------------------------------------------
# Main map
# ---------------------------------------------------------------------------

def _popup(alert: Alert) -> tuple:
    lat, lon = alert.coordinates.latitude, alert.coordinates.longitude
    if alert.source == SourceKind.PRIMARY:
        return alert.message or "", [
            f"Address: {_or_na(alert.address)}",
            f"Latitude: {lat}",
            f"Longitude: {lon}",
        ]
    return f"Name: {_or_na(alert.person)}", [
        f"Message: {_or_na(alert.message)}",
        f"Latitude: {lat}",
        f"Longitude: {lon}",
    ]


def marker_requests(snapshot: DashboardSnapshot) -> List[MarkerRequest]:
    """Markers for every located alert in both feeds, newest first per feed."""
    markers: List[MarkerRequest] = []
    for kind in SourceKind:
        for alert in reversed(snapshot.alerts[kind]):
            if alert.coordinates is None:
                continue
            title, lines = _popup(alert)
            markers.append(MarkerRequest(
                position=alert.coordinates.as_pair(),
                icon=MarkerIcon.ALERT,
                popup_title=title,
                popup_lines=lines,
                key=f"alert-{alert.id}",
                alert_id=alert.id,
                source=kind,
            ))
    return markers


def main_map(snapshot: DashboardSnapshot, settings: Settings) -> Dict[str, Any]:
    return {
        "title": "All Alert Locations",
        "center": [settings.MAP_DEFAULT_CENTER_LAT, settings.MAP_DEFAULT_CENTER_LON],
        "zoom": settings.MAP_DEFAULT_ZOOM,
        "tile_url": settings.MAP_TILE_URL,
        "attribution": settings.MAP_ATTRIBUTION,
        "bounds": snapshot.bounds.to_dict() if snapshot.bounds else None,
        "viewport_revision": snapshot.viewport_revision,
        "markers": [m.to_dict() for m in marker_requests(snapshot)],
    }


# ---------------------------------------------------------------------------
# Detail map
# ---------------------------------------------------------------------------

def detail_map(snapshot: DashboardSnapshot, settings: Settings) -> Optional[Dict[str, Any]]:
    """Selected alert with nearby safe zones; None until something located is selected."""
    alert = snapshot.selected
    if alert is None or alert.coordinates is None:
        return None

    severity = alert.severity.upper() if alert.severity else "UNKNOWN"
    marker = MarkerRequest(
        position=alert.coordinates.as_pair(),
        icon=MarkerIcon.HIGH_SEVERITY if alert.is_high_severity else MarkerIcon.DEFAULT,
        popup_title=alert.address or "Unknown Location",
        popup_lines=[alert.person or "Unknown Person", f"Severity: {severity}"],
        key=f"selected-{alert.id}",
        alert_id=alert.id,
        source=alert.source,
    )

    zones = filter_safe_zones(
        alert.coordinates, snapshot.safe_zones, settings.SAFE_ZONE_RADIUS_KM,
    )
    zone_markers = [
        MarkerRequest(
            position=z.location.as_pair(),
            icon=MarkerIcon.DEFAULT,
            popup_title=z.name,
            popup_lines=["This is a safe zone."],
            key=f"zone-{z.id}",
        )
        for z in zones
    ]

    return {
        "title": "Selected Alert and Nearby Safe Zones",
        "center": alert.coordinates.as_pair(),
        "zoom": settings.MAP_DEFAULT_ZOOM,
        "tile_url": settings.MAP_TILE_URL,
        "attribution": settings.MAP_ATTRIBUTION,
        "alert_marker": marker.to_dict(),
        "safe_zones": [z.to_dict() for z in zones],
        "safe_zone_markers": [m.to_dict() for m in zone_markers],
    }


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------

def video_panel(snapshot: DashboardSnapshot, settings: Settings) -> Dict[str, Any]:
    toggles = snapshot.toggles
    return {
        "visible": toggles.show_video,
        "button_label": "🔴 Live(Hide) " if toggles.show_video else "🔴 Live",
        "title": settings.VIDEO_TITLE,
        "url": settings.VIDEO_FEED_URL if toggles.show_video else None,
        "error": toggles.video_error,
    }


# ---------------------------------------------------------------------------
# Whole page
# ---------------------------------------------------------------------------

def dashboard_view(snapshot: DashboardSnapshot, settings: Settings) -> Dict[str, Any]:
    return {
        "generation": snapshot.generation,
        "loading": snapshot.loading,
        "show_emergency_banner": snapshot.show_emergency_banner,
        "sources": {k.value: s.to_dict() for k, s in snapshot.sources.items()},
        "tables": {k.value: table_view(snapshot, k) for k in SourceKind},
        "map": main_map(snapshot, settings),
        "detail_map": detail_map(snapshot, settings),
        "selection": {
            "state": "selected" if snapshot.selected else "unselected",
            "alert": snapshot.selected.to_dict() if snapshot.selected else None,
        },
        "toggles": snapshot.toggles.to_dict(),
        "video": video_panel(snapshot, settings),
    }
