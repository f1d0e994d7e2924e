"""
models.py — Shared data structures for alert aggregation.

Defines:
    • SourceKind  — which feed an alert came from
    • LoadState   — per-source load status
    • Alert       — the normalized alert both feeds are mapped into
    • SourceStatus — load outcome of one feed, shown inline per source

═══════════════════════════════════════════════════════════════════════════
THE TWO FEEDS
═══════════════════════════════════════════════════════════════════════════

    Kind        Table label         Native record shape
    ─────────   ─────────────────   ──────────────────────────────────────
    primary     SOS Alerts          {message, location:{latitude,
                                     longitude, address}, timestamp, image?}
    secondary   Emergency Alerts    {name, alert_message, latitude,
                                     longitude}

The feeds are independent. The same real-world event reported by both
renders as two alerts; nothing links identities across feeds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from backend.app.spatial.radius_utils import Coordinate

HIGH_SEVERITY = "HIGH"


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class SourceKind(str, Enum):
    """Alert feeds, in table order."""
    PRIMARY   = "primary"    # SOS feed (source A)
    SECONDARY = "secondary"  # emergency feed (source B)

    @property
    def label(self) -> str:
        return _SOURCE_LABELS[self]


_SOURCE_LABELS = {
    SourceKind.PRIMARY: "SOS Alerts",
    SourceKind.SECONDARY: "Emergency Alerts",
}


class LoadState(str, Enum):
    """Load state machine per source: LOADING → READY | FAILED."""
    LOADING = "loading"
    READY   = "ready"
    FAILED  = "failed"


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Alert:
    """
    A normalized alert.

    Attributes
    ----------
    id : str
        Stable identity derived from the record content (see normalizer).
    source : SourceKind
        Feed the alert was read from.
    message : str | None
        Free text.
    coordinates : Coordinate | None
        Absent when the record has no usable location. Never (0, 0) as a
        stand-in for a parse failure.
    address, timestamp : str | None
        Passed through from the feed; timestamp has no guaranteed format.
    image : str | None
        Base64-encoded JPEG (primary feed only).
    person, severity : str | None
        Shown on the detail map.
    """
    id: str
    source: SourceKind
    message: Optional[str] = None
    coordinates: Optional[Coordinate] = None
    address: Optional[str] = None
    timestamp: Optional[str] = None
    image: Optional[str] = None
    person: Optional[str] = None
    severity: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.coordinates is not None

    @property
    def is_high_severity(self) -> bool:
        return bool(self.severity) and self.severity.strip().upper() == HIGH_SEVERITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "message": self.message,
            "coords": self.coordinates.as_pair() if self.coordinates else None,
            "address": self.address,
            "timestamp": self.timestamp,
            "has_image": self.image is not None,
            "person": self.person,
            "severity": self.severity,
        }


@dataclass
class SourceStatus:
    """Load outcome of one feed for the current mount."""
    source: SourceKind
    url: str
    state: LoadState = LoadState.LOADING
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    record_count: int = 0
    attempts: int = 0
    fetched_at: Optional[datetime] = None
    duration_ms: int = 0

    @property
    def is_loading(self) -> bool:
        return self.state == LoadState.LOADING

    @property
    def failed(self) -> bool:
        return self.state == LoadState.FAILED

    @property
    def inline_message(self) -> Optional[str]:
        """Text shown in place of the table while loading or after a failure."""
        if self.state == LoadState.LOADING:
            return "Loading alerts..."
        if self.state == LoadState.FAILED:
            return f"Error fetching alerts: {self.error_message}"
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "label": self.source.label,
            "state": self.state.value,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "inline_message": self.inline_message,
            "record_count": self.record_count,
            "attempts": self.attempts,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "duration_ms": self.duration_ms,
        }
