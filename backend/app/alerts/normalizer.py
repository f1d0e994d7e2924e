"""
normalizer.py — Map each feed's native record shape onto Alert.

Field mapping
=============

    Alert field   primary (SOS) path         secondary (emergency) path
    ───────────   ────────────────────────   ──────────────────────────
    message       message                    alert_message
    latitude      location.latitude          latitude
    longitude     location.longitude         longitude
    address       location.address           address
    timestamp     timestamp                  timestamp
    image         image                      —
    person        person                     name
    severity      severity                   severity

Record handling
===============
    - Missing optional fields become None.
    - Each field is extracted on its own; a field with the wrong type
      (RecordShapeError) becomes None without touching the other fields.
    - A record that is not a JSON object yields an Alert with every field
      absent. Nothing raised here ever aborts a batch.
    - Coordinates are parsed from numbers or numeric strings. A pair is kept
      only when both values are finite and in range; "abc", "", NaN or 91.0
      make the whole pair absent, never (0, 0).

Identity
========
Records carry no guaranteed id, and list position shifts between polls, so
an alert id is taken from an explicit ``id`` field when present and is
otherwise a digest of the canonical record JSON. Identical records within
one batch get an occurrence suffix (``-2``, ``-3`` …).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from backend.app.alerts.models import Alert, SourceKind
from backend.app.core.errors import RecordShapeError
from backend.app.spatial.radius_utils import Coordinate

logger = logging.getLogger(__name__)

FieldPath = Tuple[str, ...]

FIELD_MAP: Dict[SourceKind, Dict[str, FieldPath]] = {
    SourceKind.PRIMARY: {
        "message":   ("message",),
        "latitude":  ("location", "latitude"),
        "longitude": ("location", "longitude"),
        "address":   ("location", "address"),
        "timestamp": ("timestamp",),
        "image":     ("image",),
        "person":    ("person",),
        "severity":  ("severity",),
    },
    SourceKind.SECONDARY: {
        "message":   ("alert_message",),
        "latitude":  ("latitude",),
        "longitude": ("longitude",),
        "address":   ("address",),
        "timestamp": ("timestamp",),
        "person":    ("name",),
        "severity":  ("severity",),
    },
}

TEXT_FIELDS = ("message", "address", "timestamp", "person", "severity")


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def _lookup(record: Mapping[str, Any], path: FieldPath) -> Any:
    """Walk a dotted path; None when any step is missing."""
    node: Any = record
    for i, key in enumerate(path):
        if node is None:
            return None
        if not isinstance(node, Mapping):
            raise RecordShapeError(".".join(path[:i]), "expected an object")
        node = node.get(key)
    return node


def _text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise RecordShapeError(field, "expected text, got a boolean")
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    raise RecordShapeError(field, f"expected text, got {type(value).__name__}")


def parse_coordinate_value(value: Any, field: str) -> float:
    """Parse a latitude/longitude from a number or numeric string.

    Digit-group underscores (``"1_2.5"``) are rejected even though float()
    accepts them. Integers too large for a float make the value unusable.
    """
    if value is None or isinstance(value, bool):
        raise RecordShapeError(field, "missing coordinate")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise RecordShapeError(field, "empty coordinate")
        if "_" in value:
            raise RecordShapeError(field, f"not a number: {value!r}")
    if not isinstance(value, (str, int, float)):
        raise RecordShapeError(field, f"unsupported type {type(value).__name__}")
    try:
        number = float(value)
    except ValueError:
        raise RecordShapeError(field, f"not a number: {value!r}")
    except OverflowError:
        raise RecordShapeError(field, "too large for a float")
    if not math.isfinite(number):
        raise RecordShapeError(field, f"not finite: {value!r}")
    return number


def _coordinates(lat_raw: Any, lon_raw: Any) -> Optional[Coordinate]:
    if lat_raw is None and lon_raw is None:
        return None
    lat = parse_coordinate_value(lat_raw, "latitude")
    lon = parse_coordinate_value(lon_raw, "longitude")
    try:
        return Coordinate(lat, lon)
    except ValueError as e:
        raise RecordShapeError("coordinates", str(e))


def _image(value: Any) -> Optional[str]:
    text = _text(value, "image")
    if text is None:
        return None
    text = "".join(text.split())
    if not text:
        return None
    try:
        base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise RecordShapeError("image", "not valid base64")
    return text


def _extract(source_kind: SourceKind, raw: Any, field: str, fn, *paths: str) -> Any:
    """Run one field extractor; shape problems become None."""
    mapping = FIELD_MAP[source_kind]
    try:
        values = [_lookup(raw, mapping[p]) for p in paths]
        return fn(*values)
    except RecordShapeError as e:
        logger.debug(
            "Dropping %s on %s record: %s", field, source_kind.value, e.message,
            extra={"source": source_kind.value},
        )
        return None


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

def record_identity(raw: Any, source_kind: SourceKind) -> str:
    """Content-derived id for a raw record, prefixed with the feed kind."""
    if isinstance(raw, Mapping):
        explicit = raw.get("id")
        if isinstance(explicit, (str, int)) and not isinstance(explicit, bool) and str(explicit):
            return f"{source_kind.value}-{explicit}"
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:12]
    return f"{source_kind.value}-{digest}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize(
    raw: Any,
    source_kind: SourceKind,
    alert_id: Optional[str] = None,
) -> Alert:
    """
    Normalize one raw record into an Alert. Never raises for bad records.

    >>> a = normalize({"message": "SOS", "location": {"latitude": "12.9",
    ...                "longitude": "77.5"}}, SourceKind.PRIMARY)
    >>> a.coordinates.as_pair()
    [12.9, 77.5]
    """
    alert_id = alert_id or record_identity(raw, source_kind)

    if not isinstance(raw, Mapping):
        logger.debug(
            "Non-object %s record (%s); all fields absent",
            source_kind.value, type(raw).__name__,
            extra={"source": source_kind.value, "alert_id": alert_id},
        )
        return Alert(id=alert_id, source=source_kind)

    mapping = FIELD_MAP[source_kind]
    fields: Dict[str, Any] = {}
    for name in TEXT_FIELDS:
        if name in mapping:
            fields[name] = _extract(
                source_kind, raw, name, lambda v, n=name: _text(v, n), name,
            )

    fields["coordinates"] = _extract(
        source_kind, raw, "coordinates", _coordinates, "latitude", "longitude",
    )
    if "image" in mapping:
        fields["image"] = _extract(source_kind, raw, "image", _image, "image")

    return Alert(id=alert_id, source=source_kind, **fields)


def normalize_batch(records: Sequence[Any], source_kind: SourceKind) -> List[Alert]:
    """Normalize a feed response in server order, assigning unique ids."""
    seen: Dict[str, int] = {}
    alerts: List[Alert] = []
    for raw in records:
        base_id = record_identity(raw, source_kind)
        seen[base_id] = seen.get(base_id, 0) + 1
        alert_id = base_id if seen[base_id] == 1 else f"{base_id}-{seen[base_id]}"
        alerts.append(normalize(raw, source_kind, alert_id=alert_id))

    located = sum(1 for a in alerts if a.has_location)
    logger.debug(
        "Normalized %d %s records (%d with location)",
        len(alerts), source_kind.value, located,
        extra={"source": source_kind.value, "record_count": len(alerts)},
    )
    return alerts
