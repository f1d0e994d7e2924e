"""
test_render.py — Tests for the front-end read model.

Run with:
    pytest tests/test_render.py -v
"""

from __future__ import annotations

from typing import Optional, Sequence

import pytest

from backend.app.alerts.controller import DashboardSnapshot
from backend.app.alerts.models import Alert, LoadState, SourceKind, SourceStatus
from backend.app.core.config import Settings
from backend.app.spatial.bounds import compute_bounds
from backend.app.spatial.radius_utils import Coordinate, SafeZone
from backend.app.view import render
from backend.app.view.toggles import ViewToggleState

SETTINGS = Settings(
    SOS_ALERTS_URL="http://feeds.test/alerts",
    EMERGENCY_ALERTS_URL="http://feeds.test/getAlerts",
    VIDEO_FEED_URL="http://camera.test/feed",
)

ZONES = (
    SafeZone("near", "Community Hall", Coordinate(12.91, 77.51)),
    SafeZone("far", "Stadium", Coordinate(13.5, 78.5)),
)


def _alert(aid: str, source=SourceKind.PRIMARY, lat=None, lon=None, **kw) -> Alert:
    coords = Coordinate(lat, lon) if lat is not None else None
    return Alert(id=aid, source=source, coordinates=coords, **kw)


def _snapshot(
    primary: Sequence[Alert] = (),
    secondary: Sequence[Alert] = (),
    selected: Optional[Alert] = None,
    toggles: Optional[ViewToggleState] = None,
    zones=ZONES,
    primary_state: LoadState = LoadState.READY,
) -> DashboardSnapshot:
    alerts = {SourceKind.PRIMARY: tuple(primary), SourceKind.SECONDARY: tuple(secondary)}
    return DashboardSnapshot(
        generation=0,
        sources={
            SourceKind.PRIMARY: SourceStatus(SourceKind.PRIMARY, "a", state=primary_state),
            SourceKind.SECONDARY: SourceStatus(SourceKind.SECONDARY, "b", state=LoadState.READY),
        },
        alerts=alerts,
        bounds=compute_bounds([*primary, *secondary]),
        viewport_revision=1,
        selected=selected,
        toggles=toggles or ViewToggleState(),
        safe_zones=tuple(zones),
    )


class TestTables:

    def test_newest_first(self):
        snap = _snapshot(primary=[_alert("p1", message="first"), _alert("p2", message="second")])
        rows = render.table_rows(snap, SourceKind.PRIMARY)
        assert [r["message"] for r in rows] == ["second", "first"]

    def test_missing_location_is_na(self):
        rows = render.table_rows(_snapshot(primary=[_alert("p1")]), SourceKind.PRIMARY)
        assert rows[0]["latitude"] == "N/A"
        assert rows[0]["longitude"] == "N/A"
        assert rows[0]["address"] == "N/A"

    def test_image_becomes_data_uri(self):
        rows = render.table_rows(_snapshot(primary=[_alert("p1", image="aGVsbG8=")]), SourceKind.PRIMARY)
        assert rows[0]["image"] == "data:image/jpeg;base64,aGVsbG8="

    def test_secondary_columns(self):
        alert = _alert("s1", SourceKind.SECONDARY, 1.0, 2.0, person="Ravi", message="Fire")
        (row,) = render.table_rows(_snapshot(secondary=[alert]), SourceKind.SECONDARY)
        assert row == {
            "alert_id": "s1", "name": "Ravi", "message": "Fire",
            "latitude": 1.0, "longitude": 2.0,
        }

    def test_table_view_visibility_and_inline_message(self):
        snap = _snapshot(primary_state=LoadState.LOADING)
        primary = render.table_view(snap, SourceKind.PRIMARY)
        secondary = render.table_view(snap, SourceKind.SECONDARY)
        assert primary["visible"] is True
        assert primary["inline_message"] == "Loading alerts..."
        assert secondary["visible"] is False
        assert secondary["inline_message"] is None


class TestMainMap:

    def test_only_located_alerts_get_markers(self):
        snap = _snapshot(
            primary=[_alert("p1", lat=12.9, lon=77.5, message="SOS"), _alert("p2")],
            secondary=[_alert("s1", SourceKind.SECONDARY, 13.0, 80.0, person="Ravi")],
        )
        markers = render.marker_requests(snap)
        assert [m.alert_id for m in markers] == ["p1", "s1"]
        assert all(m.icon == render.MarkerIcon.ALERT for m in markers)

    def test_popups(self):
        snap = _snapshot(
            primary=[_alert("p1", lat=12.9, lon=77.5, message="SOS")],
            secondary=[_alert("s1", SourceKind.SECONDARY, 13.0, 80.0, message="Fire")],
        )
        p, s = render.marker_requests(snap)
        assert p.popup_title == "SOS"
        assert p.popup_lines == ["Address: N/A", "Latitude: 12.9", "Longitude: 77.5"]
        assert s.popup_title == "Name: N/A"
        assert s.popup_lines[0] == "Message: Fire"

    def test_main_map_defaults(self):
        view = render.main_map(_snapshot(), SETTINGS)
        assert view["center"] == [12.963829, 77.505777]
        assert view["zoom"] == 13
        assert view["bounds"] is None
        assert view["markers"] == []


class TestDetailMap:

    def test_none_until_selected(self):
        assert render.detail_map(_snapshot(), SETTINGS) is None

    def test_none_for_unlocated_selection(self):
        alert = _alert("p1")
        assert render.detail_map(_snapshot(primary=[alert], selected=alert), SETTINGS) is None

    def test_high_severity_icon(self):
        alert = _alert("p1", lat=12.9, lon=77.5, severity="high", address="MG Road")
        view = render.detail_map(_snapshot(primary=[alert], selected=alert), SETTINGS)
        assert view["center"] == [12.9, 77.5]
        marker = view["alert_marker"]
        assert marker["icon"] == "blinking-marker"
        assert marker["popup"]["title"] == "MG Road"
        assert marker["popup"]["lines"] == ["Unknown Person", "Severity: HIGH"]

    def test_default_icon_and_fallbacks(self):
        alert = _alert("p1", lat=12.9, lon=77.5)
        marker = render.detail_map(_snapshot(primary=[alert], selected=alert), SETTINGS)["alert_marker"]
        assert marker["icon"] == "default"
        assert marker["popup"]["title"] == "Unknown Location"
        assert marker["popup"]["lines"][1] == "Severity: UNKNOWN"

    def test_all_zones_without_radius(self):
        alert = _alert("p1", lat=12.9, lon=77.5)
        view = render.detail_map(_snapshot(primary=[alert], selected=alert), SETTINGS)
        assert [z["id"] for z in view["safe_zones"]] == ["near", "far"]
        assert view["safe_zone_markers"][0]["popup"]["lines"] == ["This is a safe zone."]

    def test_radius_filters_zones(self):
        settings = SETTINGS.model_copy(update={"SAFE_ZONE_RADIUS_KM": 10.0})
        alert = _alert("p1", lat=12.9, lon=77.5)
        view = render.detail_map(_snapshot(primary=[alert], selected=alert), settings)
        assert [z["id"] for z in view["safe_zones"]] == ["near"]
        assert view["safe_zones"][0]["distance_km"] < 10.0


class TestVideoPanel:

    @pytest.mark.parametrize("visible,label", [(False, "🔴 Live"), (True, "🔴 Live(Hide) ")])
    def test_button_label(self, visible, label):
        toggles = ViewToggleState(show_video=visible)
        assert render.video_panel(_snapshot(toggles=toggles), SETTINGS)["button_label"] == label

    def test_url_only_when_visible(self):
        closed = render.video_panel(_snapshot(), SETTINGS)
        opened = render.video_panel(_snapshot(toggles=ViewToggleState(show_video=True)), SETTINGS)
        assert closed["url"] is None
        assert opened["url"] == "http://camera.test/feed"

    def test_failure_message(self):
        toggles = ViewToggleState(show_video=True)
        toggles.report_video_failure("Failed to load video feed")
        assert render.video_panel(_snapshot(toggles=toggles), SETTINGS)["error"] == "Failed to load video feed"


class TestDashboardView:

    def test_banner_follows_primary_collection(self):
        assert render.dashboard_view(_snapshot(), SETTINGS)["show_emergency_banner"] is False
        view = render.dashboard_view(_snapshot(primary=[_alert("p1")]), SETTINGS)
        assert view["show_emergency_banner"] is True
        assert view["detail_map"] is None
        assert set(view["tables"]) == {"primary", "secondary"}
