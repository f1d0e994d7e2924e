"""
test_controller.py — Tests for the aggregation controller.

Covers:
    • End-to-end scenarios (SOS-only data, one feed failing, bad latitude)
    • Per-source status independence and ordering
    • Stale-result discard on reload and close
    • Selection and toggle handling through the controller

Feeds are simulated with httpx.MockTransport; async code runs under
asyncio.run.

Run with:
    pytest tests/test_controller.py -v
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import httpx
import pytest
from pydantic import ValidationError

from backend.app.alerts.controller import AggregationController
from backend.app.alerts.models import LoadState, SourceKind
from backend.app.alerts.source_client import FetchResult, SourceClient
from backend.app.core.config import Settings
from backend.app.core.errors import NotFoundError
from backend.app.spatial.bounds import BoundingRegion
from backend.app.view import render

SOS_URL = "http://feeds.test/alerts"
EMERGENCY_URL = "http://feeds.test/getAlerts"

SOS_RECORD = {
    "message": "SOS",
    "location": {"latitude": "12.9", "longitude": "77.5"},
    "timestamp": "t1",
}
EMERGENCY_RECORD = {
    "name": "Ravi",
    "alert_message": "Flood",
    "latitude": 13.0827,
    "longitude": 80.2707,
}


def _settings(**overrides) -> Settings:
    values: Dict[str, Any] = {
        "SOS_ALERTS_URL": SOS_URL,
        "EMERGENCY_ALERTS_URL": EMERGENCY_URL,
        "SHUTDOWN_GRACE_SECONDS": 0.05,
    }
    values.update(overrides)
    return Settings(**values)


def _feeds(primary: Any = None, secondary: Any = None) -> httpx.MockTransport:
    """
    Transport serving both feeds. A list is returned as JSON, an int as that
    HTTP status, a str as a raw body.
    """
    def respond(body: Any) -> httpx.Response:
        if isinstance(body, int):
            return httpx.Response(body)
        if isinstance(body, str):
            return httpx.Response(200, text=body)
        return httpx.Response(200, json=body if body is not None else [])

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == SOS_URL:
            return respond(primary)
        return respond(secondary)

    return httpx.MockTransport(handler)


def _run(controller: AggregationController):
    async def go():
        controller.start()
        await controller.settle()
        return controller.snapshot()
    return asyncio.run(go())


# ═══════════════════════════════════════════════════════════════════════════
# Scenarios
# ═══════════════════════════════════════════════════════════════════════════

class TestScenarios:

    def test_single_sos_record(self):
        controller = AggregationController(
            _settings(), transport=_feeds(primary=[SOS_RECORD], secondary=[]),
        )
        snap = _run(controller)

        rows = render.table_rows(snap, SourceKind.PRIMARY)
        assert len(rows) == 1
        assert rows[0]["message"] == "SOS"

        markers = render.marker_requests(snap)
        assert len(markers) == 1
        assert markers[0].position == [12.9, 77.5]

        assert snap.bounds == BoundingRegion(12.9, 77.5, 12.9, 77.5)
        assert snap.show_emergency_banner is True
        assert snap.loading is False

    def test_primary_network_error_does_not_block_secondary(self):
        controller = AggregationController(
            _settings(), transport=_feeds(primary=503, secondary=[EMERGENCY_RECORD]),
        )
        snap = _run(controller)

        primary = snap.sources[SourceKind.PRIMARY]
        secondary = snap.sources[SourceKind.SECONDARY]
        assert primary.state == LoadState.FAILED
        assert primary.error_kind == "network_error"
        assert primary.inline_message.startswith("Error fetching alerts: ")
        assert secondary.state == LoadState.READY

        rows = render.table_rows(snap, SourceKind.SECONDARY)
        assert len(rows) == 1
        assert rows[0]["name"] == "Ravi"
        markers = render.marker_requests(snap)
        assert [m.position for m in markers] == [[13.0827, 80.2707]]
        assert snap.errors == {SourceKind.PRIMARY: primary.error_message}
        assert snap.show_emergency_banner is False

    def test_non_numeric_latitude(self):
        bad = {"message": "help", "location": {"latitude": "abc", "longitude": "77.5"}}
        controller = AggregationController(
            _settings(), transport=_feeds(primary=[bad], secondary=[]),
        )
        snap = _run(controller)

        (alert,) = snap.alerts[SourceKind.PRIMARY]
        assert alert.coordinates is None
        assert render.marker_requests(snap) == []
        assert snap.bounds is None
        rows = render.table_rows(snap, SourceKind.PRIMARY)
        assert rows[0]["latitude"] == "N/A"

    def test_both_fail_independently(self):
        controller = AggregationController(
            _settings(), transport=_feeds(primary="not json", secondary=500),
        )
        snap = _run(controller)
        assert snap.sources[SourceKind.PRIMARY].error_kind == "parse_error"
        assert snap.sources[SourceKind.SECONDARY].error_kind == "network_error"
        assert set(snap.errors) == {SourceKind.PRIMARY, SourceKind.SECONDARY}

    def test_bounds_cover_both_feeds(self):
        controller = AggregationController(
            _settings(),
            transport=_feeds(primary=[SOS_RECORD], secondary=[EMERGENCY_RECORD]),
        )
        snap = _run(controller)
        assert snap.bounds == BoundingRegion(12.9, 77.5, 13.0827, 80.2707)
        assert 1 <= snap.viewport_revision <= 2


# ═══════════════════════════════════════════════════════════════════════════
# Concurrency
# ═══════════════════════════════════════════════════════════════════════════

class _GatedClient(SourceClient):
    """Returns canned records once ``gate`` is set."""

    def __init__(self, source: SourceKind, records, gate: Optional[asyncio.Event] = None):
        super().__init__(source, f"http://gated.test/{source.value}")
        self._records = records
        self.gate = gate
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        call = self.calls
        if self.gate is not None and call == 1:
            await self.gate.wait()
        records = self._records(call) if callable(self._records) else self._records
        return FetchResult(source=self.source, success=True, records=records, attempts=1)


class _ExplodingClient(SourceClient):
    def __init__(self, source: SourceKind):
        super().__init__(source, "http://broken.test")

    async def fetch(self):
        raise RuntimeError("boom")


class TestConcurrency:

    def test_initial_status_is_loading(self):
        controller = AggregationController(_settings(), transport=_feeds())
        snap = controller.snapshot()
        assert snap.loading is True
        assert all(s.state == LoadState.LOADING for s in snap.sources.values())
        assert snap.selected is None
        assert snap.toggles.show_primary_table is True

    def test_secondary_can_finish_first(self):
        async def go():
            gate = asyncio.Event()
            controller = AggregationController(_settings(), clients={
                SourceKind.PRIMARY: _GatedClient(SourceKind.PRIMARY, [SOS_RECORD], gate),
                SourceKind.SECONDARY: _GatedClient(SourceKind.SECONDARY, [EMERGENCY_RECORD]),
            })
            controller.start()
            for _ in range(5):
                await asyncio.sleep(0)
            mid = controller.snapshot()
            gate.set()
            await controller.settle()
            return mid, controller.snapshot()

        mid, final = asyncio.run(go())
        assert mid.sources[SourceKind.PRIMARY].state == LoadState.LOADING
        assert mid.sources[SourceKind.SECONDARY].state == LoadState.READY
        assert len(mid.alerts[SourceKind.SECONDARY]) == 1
        assert mid.bounds == BoundingRegion(13.0827, 80.2707, 13.0827, 80.2707)
        assert final.sources[SourceKind.PRIMARY].state == LoadState.READY
        assert final.bounds == BoundingRegion(12.9, 77.5, 13.0827, 80.2707)

    def test_start_launches_once(self):
        async def go():
            primary = _GatedClient(SourceKind.PRIMARY, [])
            secondary = _GatedClient(SourceKind.SECONDARY, [])
            controller = AggregationController(_settings(), clients={
                SourceKind.PRIMARY: primary, SourceKind.SECONDARY: secondary,
            })
            controller.start()
            controller.start()
            await controller.settle()
            return primary.calls, secondary.calls

        assert asyncio.run(go()) == (1, 1)

    def test_reload_discards_stale_result(self):
        stale = {"message": "stale", "location": {"latitude": 1.0, "longitude": 1.0}}
        fresh = {"message": "fresh", "location": {"latitude": 2.0, "longitude": 2.0}}

        async def go():
            gate = asyncio.Event()
            primary = _GatedClient(
                SourceKind.PRIMARY, lambda call: [stale] if call == 1 else [fresh], gate,
            )
            controller = AggregationController(_settings(), clients={
                SourceKind.PRIMARY: primary,
                SourceKind.SECONDARY: _GatedClient(SourceKind.SECONDARY, []),
            })
            controller.start()
            await asyncio.sleep(0)
            await controller.reload()
            gate.set()
            for _ in range(5):
                await asyncio.sleep(0)
            alerts = controller.alerts(SourceKind.PRIMARY)
            await controller.close()
            return controller, alerts

        controller, alerts = asyncio.run(go())
        assert [a.message for a in alerts] == ["fresh"]
        assert controller.generation == 1

    def test_close_discards_in_flight_result(self):
        async def go():
            gate = asyncio.Event()
            controller = AggregationController(_settings(), clients={
                SourceKind.PRIMARY: _GatedClient(SourceKind.PRIMARY, [SOS_RECORD], gate),
                SourceKind.SECONDARY: _GatedClient(SourceKind.SECONDARY, []),
            })
            controller.start()
            await controller.close()
            gate.set()
            for _ in range(5):
                await asyncio.sleep(0)
            return controller

        controller = asyncio.run(go())
        assert controller.closed
        assert controller.status(SourceKind.PRIMARY).state == LoadState.LOADING
        assert controller.alerts(SourceKind.PRIMARY) == ()

    def test_start_after_close_rejected(self):
        async def go():
            controller = AggregationController(_settings(), transport=_feeds())
            await controller.close()
            controller.start()

        with pytest.raises(RuntimeError):
            asyncio.run(go())

    def test_unexpected_client_error_is_per_source(self):
        controller = AggregationController(_settings(), clients={
            SourceKind.PRIMARY: _ExplodingClient(SourceKind.PRIMARY),
            SourceKind.SECONDARY: _GatedClient(SourceKind.SECONDARY, [EMERGENCY_RECORD]),
        })
        snap = _run(controller)
        assert snap.sources[SourceKind.PRIMARY].state == LoadState.FAILED
        assert "boom" in snap.sources[SourceKind.PRIMARY].error_message
        assert snap.sources[SourceKind.SECONDARY].state == LoadState.READY


# ═══════════════════════════════════════════════════════════════════════════
# Interaction
# ═══════════════════════════════════════════════════════════════════════════

class TestInteraction:

    def _loaded(self) -> AggregationController:
        controller = AggregationController(
            _settings(),
            transport=_feeds(primary=[SOS_RECORD], secondary=[EMERGENCY_RECORD]),
        )
        _run(controller)
        return controller

    def test_select_then_reselect(self):
        controller = self._loaded()
        (a,) = controller.alerts(SourceKind.PRIMARY)
        (b,) = controller.alerts(SourceKind.SECONDARY)
        controller.select(a.id)
        controller.select(b.id)
        assert controller.snapshot().selected == b

    def test_unknown_alert(self):
        controller = self._loaded()
        with pytest.raises(NotFoundError):
            controller.select("primary-missing")
        assert controller.selection.selected is None

    def test_toggles_do_not_touch_data(self):
        controller = self._loaded()
        before = controller.snapshot()
        controller.show_secondary()
        controller.toggle_video()
        after = controller.snapshot()
        assert after.toggles.show_secondary_table is True
        assert after.toggles.show_primary_table is False
        assert after.toggles.show_video is True
        assert after.alerts == before.alerts
        assert after.viewport_revision == before.viewport_revision

    def test_snapshot_is_isolated_from_later_changes(self):
        controller = self._loaded()
        snap = controller.snapshot()
        controller.show_secondary()
        assert snap.toggles.show_primary_table is True

    def test_reload_resets_view_state(self):
        controller = self._loaded()
        (a,) = controller.alerts(SourceKind.PRIMARY)

        async def go():
            controller.select(a.id)
            controller.show_secondary()
            controller.set_video(True)
            return await controller.reload()

        snap = asyncio.run(go())
        assert snap.selected is None
        assert snap.toggles.show_primary_table is True
        assert snap.toggles.show_video is False
        assert snap.generation == 1
        assert len(snap.alerts[SourceKind.PRIMARY]) == 1

    def test_snapshot_serializes(self):
        controller = self._loaded()
        body = controller.snapshot().to_dict()
        json.dumps(body)
        assert body["sources"]["primary"]["state"] == "ready"
        assert body["bounds"]["corners"] == [[12.9, 77.5], [13.0827, 80.2707]]


class TestSafeZonesConfig:

    def test_invalid_entries_skipped(self):
        controller = AggregationController(_settings(SAFE_ZONES=[
            {"id": "z1", "name": "Stadium", "latitude": 12.97, "longitude": 77.59},
            {"name": "no id"},
            {"id": "z3", "latitude": "abc", "longitude": 1},
        ]), transport=_feeds())
        assert [z.id for z in controller.safe_zones] == ["z1"]

    @pytest.mark.parametrize("radius", [0, -5.0])
    def test_non_positive_radius_rejected_at_startup(self, radius):
        with pytest.raises(ValidationError):
            _settings(SAFE_ZONE_RADIUS_KM=radius)

    def test_positive_radius_accepted(self):
        assert _settings(SAFE_ZONE_RADIUS_KM=2.5).SAFE_ZONE_RADIUS_KM == 2.5


class TestMalformedFeedData:

    def test_huge_integer_latitude_keeps_feed_loading(self):
        huge = {**EMERGENCY_RECORD, "latitude": int("1" + "0" * 400)}
        controller = AggregationController(
            _settings(),
            transport=_feeds(primary=[SOS_RECORD], secondary=[huge, EMERGENCY_RECORD]),
        )
        snap = _run(controller)

        secondary = snap.sources[SourceKind.SECONDARY]
        assert secondary.state == LoadState.READY
        assert secondary.record_count == 2
        first, second = snap.alerts[SourceKind.SECONDARY]
        assert first.coordinates is None
        assert second.coordinates is not None
        assert snap.sources[SourceKind.PRIMARY].state == LoadState.READY

    def test_normalization_crash_fails_only_that_feed(self, monkeypatch):
        from backend.app.alerts import controller as controller_module
        real = controller_module.normalize_batch

        def flaky(records, kind):
            if kind == SourceKind.PRIMARY:
                raise OverflowError("int too large to convert to float")
            return real(records, kind)

        monkeypatch.setattr(controller_module, "normalize_batch", flaky)
        controller = AggregationController(
            _settings(),
            transport=_feeds(primary=[SOS_RECORD], secondary=[EMERGENCY_RECORD]),
        )
        snap = _run(controller)

        primary = snap.sources[SourceKind.PRIMARY]
        assert primary.state == LoadState.FAILED
        assert "OverflowError" in primary.error_message
        assert snap.alerts[SourceKind.PRIMARY] == ()
        assert snap.sources[SourceKind.SECONDARY].state == LoadState.READY
        assert snap.loading is False


class TestViewportRevision:

    def test_revision_increases_across_reload(self):
        controller = AggregationController(
            _settings(), transport=_feeds(primary=[SOS_RECORD], secondary=[]),
        )
        first = _run(controller)

        async def go():
            return await controller.reload()

        second = asyncio.run(go())
        assert first.viewport_revision == 1
        assert second.generation == 1
        assert second.bounds == first.bounds
        assert second.viewport_revision > first.viewport_revision
