"""
controller.py — Aggregation controller: owns both feeds and the view state.

═══════════════════════════════════════════════════════════════════════════
LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    mount ──start()──▶ two asyncio tasks, one per feed
                        │ primary ─▶ fetch ─▶ normalize ─▶ primary slot
                        │ secondary ─▶ fetch ─▶ normalize ─▶ secondary slot
                        ▼
                     each completion refreshes bounds (keyed, see bounds.py)

    reload()  ── new mount: selection/toggles/collections reset, both
                 feeds fetched again
                 (the viewport revision keeps increasing across mounts)
    close()   ── teardown

The two loads are unordered and never wait on each other. Each writes only
its own slot and its own SourceStatus, so one feed failing never hides the
other's data or error.

In-flight fetches are not cancelled. Every task remembers the mount
generation it was started for; a result that arrives after reload() or
close() is dropped instead of being written into the new (or torn-down)
mount.

All state lives on one event loop and is written only from this class, so
no locks are needed. The rendering layer reads it through snapshot().
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

from backend.app.alerts.models import Alert, LoadState, SourceKind, SourceStatus
from backend.app.alerts.normalizer import normalize_batch
from backend.app.alerts.source_client import FetchResult, SourceClient
from backend.app.core.config import Settings
from backend.app.core.errors import FetchError, NotFoundError
from backend.app.spatial.bounds import BoundingRegion, BoundsTracker
from backend.app.spatial.radius_utils import SafeZone
from backend.app.view.selection import SelectionState
from backend.app.view.toggles import ViewToggleState

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Read model
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DashboardSnapshot:
    """Immutable copy of the controller state for one render pass."""
    generation: int
    sources: Dict[SourceKind, SourceStatus]
    alerts: Dict[SourceKind, Tuple[Alert, ...]]
    bounds: Optional[BoundingRegion]
    viewport_revision: int
    selected: Optional[Alert]
    toggles: ViewToggleState
    safe_zones: Tuple[SafeZone, ...] = field(default_factory=tuple)

    @property
    def loading(self) -> bool:
        return any(s.is_loading for s in self.sources.values())

    @property
    def errors(self) -> Dict[SourceKind, str]:
        return {k: s.error_message or "" for k, s in self.sources.items() if s.failed}

    @property
    def show_emergency_banner(self) -> bool:
        return len(self.alerts[SourceKind.PRIMARY]) > 0

    def all_alerts(self) -> List[Alert]:
        return [a for kind in SourceKind for a in self.alerts[kind]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "loading": self.loading,
            "show_emergency_banner": self.show_emergency_banner,
            "sources": {k.value: s.to_dict() for k, s in self.sources.items()},
            "alerts": {
                k.value: [a.to_dict() for a in alerts]
                for k, alerts in self.alerts.items()
            },
            "bounds": self.bounds.to_dict() if self.bounds else None,
            "viewport_revision": self.viewport_revision,
            "selection": {
                "state": "selected" if self.selected else "unselected",
                "alert": self.selected.to_dict() if self.selected else None,
            },
            "toggles": self.toggles.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Controller
# ═══════════════════════════════════════════════════════════════════════════

def _load_safe_zones(settings: Settings) -> List[SafeZone]:
    zones: List[SafeZone] = []
    for entry in settings.SAFE_ZONES:
        try:
            zones.append(SafeZone.from_mapping(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring invalid SAFE_ZONES entry %r: %s", entry, e)
    return zones


def _unexpected_failure(kind: SourceKind, exc: Exception, attempts: int = 1) -> FetchResult:
    return FetchResult(
        source=kind, success=False,
        error=FetchError(kind.value, f"{type(exc).__name__}: {exc}"),
        attempts=attempts,
    )


class AggregationController:
    """
    Owns the two alert collections, their load status, the bounds, the
    selection and the view toggles.

    Usage:
        controller = AggregationController(settings)
        controller.start()          # inside a running event loop
        await controller.settle()   # optional: wait for both feeds
        snap = controller.snapshot()
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clients: Optional[Dict[SourceKind, SourceClient]] = None,
    ):
        self.settings = settings
        self._clients: Dict[SourceKind, SourceClient] = clients or {
            kind: SourceClient.from_settings(kind, settings, transport)
            for kind in SourceKind
        }
        self.safe_zones: Tuple[SafeZone, ...] = tuple(_load_safe_zones(settings))
        self._generation = 0
        self._closed = False
        self._tasks: Dict[SourceKind, asyncio.Task] = {}
        self._retired: Set[asyncio.Task] = set()
        self._bounds = BoundsTracker()
        self._mount()

    # ── mount / teardown ──

    def _mount(self) -> None:
        self._alerts: Dict[SourceKind, List[Alert]] = {k: [] for k in SourceKind}
        self._status: Dict[SourceKind, SourceStatus] = {
            k: SourceStatus(source=k, url=self._clients[k].url) for k in SourceKind
        }
        self._bounds.reset()
        self.selection = SelectionState()
        self.toggles = ViewToggleState()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Launch both feed loads once for the current mount."""
        if self._closed:
            raise RuntimeError("controller is closed")
        if self._tasks:
            return
        generation = self._generation
        for kind in SourceKind:
            self._tasks[kind] = asyncio.create_task(
                self._load(kind, generation),
                name=f"alert-feed-{kind.value}-g{generation}",
            )
        logger.info("Mount g%d: loading both alert feeds", generation)

    async def settle(self) -> None:
        """Wait until both loads of the current mount have finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values())

    async def reload(self) -> DashboardSnapshot:
        """Remount: drop in-flight results, reset view state, fetch again."""
        for task in self._tasks.values():
            if not task.done():
                self._retired.add(task)
                task.add_done_callback(self._retired.discard)
        self._generation += 1
        self._tasks = {}
        self._mount()
        self.start()
        await self.settle()
        return self.snapshot()

    async def close(self) -> None:
        """Teardown. In-flight fetches get a grace period and are discarded."""
        if self._closed:
            return
        self._closed = True
        pending = [t for t in (*self._tasks.values(), *self._retired) if not t.done()]
        if pending:
            _, still_pending = await asyncio.wait(
                pending, timeout=self.settings.SHUTDOWN_GRACE_SECONDS,
            )
            if still_pending:
                logger.warning(
                    "%d alert fetch(es) still in flight at shutdown", len(still_pending),
                )
        logger.info("Alert controller closed (g%d)", self._generation)

    # ── feed loading ──

    async def _load(self, kind: SourceKind, generation: int) -> None:
        client = self._clients[kind]
        try:
            result = await client.fetch()
        except Exception as e:
            logger.exception("Unexpected error loading %s feed", kind.value)
            result = _unexpected_failure(kind, e)

        if self._closed or generation != self._generation:
            logger.debug(
                "Discarding %s result from stale mount g%d", kind.value, generation,
                extra={"source": kind.value},
            )
            return
        self._store(kind, result)

    def _store(self, kind: SourceKind, result: FetchResult) -> None:
        status = self._status[kind]
        status.attempts = result.attempts
        status.duration_ms = result.duration_ms
        status.fetched_at = datetime.now(timezone.utc)

        if result.success:
            try:
                alerts = normalize_batch(result.records, kind)
            except Exception as e:
                logger.exception(
                    "Unexpected error normalizing %s feed", kind.value,
                    extra={"source": kind.value},
                )
                result = _unexpected_failure(kind, e, attempts=result.attempts)

        if result.success:
            self._alerts[kind] = alerts
            status.state = LoadState.READY
            status.record_count = len(self._alerts[kind])
            status.error_kind = None
            status.error_message = None
            if self._bounds.update(self.all_alerts()):
                logger.info(
                    "Viewport refit r%d after %s load",
                    self._bounds.revision, kind.value,
                    extra={"source": kind.value},
                )
        else:
            status.state = LoadState.FAILED
            status.error_kind = result.error_kind
            status.error_message = result.error_message
            status.record_count = 0

    # ── reads ──

    def alerts(self, kind: SourceKind) -> Tuple[Alert, ...]:
        return tuple(self._alerts[kind])

    def all_alerts(self) -> List[Alert]:
        return [a for kind in SourceKind for a in self._alerts[kind]]

    def status(self, kind: SourceKind) -> SourceStatus:
        return dataclasses.replace(self._status[kind])

    @property
    def bounds(self) -> Optional[BoundingRegion]:
        return self._bounds.region

    @property
    def viewport_revision(self) -> int:
        return self._bounds.revision

    def find_alert(self, alert_id: str) -> Alert:
        for alert in self.all_alerts():
            if alert.id == alert_id:
                return alert
        raise NotFoundError("Alert", alert_id=alert_id)

    def snapshot(self) -> DashboardSnapshot:
        return DashboardSnapshot(
            generation=self._generation,
            sources={k: self.status(k) for k in SourceKind},
            alerts={k: self.alerts(k) for k in SourceKind},
            bounds=self._bounds.region,
            viewport_revision=self._bounds.revision,
            selected=self.selection.selected,
            toggles=dataclasses.replace(self.toggles),
            safe_zones=self.safe_zones,
        )

    # ── interaction handlers ──

    def select(self, alert_id: str) -> Alert:
        """Table row or map marker click."""
        return self.selection.select(self.find_alert(alert_id))

    def show_table(self, kind: SourceKind) -> None:
        self.toggles.show_table(kind)

    def show_primary(self) -> None:
        self.toggles.show_primary()

    def show_secondary(self) -> None:
        self.toggles.show_secondary()

    def set_video(self, visible: bool) -> None:
        self.toggles.set_video(visible)

    def toggle_video(self) -> None:
        self.toggles.toggle_video()

    def report_video_failure(self, message: str) -> None:
        self.toggles.report_video_failure(message)
