"""
Health check aggregation — deep health probe for the dashboard service.

Checks:
    • Each alert feed's load state for the current mount
    • Live-video feed configuration

A failed feed makes the service DEGRADED, never UNHEALTHY: the dashboard
is built to keep serving the other feed. UNHEALTHY is reserved for a closed
controller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.alerts.controller import AggregationController
from backend.app.alerts.models import LoadState, SourceKind

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    version: str
    environment: str
    status: HealthStatus = HealthStatus.HEALTHY
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def check_alert_feed(controller: AggregationController, kind: SourceKind) -> ComponentHealth:
    """Report one feed's load state."""
    status = controller.status(kind)
    comp = ComponentHealth(name=f"feed_{kind.value}")
    comp.latency_ms = float(status.duration_ms)
    comp.details = {
        "url": status.url,
        "state": status.state.value,
        "record_count": status.record_count,
    }

    if controller.closed:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Controller closed"
    elif status.state == LoadState.READY:
        comp.status = HealthStatus.HEALTHY
        comp.message = f"{status.record_count} alerts loaded"
    elif status.state == LoadState.LOADING:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Loading"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = status.error_message or "Fetch failed"
        comp.details["error_kind"] = status.error_kind
    return comp


def check_video_feed(controller: AggregationController) -> ComponentHealth:
    """The stream is rendered by the browser; only configuration is checked."""
    comp = ComponentHealth(name="video_feed")
    url = controller.settings.VIDEO_FEED_URL
    comp.details = {"url": url}
    if not url:
        comp.status = HealthStatus.DEGRADED
        comp.message = "VIDEO_FEED_URL not configured"
    else:
        comp.message = "Configured"
    if controller.toggles.video_error:
        comp.details["last_error"] = controller.toggles.video_error
    return comp


async def run_health_check(controller: AggregationController) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    settings = controller.settings
    report = HealthReport(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    for kind in SourceKind:
        report.components.append(check_alert_feed(controller, kind))
    report.components.append(check_video_feed(controller))

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    if report.status != HealthStatus.HEALTHY:
        failing = [c.name for c in report.components if c.status != HealthStatus.HEALTHY]
        logger.debug("Health %s: %s", report.status.value, failing)
    return report
