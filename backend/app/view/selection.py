"""
selection.py — The currently selected alert.

State machine
=============

    UNSELECTED ──select(a)──▶ SELECTED(a) ──select(b)──▶ SELECTED(b)

There is no transition back to UNSELECTED; the detail map simply stays
hidden until the first row or marker click. Only a remount (a fresh
SelectionState) clears it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

from backend.app.alerts.models import Alert

logger = logging.getLogger(__name__)


class SelectionPhase(str, Enum):
    UNSELECTED = "unselected"
    SELECTED   = "selected"


class SelectionState:
    """Holds at most one alert. Written only by the click handler."""

    def __init__(self) -> None:
        self._selected: Optional[Alert] = None

    @property
    def phase(self) -> SelectionPhase:
        if self._selected is None:
            return SelectionPhase.UNSELECTED
        return SelectionPhase.SELECTED

    @property
    def selected(self) -> Optional[Alert]:
        return self._selected

    def select(self, alert: Alert) -> Alert:
        """Row or marker click. Replaces any previous selection."""
        previous = self._selected
        self._selected = alert
        logger.debug(
            "Selected %s (was %s)", alert.id, previous.id if previous else None,
            extra={"alert_id": alert.id, "source": alert.source.value},
        )
        return alert

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.phase.value,
            "alert": self._selected.to_dict() if self._selected else None,
        }
