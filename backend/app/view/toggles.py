"""
toggles.py — Visibility of the alert tables and the live-video modal.

    Tables:  PRIMARY_VISIBLE ⇄ SECONDARY_VISIBLE   (exactly one shown)
    Video:   HIDDEN ⇄ VISIBLE                       (independent of tables)

Initial state is (PRIMARY_VISIBLE, HIDDEN). Every transition is a direct
user action; nothing here changes on its own when data arrives.

The video modal also carries the stream's load-failure message. Opening the
modal starts a fresh stream, so it clears any earlier failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from backend.app.alerts.models import SourceKind

logger = logging.getLogger(__name__)


@dataclass
class ViewToggleState:
    show_primary_table: bool = True
    show_secondary_table: bool = False
    show_video: bool = False
    video_error: Optional[str] = None

    @property
    def visible_table(self) -> SourceKind:
        return SourceKind.PRIMARY if self.show_primary_table else SourceKind.SECONDARY

    def show_primary(self) -> None:
        self.show_primary_table = True
        self.show_secondary_table = False

    def show_secondary(self) -> None:
        self.show_primary_table = False
        self.show_secondary_table = True

    def show_table(self, source: SourceKind) -> None:
        if source == SourceKind.PRIMARY:
            self.show_primary()
        else:
            self.show_secondary()

    def set_video(self, visible: bool) -> None:
        if visible and not self.show_video:
            self.video_error = None
        self.show_video = visible
        logger.debug("Video modal %s", "opened" if visible else "closed")

    def toggle_video(self) -> None:
        """The "Live" button."""
        self.set_video(not self.show_video)

    def close_video(self) -> None:
        """The modal's close button."""
        self.set_video(False)

    def report_video_failure(self, message: str = "Failed to load video feed") -> None:
        self.video_error = message
        logger.warning("Video feed failed: %s", message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "show_primary_table": self.show_primary_table,
            "show_secondary_table": self.show_secondary_table,
            "show_video": self.show_video,
            "video_error": self.video_error,
        }
