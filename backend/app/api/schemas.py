"""
Pydantic schemas for the dashboard API.

Request bodies for the interaction endpoints and response models for the
read endpoints. The dicts built in view/render.py are validated against
these on the way out.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class SelectAlertRequest(BaseModel):
    """Row or marker click."""
    alert_id: str = Field(
        ..., min_length=1,
        description="Alert id as returned in table rows and markers",
        examples=["primary-3f9a0c1d2e4b"],
    )

    @field_validator("alert_id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("alert_id must not be blank")
        return v


class VideoVisibilityRequest(BaseModel):
    """Open or close the live-video modal."""
    visible: bool = Field(..., examples=[True])


class VideoFailureRequest(BaseModel):
    """Load-failure signal from the video capability."""
    message: str = Field(
        "Failed to load video feed",
        max_length=500,
        examples=["Failed to load video feed"],
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class SourceStatusOut(BaseModel):
    source: str
    label: str
    state: str = Field(..., description="loading | ready | failed")
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    inline_message: Optional[str] = None
    record_count: int = 0
    attempts: int = 0
    fetched_at: Optional[str] = None
    duration_ms: int = 0


class AlertOut(BaseModel):
    id: str
    source: str
    message: Optional[str] = None
    coords: Optional[List[float]] = None
    address: Optional[str] = None
    timestamp: Optional[str] = None
    has_image: bool = False
    person: Optional[str] = None
    severity: Optional[str] = None


class SelectionOut(BaseModel):
    state: str = Field(..., description="unselected | selected")
    alert: Optional[AlertOut] = None


class TogglesOut(BaseModel):
    show_primary_table: bool
    show_secondary_table: bool
    show_video: bool
    video_error: Optional[str] = None


class VideoPanelOut(BaseModel):
    visible: bool
    button_label: str
    title: str
    url: Optional[str] = None
    error: Optional[str] = None


class TableOut(BaseModel):
    source: str
    label: str
    visible: bool
    state: str
    inline_message: Optional[str] = None
    rows: List[Dict[str, Any]]
