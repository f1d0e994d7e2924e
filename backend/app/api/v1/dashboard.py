"""
FastAPI route: Alert dashboard state and interactions.

Provides endpoints to:
    GET  /api/v1/dashboard                  — full render model
    GET  /api/v1/dashboard/sources          — per-feed load status
    GET  /api/v1/dashboard/tables/{source}  — table rows for one feed
    GET  /api/v1/dashboard/map              — markers + bounds for the main map
    GET  /api/v1/dashboard/detail-map       — selected alert + safe zones
    GET  /api/v1/dashboard/selection        — current selection
    POST /api/v1/dashboard/selection        — row / marker click
    POST /api/v1/dashboard/views/{source}   — show one alert table
    GET  /api/v1/dashboard/video            — live-video modal state
    PUT  /api/v1/dashboard/video            — open / close the modal
    POST /api/v1/dashboard/video/toggle     — the "Live" button
    POST /api/v1/dashboard/video/failure    — stream failed to load
    POST /api/v1/dashboard/reload           — remount and re-fetch both feeds

The controller and settings live on ``app.state`` and are injected per
request; handlers never reach for module globals.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from backend.app.alerts.controller import AggregationController
from backend.app.alerts.models import SourceKind
from backend.app.api.schemas import (
    SelectAlertRequest,
    SelectionOut,
    SourceStatusOut,
    TableOut,
    TogglesOut,
    VideoFailureRequest,
    VideoPanelOut,
    VideoVisibilityRequest,
)
from backend.app.core.config import Settings
from backend.app.core.errors import ValidationError
from backend.app.view import render

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_controller(request: Request) -> AggregationController:
    return request.app.state.controller


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _parse_source(source: str) -> SourceKind:
    try:
        return SourceKind(source.lower())
    except ValueError:
        valid = [k.value for k in SourceKind]
        raise ValidationError(
            f"Invalid source '{source}'. Must be one of: {valid}",
            field="source",
        )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("", summary="Full dashboard render model")
async def get_dashboard(
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    return render.dashboard_view(controller.snapshot(), settings)


@router.get("/sources", response_model=List[SourceStatusOut])
async def get_sources(controller: AggregationController = Depends(get_controller)):
    return [controller.status(kind).to_dict() for kind in SourceKind]


@router.get("/tables/{source}", response_model=TableOut)
async def get_table(
    source: str,
    controller: AggregationController = Depends(get_controller),
):
    return render.table_view(controller.snapshot(), _parse_source(source))


@router.get("/map", summary="Main map markers and viewport bounds")
async def get_map(
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    return render.main_map(controller.snapshot(), settings)


@router.get("/detail-map", summary="Selected alert and nearby safe zones")
async def get_detail_map(
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
) -> Optional[Dict[str, Any]]:
    return render.detail_map(controller.snapshot(), settings)


@router.get("/selection", response_model=SelectionOut)
async def get_selection(controller: AggregationController = Depends(get_controller)):
    return controller.selection.to_dict()


@router.get("/video", response_model=VideoPanelOut)
async def get_video(
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
):
    return render.video_panel(controller.snapshot(), settings)


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------

@router.post("/selection", response_model=SelectionOut)
async def select_alert(
    body: SelectAlertRequest,
    controller: AggregationController = Depends(get_controller),
):
    controller.select(body.alert_id)
    return controller.selection.to_dict()


@router.post("/views/{source}", response_model=TogglesOut)
async def show_table(
    source: str,
    controller: AggregationController = Depends(get_controller),
):
    controller.show_table(_parse_source(source))
    return controller.toggles.to_dict()


@router.put("/video", response_model=VideoPanelOut)
async def set_video(
    body: VideoVisibilityRequest,
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
):
    controller.set_video(body.visible)
    return render.video_panel(controller.snapshot(), settings)


@router.post("/video/toggle", response_model=VideoPanelOut)
async def toggle_video(
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
):
    controller.toggle_video()
    return render.video_panel(controller.snapshot(), settings)


@router.post("/video/failure", response_model=VideoPanelOut)
async def report_video_failure(
    body: VideoFailureRequest,
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
):
    controller.report_video_failure(body.message)
    return render.video_panel(controller.snapshot(), settings)


@router.post("/reload", summary="Remount: re-fetch both feeds and reset view state")
async def reload_dashboard(
    controller: AggregationController = Depends(get_controller),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    snapshot = await controller.reload()
    return render.dashboard_view(snapshot, settings)
