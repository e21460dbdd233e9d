"""Tracker, zone and map segment endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from zonerunners.api.schemas import (
    SegmentResponse,
    TrackerEntryResponse,
    ZoneReportResponse,
)
from zonerunners.api.serializers import serialize_segment
from zonerunners.core.tracker import build_tracker, zone_report

router = APIRouter()


def _get_session(request: Request, session_id: str):
    mgr = request.app.state.session_manager
    try:
        return mgr.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")


@router.get("/{session_id}/tracker", response_model=list[TrackerEntryResponse])
def get_tracker(
    session_id: str,
    request: Request,
    limit: int = Query(20, ge=1, le=200),
) -> list[dict[str, Any]]:
    session = _get_session(request, session_id)
    with session.lock:
        return [e.to_dict() for e in build_tracker(session.engine, limit=limit)]


@router.get("/{session_id}/zones", response_model=list[ZoneReportResponse])
def list_zones(session_id: str, request: Request) -> list[dict[str, Any]]:
    """Report every zone up to the furthest one reached."""
    session = _get_session(request, session_id)
    engine = session.engine
    with session.lock:
        return [zone_report(engine, z) for z in range(engine.state.highest_zone_reached + 1)]


@router.get("/{session_id}/zones/{zone}", response_model=ZoneReportResponse)
def get_zone(session_id: str, zone: int, request: Request) -> dict[str, Any]:
    """Zone report by 1-based zone number."""
    if zone < 1:
        raise HTTPException(status_code=404, detail=f"Zone {zone} not found")
    session = _get_session(request, session_id)
    with session.lock:
        return zone_report(session.engine, zone - 1)


@router.get("/{session_id}/segments", response_model=list[SegmentResponse])
def list_segments(session_id: str, request: Request) -> list[dict[str, Any]]:
    session = _get_session(request, session_id)
    engine = session.engine
    with session.lock:
        return [serialize_segment(s, engine) for s in engine.topology.segments]


@router.get("/{session_id}/segments/{index}", response_model=SegmentResponse)
def get_segment(session_id: str, index: int, request: Request) -> dict[str, Any]:
    session = _get_session(request, session_id)
    engine = session.engine
    with session.lock:
        if not 0 <= index < len(engine.topology.segments):
            raise HTTPException(status_code=404, detail=f"Segment {index} not found")
        return serialize_segment(engine.topology.segments[index], engine)
