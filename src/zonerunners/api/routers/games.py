"""Game session management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from zonerunners.api.schemas import (
    CreateSessionRequest,
    SessionResponse,
    SessionSummary,
    StepRequest,
    StepResponse,
)
from zonerunners.api.sessions import session_summary
from zonerunners.core.config import GameConfig
from zonerunners.experiment.presets import get_preset

router = APIRouter()


def _session_response(session) -> dict:
    state = session.engine.state
    return {
        **session_summary(session),
        "total_recalls": state.total_recalls,
        "highest_zone_reached": state.highest_zone_reached,
        "upgrade_slots": session.config.upgrade_slots(state.squad_level),
        "lifetime_currency": float(state.economy.lifetime_currency),
        "config": session.config.to_dict(),
    }


@router.post("/sessions", response_model=SessionResponse)
def create_session(req: CreateSessionRequest, request: Request):
    mgr = request.app.state.session_manager

    config = None
    if req.preset:
        try:
            config = get_preset(req.preset)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
    elif req.config:
        config = GameConfig.from_dict(req.config)

    session = mgr.create_session(config=config, name=req.name)
    return _session_response(session)


@router.get("/sessions", response_model=list[SessionSummary])
def list_sessions(request: Request):
    mgr = request.app.state.session_manager
    return mgr.list_sessions()


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: str, request: Request):
    mgr = request.app.state.session_manager
    try:
        session = mgr.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return _session_response(session)


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str, request: Request):
    mgr = request.app.state.session_manager
    try:
        mgr.delete_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"deleted": True}


@router.post("/sessions/{session_id}/step", response_model=StepResponse)
def step_session(session_id: str, req: StepRequest, request: Request):
    mgr = request.app.state.session_manager
    try:
        reports = mgr.step(session_id, req.n, req.dt)
        session = mgr.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {
        "session": _session_response(session),
        "reports": [r.to_dict() for r in reports],
    }


@router.post("/sessions/{session_id}/start", response_model=SessionResponse)
def start_clock(session_id: str, request: Request):
    mgr = request.app.state.session_manager
    try:
        session = mgr.start_clock(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return _session_response(session)


@router.post("/sessions/{session_id}/stop", response_model=SessionResponse)
def stop_clock(session_id: str, request: Request):
    mgr = request.app.state.session_manager
    try:
        session = mgr.stop_clock(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return _session_response(session)


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
def reset_session(session_id: str, request: Request):
    mgr = request.app.state.session_manager
    if mgr.is_running(session_id):
        raise HTTPException(status_code=409, detail="Cannot reset while running")
    try:
        session = mgr.reset_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return _session_response(session)
