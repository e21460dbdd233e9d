"""Runner list, detail and command endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from zonerunners.api.schemas import (
    CommandResponse,
    RunnerDetailResponse,
    RunnerSummaryResponse,
    UpgradeRelicRequest,
)
from zonerunners.api.serializers import serialize_runner_detail, serialize_runner_summary

router = APIRouter()


def _get_session(request: Request, session_id: str):
    mgr = request.app.state.session_manager
    try:
        return mgr, mgr.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")


@router.get("/{session_id}", response_model=list[RunnerSummaryResponse])
def list_runners(
    session_id: str,
    request: Request,
    state: str | None = Query(None),
    include_crews: bool = Query(True),
) -> list[dict[str, Any]]:
    _, session = _get_session(request, session_id)
    engine = session.engine
    with session.lock:
        runners = list(engine.runners)
        if state is not None:
            runners = [r for r in runners if r.state.value == state.upper()]
        if not include_crews:
            runners = [r for r in runners if not r.is_construction_agent]
        return [serialize_runner_summary(r, engine) for r in runners]


@router.get("/{session_id}/{runner_id}", response_model=RunnerDetailResponse)
def get_runner(session_id: str, runner_id: str, request: Request) -> dict[str, Any]:
    _, session = _get_session(request, session_id)
    with session.lock:
        runner = session.engine.get_runner(runner_id)
        if runner is None:
            raise HTTPException(status_code=404, detail=f"Runner '{runner_id}' not found")
        return serialize_runner_detail(runner, session.engine)


@router.post("/{session_id}/send-all", response_model=CommandResponse)
def send_all_runners(session_id: str, request: Request):
    mgr, _ = _get_session(request, session_id)
    count = mgr.send_all_runners(session_id)
    return {"ok": count > 0, "count": count}


@router.post("/{session_id}/{runner_id}/send", response_model=CommandResponse)
def send_runner(session_id: str, runner_id: str, request: Request):
    mgr, session = _get_session(request, session_id)
    if session.engine.get_runner(runner_id) is None:
        raise HTTPException(status_code=404, detail=f"Runner '{runner_id}' not found")
    sent = mgr.send_runner(session_id, runner_id)
    return {"ok": sent, "count": int(sent)}


@router.post("/{session_id}/{runner_id}/upgrade", response_model=CommandResponse)
def upgrade_relic(
    session_id: str, runner_id: str, body: UpgradeRelicRequest, request: Request,
):
    mgr, session = _get_session(request, session_id)
    if session.engine.get_runner(runner_id) is None:
        raise HTTPException(status_code=404, detail=f"Runner '{runner_id}' not found")
    upgraded = mgr.upgrade_relic(session_id, runner_id, body.relic_type.upper())
    return {"ok": upgraded, "count": int(upgraded)}
