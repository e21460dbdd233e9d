"""
Pydantic models for API request/response validation.
"""

from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Any


# === Sessions ===

class CreateSessionRequest(BaseModel):
    config: dict[str, Any] | None = None
    preset: str | None = None
    name: str | None = None


class StepRequest(BaseModel):
    n: int = Field(1, ge=1, le=10_000)
    dt: float | None = Field(None, gt=0)


class SessionSummary(BaseModel):
    id: str
    name: str
    status: str
    tick: int
    clock: float
    squad_level: int
    runner_count: int


class SessionResponse(SessionSummary):
    total_recalls: int
    highest_zone_reached: int
    upgrade_slots: int
    lifetime_currency: float
    config: dict[str, Any]


class StepResponse(BaseModel):
    session: SessionResponse
    reports: list[dict[str, Any]]


# === Runners ===

class RunnerSummaryResponse(BaseModel):
    id: str
    name: str
    kind: str
    state: str
    emoji: str
    zone: int
    level: int
    global_level: int
    wave: int
    base_damage_rate: float | None = None
    durability: float | None = None
    capacity: float | None = None


class RunnerDetailResponse(RunnerSummaryResponse):
    damage_rate_snapshot: float
    run_damage_bonus: float
    barrier_health: float
    segment_index: int
    step_in_segment: int
    relic_snapshot: dict[str, int]
    relic_tiers: dict[str, int] | None = None
    fragment_bank: dict[str, float] | None = None
    currency_collected: float | None = None
    fragments_collected: dict[str, int] | None = None
    current_task: dict[str, Any] | None = None
    upgrade_queue: list[dict[str, Any]] | None = None
    queue_entered_at: float | None = None
    target_zone: int | None = None


class UpgradeRelicRequest(BaseModel):
    relic_type: str


class CommandResponse(BaseModel):
    ok: bool
    count: int = 0


# === World ===

class TrackerEntryResponse(BaseModel):
    kind: str
    zone: int
    level: int
    global_level: int
    wave: int
    max_waves: int
    barrier_type: str
    barrier_health: float
    damage_rate: float
    seconds_to_clear: int | None
    member_ids: list[str]
    emojis: list[str]


class ZoneReportResponse(BaseModel):
    zone: int
    label: int
    pieces_found: int
    pieces_total: int
    set_counts: list[int]
    mapped: bool
    status: str
    has_road: bool
    roads_at_or_beyond: int
    runners: list[str]


class SegmentResponse(BaseModel):
    index: int
    pattern_index: int
    environment_index: int
    grid: list[list[str]]
    path: list[list[int]]
    visible: list[list[int]]
    runners: dict[str, list[int]]
