"""
Serializers for converting engine objects to JSON-safe view dicts.

Unlike ``persistence``, these shape data for the UI: rounded numbers,
1-based zone labels, derived values such as capacity and emoji.
"""

from __future__ import annotations

from typing import Any

from zonerunners.core.engine import ProgressionEngine
from zonerunners.core.map_topology import MapSegment
from zonerunners.core.runner import PlayerRunner, Runner, UpgradeTask


def _relics(m: dict) -> dict[str, Any]:
    return {t.value: v for t, v in m.items()}


def _task(task: UpgradeTask | None) -> dict[str, Any] | None:
    if task is None:
        return None
    return {
        "kind": task.kind.value,
        "relic_type": task.relic_type.value if task.relic_type else None,
        "total_amount": round(float(task.total_amount), 4),
        "remaining": round(float(task.remaining), 4),
        "rate": float(task.rate),
    }


def serialize_runner_summary(runner: Runner, engine: ProgressionEngine) -> dict[str, Any]:
    """Lightweight runner summary for list views."""
    cfg = engine.config
    is_player = isinstance(runner, PlayerRunner)
    return {
        "id": runner.id,
        "name": runner.name,
        "kind": "crew" if runner.is_construction_agent else "player",
        "state": runner.state.value,
        "emoji": runner.emoji,
        "zone": runner.zone_for(cfg) + 1,
        "level": runner.level_in_zone,
        "global_level": runner.global_level,
        "wave": runner.wave,
        "base_damage_rate": round(float(runner.base_damage_rate), 4) if is_player else None,
        "durability": round(float(runner.durability), 4) if is_player else None,
        "capacity": float(runner.capacity(cfg)) if is_player else None,
    }


def serialize_runner_detail(runner: Runner, engine: ProgressionEngine) -> dict[str, Any]:
    """Full runner detail for the detail panel."""
    detail = {
        **serialize_runner_summary(runner, engine),
        "damage_rate_snapshot": round(float(runner.damage_rate_snapshot), 4),
        "run_damage_bonus": round(float(runner.run_damage_bonus), 4),
        "barrier_health": float(runner.barrier_health),
        "segment_index": runner.segment_index,
        "step_in_segment": runner.step_in_segment,
        "relic_snapshot": _relics(runner.relic_snapshot),
    }
    if isinstance(runner, PlayerRunner):
        detail.update({
            "relic_tiers": _relics(runner.relic_tiers),
            "fragment_bank": {k: round(float(v), 4) for k, v in _relics(runner.fragment_bank).items()},
            "currency_collected": round(float(runner.currency_collected), 4),
            "fragments_collected": _relics(runner.fragments_collected),
            "current_task": _task(runner.current_task),
            "upgrade_queue": [_task(t) for t in runner.upgrade_queue],
            "queue_entered_at": float(runner.queue_entered_at),
        })
    else:
        detail["target_zone"] = runner.target_zone + 1  # type: ignore[attr-defined]
    return detail


def serialize_segment(
    segment: MapSegment, engine: ProgressionEngine,
) -> dict[str, Any]:
    """Segment grid plus its fog-of-war mask and runner markers."""
    topology = engine.topology
    visible = topology.visible_cells(segment.index, engine.furthest_segment())
    markers: dict[str, list[int]] = {}
    for runner_id, (seg, step) in engine.runner_positions().items():
        if seg == segment.index:
            coord = topology.coordinate(seg, step)
            if coord is not None:
                markers[runner_id] = list(coord)
    return {
        "index": segment.index,
        "pattern_index": segment.pattern_index,
        "environment_index": segment.environment_index,
        "grid": [list(row) for row in segment.grid],
        "path": [list(p) for p in segment.path],
        "visible": sorted([x, y] for x, y in visible),
        "runners": markers,
    }
