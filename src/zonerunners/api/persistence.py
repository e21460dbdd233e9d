"""
SQLite-backed save persistence for Zone Runners.

Stores save metadata in columns for fast listing, and the full engine
state (runners, world, economy, construction) as a zlib-compressed JSON
blob. Every persisted field is read with its own default so older or
partial saves still load.

Persistence failures are logged as warnings and never crash the app;
the system degrades to in-memory-only operation.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import zlib
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import numpy as np

from zonerunners.core.combat import compute_barrier_health
from zonerunners.core.config import GameConfig
from zonerunners.core.construction import ConstructionSubsystem
from zonerunners.core.economy import EconomyLedger
from zonerunners.core.engine import EngineState
from zonerunners.core.map_topology import MapTopology
from zonerunners.core.relics import RELIC_TYPES, RelicType
from zonerunners.core.runner import (
    ConstructionCrew,
    PlayerRunner,
    Runner,
    RunnerState,
    UpgradeKind,
    UpgradeTask,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def _json_fallback(obj: Any) -> Any:
    """Handle numpy types, enums and sets."""
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _enum(cls: type[Enum], value: Any, default: Enum) -> Any:
    try:
        return cls(value)
    except ValueError:
        return default


def _relic_map(raw: Any, default: float, cast=float) -> dict[RelicType, Any]:
    """Relic-keyed dict with every type present; unknown keys dropped."""
    result = {t: cast(default) for t in RELIC_TYPES}
    for key, value in (raw or {}).items():
        if key in RelicType.__members__:
            result[RelicType(key)] = cast(value)
    return result


# ---------------------------------------------------------------------------
# Runner serialization
# ---------------------------------------------------------------------------

def serialize_task(task: UpgradeTask | None) -> dict[str, Any] | None:
    if task is None:
        return None
    return {
        "kind": task.kind.value,
        "relic_type": task.relic_type.value if task.relic_type else None,
        "total_amount": float(task.total_amount),
        "remaining": float(task.remaining),
        "rate": float(task.rate),
    }


def deserialize_task(d: dict[str, Any] | None, config: GameConfig) -> UpgradeTask | None:
    if not d:
        return None
    relic = d.get("relic_type")
    total = float(d.get("total_amount", d.get("remaining", 0.0)))
    task = UpgradeTask.create(
        _enum(UpgradeKind, d.get("kind"), UpgradeKind.DAMAGE),
        total,
        config,
        RelicType(relic) if relic in RelicType.__members__ else None,
    )
    task.remaining = float(d.get("remaining", total))
    task.rate = float(d.get("rate", task.rate))
    return task


def serialize_runner(runner: Runner) -> dict[str, Any]:
    """Convert a runner to a JSON-safe dict (full fidelity)."""
    d: dict[str, Any] = {
        # Identity
        "id": runner.id,
        "name": runner.name,
        "kind": "crew" if runner.is_construction_agent else "player",
        "state": runner.state.value,
        # Snapshot
        "damage_rate_snapshot": float(runner.damage_rate_snapshot),
        "relic_snapshot": {t.value: int(v) for t, v in runner.relic_snapshot.items()},
        # Run progress
        "global_level": int(runner.global_level),
        "wave": int(runner.wave),
        "barrier_health": float(runner.barrier_health),
        "segment_index": int(runner.segment_index),
        "step_in_segment": int(runner.step_in_segment),
        "run_damage_bonus": float(runner.run_damage_bonus),
    }
    if isinstance(runner, ConstructionCrew):
        d["target_zone"] = int(runner.target_zone)
        return d
    if not isinstance(runner, PlayerRunner):
        raise TypeError(f"Cannot serialize runner of type {type(runner).__name__}")

    d.update({
        # Permanent
        "base_damage_rate": float(runner.base_damage_rate),
        "relic_tiers": {t.value: int(v) for t, v in runner.relic_tiers.items()},
        "fragment_bank": {t.value: float(v) for t, v in runner.fragment_bank.items()},
        # Run collections
        "currency_collected": float(runner.currency_collected),
        "fragments_collected": {t.value: int(v) for t, v in runner.fragments_collected.items()},
        "durability": float(runner.durability),
        "applied_set_bonuses": sorted([z, s] for z, s in runner.applied_set_bonuses),
        "applied_zone_bonuses": sorted(runner.applied_zone_bonuses),
        "applied_road_bonuses": sorted(runner.applied_road_bonuses),
        # Upgrade pipeline
        "upgrade_queue": [serialize_task(t) for t in runner.upgrade_queue],
        "current_task": serialize_task(runner.current_task),
        "queue_entered_at": float(runner.queue_entered_at),
    })
    return d


def deserialize_runner(d: dict[str, Any], config: GameConfig) -> Runner:
    """Reconstruct a runner, defaulting every missing field."""
    common = {
        "id": d["id"],
        "name": d.get("name", d["id"]),
        "damage_rate_snapshot": float(d.get("damage_rate_snapshot", 0.0)),
        "relic_snapshot": _relic_map(d.get("relic_snapshot"), 0, int),
        "wave": int(d.get("wave", 1)),
        "barrier_health": float(d.get("barrier_health", 0.0)),
        "segment_index": int(d.get("segment_index", 0)),
        "step_in_segment": int(d.get("step_in_segment", 0)),
        "run_damage_bonus": float(d.get("run_damage_bonus", 0.0)),
        "state": _enum(RunnerState, d.get("state"), RunnerState.READY),
    }

    runner: Runner
    if d.get("kind") == "crew":
        runner = ConstructionCrew(target_zone=int(d.get("target_zone", 0)), **common)
        runner.state = RunnerState.RUNNING
    else:
        runner = PlayerRunner(
            **common,
            base_damage_rate=float(d.get("base_damage_rate", config.starting_damage_rate)),
            relic_tiers=_relic_map(d.get("relic_tiers"), 0, int),
            fragment_bank=_relic_map(d.get("fragment_bank"), 0.0, float),
            currency_collected=float(d.get("currency_collected", 0.0)),
            fragments_collected=_relic_map(d.get("fragments_collected"), 0, int),
            durability=float(d.get("durability", 0.0)),
            applied_set_bonuses={(int(z), int(s)) for z, s in d.get("applied_set_bonuses", [])},
            applied_zone_bonuses={int(z) for z in d.get("applied_zone_bonuses", [])},
            applied_road_bonuses={int(z) for z in d.get("applied_road_bonuses", [])},
            upgrade_queue=deque(
                t for t in (deserialize_task(td, config) for td in d.get("upgrade_queue", []))
                if t is not None
            ),
            current_task=deserialize_task(d.get("current_task"), config),
            queue_entered_at=float(d.get("queue_entered_at", 0.0)),
        )
        for relic, tier in runner.relic_tiers.items():
            runner.relic_tiers[relic] = max(0, min(tier, config.max_relic_tier))
        # A queued runner with nothing to do would never leave the queue
        if runner.state in (RunnerState.QUEUED, RunnerState.UPGRADING) and not runner.has_pending_upgrades:
            runner.state = RunnerState.READY

    runner.set_level(max(1, int(d.get("global_level", 1))), config)
    return runner


# ---------------------------------------------------------------------------
# Engine state serialization
# ---------------------------------------------------------------------------

def serialize_engine_state(state: EngineState) -> dict[str, Any]:
    """Convert the full engine state to a JSON-safe dict."""
    return {
        "runners": [serialize_runner(r) for r in state.runners],
        "squad_level": int(state.squad_level),
        "total_recalls": int(state.total_recalls),
        "highest_zone_reached": int(state.highest_zone_reached),
        "clock": float(state.clock),
        "tick": int(state.tick),
        "next_runner_id": int(state.next_runner_id),
        "topology": state.topology.to_dict(),
        "economy": state.economy.to_dict(),
        "construction": state.construction.to_dict(),
    }


def deserialize_engine_state(d: dict[str, Any], config: GameConfig) -> EngineState:
    """Reconstruct engine state from a serialized dict."""
    economy = EconomyLedger(config)
    economy.load_dict(d.get("economy") or {})
    construction = ConstructionSubsystem(config.dispatch_cooldown)
    construction.load_dict(d.get("construction") or {})

    records = d.get("runners") or []
    state = EngineState(
        economy=economy,
        construction=construction,
        topology=MapTopology.from_dict(d.get("topology") or {}),
        squad_level=int(d.get("squad_level", 0)),
        total_recalls=int(d.get("total_recalls", 0)),
        highest_zone_reached=int(d.get("highest_zone_reached", 0)),
        clock=float(d.get("clock", 0.0)),
        tick=int(d.get("tick", 0)),
        next_runner_id=int(d.get("next_runner_id", 0)),
    )
    # Never hand out an id that is already taken
    state.next_runner_id = max(state.next_runner_id, len(records))

    taken = {rd.get("id") for rd in records if isinstance(rd, dict)}
    for rd in records:
        runner = _load_runner_record(rd, state, config, taken)
        if runner is not None:
            state.runners.append(runner)

    _reconcile_crews(state)
    _refresh_barriers(state, config)
    return state


def _load_runner_record(
    rd: Any, state: EngineState, config: GameConfig, taken: set[Any],
) -> Runner | None:
    """Load one runner record; a bad record is skipped, not fatal."""
    if not isinstance(rd, dict):
        logger.warning("Skipping runner record of type %s", type(rd).__name__)
        return None
    if not rd.get("id"):
        prefix = "crew" if rd.get("kind") == "crew" else "runner"
        new_id = state.new_id(prefix)
        while new_id in taken:
            new_id = state.new_id(prefix)
        taken.add(new_id)
        rd = {**rd, "id": new_id}
        logger.warning("Runner record without id; assigned %s", rd["id"])
    try:
        return deserialize_runner(rd, config)
    except (ValueError, TypeError, KeyError, AttributeError):
        logger.warning("Skipping malformed runner record %s", rd["id"], exc_info=True)
        return None


def _reconcile_crews(state: EngineState) -> None:
    """Keep at most one crew, and only for the zone under construction."""
    target = state.construction.under_construction
    kept: ConstructionCrew | None = None
    for runner in list(state.runners):
        if not isinstance(runner, ConstructionCrew):
            continue
        if kept is None and runner.target_zone == target:
            kept = runner
        else:
            logger.warning("Dropping stray crew %s (zone %d)", runner.id, runner.target_zone + 1)
            state.runners.remove(runner)
    if target is not None and kept is None:
        state.construction.abandon_construction()


def _refresh_barriers(state: EngineState, config: GameConfig) -> None:
    """Give running entities with no barrier left a fresh one."""
    construction = state.construction
    for runner in state.runners:
        if runner.state == RunnerState.RUNNING and runner.barrier_health <= 0:
            runner.barrier_health = compute_barrier_health(
                runner.global_level,
                runner.wave,
                construction.roads_built,
                construction.active_hideouts,
                config,
            )


# ---------------------------------------------------------------------------
# State blob compress / decompress
# ---------------------------------------------------------------------------

def compress_state(state: dict[str, Any]) -> bytes:
    """Serialize state dict to zlib-compressed JSON bytes."""
    json_bytes = json.dumps(state, default=_json_fallback).encode("utf-8")
    return zlib.compress(json_bytes, level=6)


def decompress_state(blob: bytes) -> dict[str, Any]:
    """Decompress zlib blob and parse JSON."""
    json_bytes = zlib.decompress(blob)
    return json.loads(json_bytes.decode("utf-8"))


def build_state_blob(state: EngineState) -> bytes:
    """Build and compress the full engine state blob."""
    return compress_state(serialize_engine_state(state))


def restore_state(blob: bytes | None, config: GameConfig) -> EngineState | None:
    """Decompress and restore engine state from a blob.

    Returns ``None`` when there is no blob or it cannot be read; a
    corrupt save is treated as no save.
    """
    if not blob:
        return None
    try:
        raw = decompress_state(blob)
        if not isinstance(raw, dict):
            raise TypeError(f"State blob decoded to {type(raw).__name__}, expected dict")
        return deserialize_engine_state(raw, config)
    except (zlib.error, ValueError, TypeError, KeyError, AttributeError):
        logger.warning("Failed to restore saved state; starting fresh", exc_info=True)
        return None


# ---------------------------------------------------------------------------
# SQLite SaveStore
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS saves (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'created',
    tick INTEGER NOT NULL DEFAULT 0,
    clock REAL NOT NULL DEFAULT 0,
    squad_level INTEGER NOT NULL DEFAULT 0,
    runner_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    config_json TEXT NOT NULL,
    state_blob BLOB
);
"""


class SaveStore:
    """SQLite-backed storage for game saves.

    Thread-safety: uses ``check_same_thread=False`` so FastAPI's
    thread pool and session clock threads can access it. Writes are
    serialized by SQLite's internal locking.
    """

    def __init__(self, db_path: str = "data/zonerunners.db"):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _init_db(self) -> None:
        """Open connection and create table if needed."""
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except Exception:
            logger.warning(
                "Failed to open SQLite database at %s; "
                "falling back to in-memory only",
                self.db_path,
                exc_info=True,
            )
            self._conn = None

    @property
    def available(self) -> bool:
        """True if the database connection is open."""
        return self._conn is not None

    # ---- Write operations ----

    def save_game(
        self,
        game_id: str,
        name: str,
        status: str,
        state: EngineState,
        config: GameConfig,
    ) -> None:
        """Insert or replace a full save record."""
        if not self.available:
            return
        now = datetime.now(timezone.utc).isoformat()
        try:
            self._conn.execute(  # type: ignore[union-attr]
                """
                INSERT INTO saves
                    (id, name, status, tick, clock, squad_level, runner_count,
                     created_at, updated_at, config_json, state_blob)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    status = excluded.status,
                    tick = excluded.tick,
                    clock = excluded.clock,
                    squad_level = excluded.squad_level,
                    runner_count = excluded.runner_count,
                    updated_at = excluded.updated_at,
                    config_json = excluded.config_json,
                    state_blob = excluded.state_blob
                """,
                (
                    game_id, name, status,
                    int(state.tick), float(state.clock),
                    int(state.squad_level), len(state.players),
                    now, now,
                    config.to_json(),
                    build_state_blob(state),
                ),
            )
            self._conn.commit()  # type: ignore[union-attr]
        except Exception:
            logger.warning("Failed to save game %s to database", game_id, exc_info=True)

    def delete_game(self, game_id: str) -> None:
        """Remove a save from the database."""
        if not self.available:
            return
        try:
            self._conn.execute(  # type: ignore[union-attr]
                "DELETE FROM saves WHERE id = ?", (game_id,),
            )
            self._conn.commit()  # type: ignore[union-attr]
        except Exception:
            logger.warning("Failed to delete game %s from database", game_id, exc_info=True)

    # ---- Read operations ----

    def list_games(self) -> list[dict[str, Any]]:
        """Return metadata for all persisted saves (no state blob)."""
        if not self.available:
            return []
        try:
            cur = self._conn.execute(  # type: ignore[union-attr]
                """
                SELECT id, name, status, tick, clock, squad_level,
                       runner_count, created_at, updated_at
                FROM saves
                ORDER BY created_at DESC
                """,
            )
            return [
                {
                    "id": r[0],
                    "name": r[1],
                    "status": r[2],
                    "tick": r[3],
                    "clock": r[4],
                    "squad_level": r[5],
                    "runner_count": r[6],
                    "created_at": r[7],
                    "updated_at": r[8],
                }
                for r in cur.fetchall()
            ]
        except Exception:
            logger.warning("Failed to list games from database", exc_info=True)
            return []

    def load_game(self, game_id: str) -> dict[str, Any] | None:
        """Load a full save record (metadata + config + state blob).

        Returns ``None`` if not found or on error.
        """
        if not self.available:
            return None
        try:
            cur = self._conn.execute(  # type: ignore[union-attr]
                """
                SELECT id, name, status, tick, config_json, state_blob
                FROM saves WHERE id = ?
                """,
                (game_id,),
            )
            row = cur.fetchone()
            if row is None:
                return None
            return {
                "id": row[0],
                "name": row[1],
                "status": row[2],
                "tick": row[3],
                "config_json": row[4],
                "state_blob": row[5],
            }
        except Exception:
            logger.warning("Failed to load game %s from database", game_id, exc_info=True)
            return None

    def has_game(self, game_id: str) -> bool:
        """Check if a save exists in the database."""
        if not self.available:
            return False
        try:
            cur = self._conn.execute(  # type: ignore[union-attr]
                "SELECT 1 FROM saves WHERE id = ?", (game_id,),
            )
            return cur.fetchone() is not None
        except Exception:
            logger.warning("Failed to query game %s", game_id, exc_info=True)
            return False

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
