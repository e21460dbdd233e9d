"""
Runner entities for Zone Runners.

Two variants share one combat/movement surface:

* ``PlayerRunner`` cycles READY → RUNNING → QUEUED → UPGRADING → READY
  and carries permanent stats, relics and an upgrade-task queue.
* ``ConstructionCrew`` is dispatched to build a road through one target
  zone. It is never recalled and is removed once the road is done.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from zonerunners.core.relics import (
    CREW_EMOJI,
    RELIC_TYPES,
    RelicType,
    empty_relic_map,
    resolve_tier_ups,
    style_emoji,
)

if TYPE_CHECKING:
    from zonerunners.core.config import GameConfig


class RunnerState(str, Enum):
    """Lifecycle states of a player runner."""
    READY = "READY"
    RUNNING = "RUNNING"
    QUEUED = "QUEUED"
    UPGRADING = "UPGRADING"


class UpgradeKind(str, Enum):
    DAMAGE = "DAMAGE"
    RELIC = "RELIC"


@dataclass
class UpgradeTask:
    """A queued conversion of run gains into permanent stats."""

    kind: UpgradeKind
    total_amount: float
    remaining: float
    rate: float
    relic_type: RelicType | None = None

    @classmethod
    def create(
        cls, kind: UpgradeKind, amount: float, config: GameConfig,
        relic_type: RelicType | None = None,
    ) -> UpgradeTask:
        # Larger tasks drain proportionally faster
        rate = 1 + math.floor(amount * config.upgrade_rate_fraction)
        return cls(
            kind=kind, total_amount=float(amount), remaining=float(amount),
            rate=float(rate), relic_type=relic_type,
        )

    @property
    def done(self) -> bool:
        return self.remaining <= 0


@dataclass
class Runner:
    """State shared by every entity that walks the path and fights barriers."""

    id: str
    name: str

    # === Run snapshot (frozen at run start) ===
    damage_rate_snapshot: float = 0.0
    relic_snapshot: dict[RelicType, int] = field(default_factory=lambda: empty_relic_map(0))

    # === Run progress ===
    global_level: int = 1
    level_in_zone: int = 1
    wave: int = 1
    barrier_health: float = 0.0
    segment_index: int = 0
    step_in_segment: int = 0
    run_damage_bonus: float = 0.0

    state: RunnerState = RunnerState.READY

    @property
    def is_construction_agent(self) -> bool:
        return False

    @property
    def collects_rewards(self) -> bool:
        return True

    def zone_for(self, config: GameConfig) -> int:
        return (self.global_level - 1) // config.levels_per_zone

    def set_level(self, global_level: int, config: GameConfig) -> None:
        self.global_level = global_level
        self.level_in_zone = (global_level - 1) % config.levels_per_zone + 1

    def snapshot_tier(self, relic: RelicType) -> int:
        return int(self.relic_snapshot.get(relic, 0))

    def effective_damage_rate(
        self,
        config: GameConfig,
        caravan_size: int = 1,
        supply_ahead: int = 0,
        on_road: bool = False,
        set_complete: bool = False,
    ) -> float:
        raise NotImplementedError

    def capacity(self, config: GameConfig) -> float:
        raise NotImplementedError

    @property
    def emoji(self) -> str:
        raise NotImplementedError


@dataclass
class PlayerRunner(Runner):
    """A player-owned runner with permanent progression."""

    # === Permanent progression ===
    base_damage_rate: float = 0.0
    relic_tiers: dict[RelicType, int] = field(default_factory=lambda: empty_relic_map(0))
    fragment_bank: dict[RelicType, float] = field(default_factory=lambda: empty_relic_map(0.0))

    # === Run collections ===
    currency_collected: float = 0.0
    fragments_collected: dict[RelicType, int] = field(default_factory=lambda: empty_relic_map(0))
    durability: float = 0.0
    applied_set_bonuses: set[tuple[int, int]] = field(default_factory=set)
    applied_zone_bonuses: set[int] = field(default_factory=set)
    applied_road_bonuses: set[int] = field(default_factory=set)

    # === Upgrade pipeline ===
    upgrade_queue: deque[UpgradeTask] = field(default_factory=deque)
    current_task: UpgradeTask | None = None
    queue_entered_at: float = 0.0

    # ------------------------------------------------------------------
    # Combat surface
    # ------------------------------------------------------------------
    def effective_damage_rate(
        self,
        config: GameConfig,
        caravan_size: int = 1,
        supply_ahead: int = 0,
        on_road: bool = False,
        set_complete: bool = False,
    ) -> float:
        """Damage per second after caravan, convoy, road and map bonuses.

        ``supply_ahead`` is the summed SUPPLY tier of runners strictly
        ahead of this runner's caravan.
        """
        rate = self.damage_rate_snapshot + self.run_damage_bonus

        if caravan_size > 1:
            rate *= 1 + self.snapshot_tier(RelicType.SIDEKICK) * config.sidekick_bonus_per_tier
        if supply_ahead > 0:
            rate *= 1 + supply_ahead * config.supply_bonus_per_tier
        if on_road:
            rate *= 1 + self.snapshot_tier(RelicType.SPEED) * config.speed_bonus_per_tier
        if set_complete:
            rate += config.set_complete_flat_bonus
        return rate

    def capacity(self, config: GameConfig) -> float:
        style = self.snapshot_tier(RelicType.STYLE)
        return config.base_capacity + style * config.capacity_per_style_tier

    def level_gain(self, config: GameConfig) -> float:
        """Damage-rate gain for each completed level this run."""
        return config.level_gain_base + self.snapshot_tier(RelicType.STRENGTH) * config.level_gain_per_strength

    @property
    def emoji(self) -> str:
        return style_emoji(self.snapshot_tier(RelicType.STYLE))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def begin_run(self, config: GameConfig) -> None:
        """READY → RUNNING: snapshot stats and reset run progress."""
        self.state = RunnerState.RUNNING
        self.damage_rate_snapshot = self.base_damage_rate
        self.relic_snapshot = dict(self.relic_tiers)
        self.set_level(1, config)
        self.wave = 1
        self.segment_index = 0
        self.step_in_segment = 0
        self.run_damage_bonus = 0.0
        self.durability = 0.0
        self.currency_collected = 0.0
        self.fragments_collected = empty_relic_map(0)
        self.applied_set_bonuses = set()
        self.applied_zone_bonuses = set()
        self.applied_road_bonuses = set()

    def should_recall(self, config: GameConfig) -> bool:
        return self.state == RunnerState.RUNNING and self.durability >= self.capacity(config)

    def recall(self, clock: float, config: GameConfig) -> list[UpgradeTask]:
        """RUNNING → QUEUED (or READY when nothing was collected).

        Returns the upgrade tasks created from this run's gains.
        """
        tasks: list[UpgradeTask] = []
        if self.currency_collected > 0:
            tasks.append(UpgradeTask.create(UpgradeKind.DAMAGE, self.currency_collected, config))
        for relic in RELIC_TYPES:
            amount = self.fragments_collected.get(relic, 0)
            if amount > 0:
                tasks.append(UpgradeTask.create(UpgradeKind.RELIC, amount, config, relic))

        self.currency_collected = 0.0
        self.fragments_collected = empty_relic_map(0)
        self.durability = 0.0
        self.run_damage_bonus = 0.0

        if tasks:
            self.upgrade_queue.extend(tasks)
            self.state = RunnerState.QUEUED
            self.queue_entered_at = clock
        else:
            self.state = RunnerState.READY
        return tasks

    def start_upgrading(self) -> None:
        """QUEUED → UPGRADING with the head of the queue as current task."""
        self.state = RunnerState.UPGRADING
        if self.current_task is None and self.upgrade_queue:
            self.current_task = self.upgrade_queue.popleft()

    def advance_upgrade(self, dt: float, config: GameConfig) -> list[RelicType]:
        """Consume one tick of the current task.

        Returns relic types that gained at least one tier. Moves to READY
        once the queue is drained.
        """
        tiered: list[RelicType] = []
        task = self.current_task
        if task is not None:
            consumed = min(task.remaining, task.rate * dt)
            task.remaining -= consumed
            if task.kind == UpgradeKind.DAMAGE:
                self.base_damage_rate += consumed
            elif task.relic_type is not None:
                if self.apply_fragments(task.relic_type, consumed, config):
                    tiered.append(task.relic_type)
            if task.done:
                self.current_task = None

        if self.current_task is None:
            if self.upgrade_queue:
                self.current_task = self.upgrade_queue.popleft()
            else:
                self.state = RunnerState.READY
        return tiered

    def apply_fragments(self, relic: RelicType, amount: float, config: GameConfig) -> int:
        """Bank fragments and resolve tier-ups. Returns tiers gained."""
        before = self.relic_tiers.get(relic, 0)
        bank = self.fragment_bank.get(relic, 0.0) + amount
        tier, bank = resolve_tier_ups(before, bank, config)
        self.relic_tiers[relic] = tier
        self.fragment_bank[relic] = bank
        return tier - before

    @property
    def has_pending_upgrades(self) -> bool:
        return self.current_task is not None or bool(self.upgrade_queue)

    def __repr__(self) -> str:
        return (
            f"PlayerRunner(id={self.id!r}, name={self.name!r}, "
            f"state={self.state.value}, level={self.global_level}, "
            f"dps={self.base_damage_rate:.1f})"
        )


@dataclass
class ConstructionCrew(Runner):
    """Road-building crew bound to a single target zone."""

    target_zone: int = 0

    @property
    def is_construction_agent(self) -> bool:
        return True

    @property
    def collects_rewards(self) -> bool:
        return False

    def effective_damage_rate(
        self,
        config: GameConfig,
        caravan_size: int = 1,
        supply_ahead: int = 0,
        on_road: bool = False,
        set_complete: bool = False,
    ) -> float:
        return config.crew_damage_rate

    def capacity(self, config: GameConfig) -> float:
        return math.inf

    @property
    def emoji(self) -> str:
        return CREW_EMOJI

    def finished_target(self, completed_level: int, config: GameConfig) -> bool:
        """True once the crew has completed the last level of its zone."""
        return completed_level == (self.target_zone + 1) * config.levels_per_zone
