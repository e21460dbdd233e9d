"""
Progression engine.

Owns the single mutable ``EngineState`` aggregate and advances it one
tick at a time. Phases per tick, in fixed order:

1. Caravan combat (grouping, damage, wave/level completion, rewards)
2. Recall checks (warp runners whose durability reached capacity)
3. Construction checks (hideout promotion, crew dispatch)
4. Upgrade-queue scheduler
5. Exploration marks and lazy segment generation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from zonerunners.core.combat import (
    Caravan,
    compute_barrier_health,
    group_caravans,
    level_in_zone_of,
    supply_ahead,
    waves_for_level,
    zone_of,
)
from zonerunners.core.config import GameConfig
from zonerunners.core.construction import ConstructionSubsystem, ZoneStatus
from zonerunners.core.economy import EconomyLedger
from zonerunners.core.map_topology import MapTopology
from zonerunners.core.relics import RelicType, relic_cost
from zonerunners.core.runner import (
    ConstructionCrew,
    PlayerRunner,
    Runner,
    RunnerState,
    UpgradeKind,
    UpgradeTask,
)
from zonerunners.core.scheduler import crosses_squad_threshold, service_upgrades

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tick report
# ---------------------------------------------------------------------------

@dataclass
class TickReport:
    """What happened during one tick."""
    tick: int
    clock: float
    waves_cleared: int = 0
    levels_completed: int = 0
    pieces_found: int = 0
    recalled: list[str] = field(default_factory=list)
    zones_mapped: list[int] = field(default_factory=list)
    hideouts_spawned: list[int] = field(default_factory=list)
    hideouts_cleared: list[int] = field(default_factory=list)
    crews_dispatched: list[int] = field(default_factory=list)
    roads_built: list[int] = field(default_factory=list)
    upgrades_admitted: list[str] = field(default_factory=list)
    upgrades_finished: list[str] = field(default_factory=list)
    squad_level_ups: int = 0
    runners_added: list[str] = field(default_factory=list)
    segments_added: int = 0

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


# ---------------------------------------------------------------------------
# Engine state aggregate
# ---------------------------------------------------------------------------

@dataclass
class EngineState:
    """Everything the engine mutates. Only ``ProgressionEngine`` writes it."""

    economy: EconomyLedger
    construction: ConstructionSubsystem
    topology: MapTopology = field(default_factory=MapTopology)
    runners: list[Runner] = field(default_factory=list)
    squad_level: int = 0
    total_recalls: int = 0
    highest_zone_reached: int = 0
    clock: float = 0.0
    tick: int = 0
    next_runner_id: int = 0

    @classmethod
    def empty(cls, config: GameConfig) -> EngineState:
        return cls(
            economy=EconomyLedger(config),
            construction=ConstructionSubsystem(config.dispatch_cooldown),
        )

    def new_id(self, prefix: str = "runner") -> str:
        self.next_runner_id += 1
        return f"{prefix}_{self.next_runner_id:06d}"

    @property
    def players(self) -> list[PlayerRunner]:
        return [r for r in self.runners if isinstance(r, PlayerRunner)]

    @property
    def crews(self) -> list[ConstructionCrew]:
        return [r for r in self.runners if isinstance(r, ConstructionCrew)]

    @property
    def running(self) -> list[Runner]:
        return [r for r in self.runners if r.state == RunnerState.RUNNING]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ProgressionEngine:
    """Tick-based orchestrator for runners, caravans, economy and roads."""

    def __init__(
        self,
        config: GameConfig | None = None,
        state: EngineState | None = None,
        rng: np.random.Generator | None = None,
    ):
        self.config = config or GameConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        if state is None:
            state = self._fresh_state()
        self.state = state
        self.state.topology.ensure_initial(self.rng)

    def _fresh_state(self) -> EngineState:
        state = EngineState.empty(self.config)
        for i in range(self.config.initial_population):
            state.runners.append(PlayerRunner(
                id=state.new_id(),
                name=f"Runner {i + 1}",
                base_damage_rate=self.config.starting_damage_rate,
            ))
        return state

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------
    @property
    def runners(self) -> list[Runner]:
        return self.state.runners

    @property
    def economy(self) -> EconomyLedger:
        return self.state.economy

    @property
    def construction(self) -> ConstructionSubsystem:
        return self.state.construction

    @property
    def topology(self) -> MapTopology:
        return self.state.topology

    def get_runner(self, runner_id: str) -> Runner | None:
        for r in self.state.runners:
            if r.id == runner_id:
                return r
        return None

    def barrier_health(self, global_level: int, wave: int) -> float:
        return compute_barrier_health(
            global_level, wave,
            self.construction.roads_built, self.construction.active_hideouts,
            self.config,
        )

    def waves_for(self, global_level: int) -> int:
        return waves_for_level(global_level, self.construction.roads_built, self.config)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def send_runner(self, runner_id: str) -> bool:
        """READY → RUNNING. Any other runner or state is a no-op."""
        runner = self.get_runner(runner_id)
        if not isinstance(runner, PlayerRunner) or runner.state != RunnerState.READY:
            return False
        runner.begin_run(self.config)
        runner.barrier_health = self.barrier_health(runner.global_level, runner.wave)
        self._apply_passage_bonuses(runner)
        logger.info("%s sent to zone 1", runner.name)
        return True

    def send_all_runners(self) -> int:
        """Send every READY runner. Returns how many left."""
        return sum(
            1 for r in list(self.state.players)
            if r.state == RunnerState.READY and self.send_runner(r.id)
        )

    def upgrade_relic_manually(self, runner_id: str, relic: RelicType | str) -> bool:
        """Spend banked fragments on a single tier-up, bypassing the queue."""
        runner = self.get_runner(runner_id)
        if not isinstance(runner, PlayerRunner):
            return False
        try:
            relic = RelicType(relic)
        except ValueError:
            return False
        tier = runner.relic_tiers.get(relic, 0)
        if tier >= self.config.max_relic_tier:
            return False
        cost = relic_cost(tier, self.config)
        if runner.fragment_bank.get(relic, 0.0) < cost:
            return False
        runner.fragment_bank[relic] -= cost
        runner.relic_tiers[relic] = tier + 1
        logger.info("%s upgraded %s to tier %d", runner.name, relic.value, tier + 1)
        return True

    def reset_progress(self) -> None:
        """Discard all engine state and start over."""
        self.state = self._fresh_state()
        self.state.topology.ensure_initial(self.rng)
        logger.info("Progress reset")

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def run(self, ticks: int, dt: float | None = None) -> list[TickReport]:
        return [self.tick(dt) for _ in range(ticks)]

    def tick(self, dt: float | None = None) -> TickReport:
        """Advance the world by one fixed step of ``dt`` seconds."""
        dt = self.config.tick_interval if dt is None else dt
        state = self.state
        state.tick += 1
        state.clock += dt
        report = TickReport(tick=state.tick, clock=state.clock)

        # === Phase 1: Caravan combat ===
        running = state.running
        for caravan in group_caravans(running):
            self._resolve_caravan(caravan, running, report)

        # === Phase 2: Recalls ===
        self._recall_runners(report)

        # === Phase 3: Construction & hideouts ===
        self._construction_checks(report)

        # === Phase 4: Upgrade queue ===
        sched = service_upgrades(state.players, state.squad_level, dt, self.config)
        report.upgrades_admitted = sched.admitted
        report.upgrades_finished = sched.finished

        # === Phase 5: Exploration & world generation ===
        furthest_segment = 0
        for r in state.running:
            self.topology.record_step(r.segment_index, r.step_in_segment)
            furthest_segment = max(furthest_segment, r.segment_index)
        report.segments_added = self.topology.ensure_ahead(furthest_segment, self.rng)

        return report

    # ------------------------------------------------------------------
    # Phase 1: combat
    # ------------------------------------------------------------------
    def caravan_damage_rate(self, caravan: Caravan, running: list[Runner]) -> float:
        """Summed effective damage of a caravan this tick."""
        cfg = self.config
        level = caravan.global_level
        zone = zone_of(level, cfg)
        set_index = (level_in_zone_of(level, cfg) - 1) // cfg.levels_per_set
        on_road = self.construction.has_road(zone)
        set_complete = self.economy.is_set_complete(zone, set_index)
        ahead = supply_ahead(level, running)
        return sum(
            m.effective_damage_rate(cfg, caravan.size, ahead, on_road, set_complete)
            for m in caravan.members
        )

    def _resolve_caravan(
        self, caravan: Caravan, running: list[Runner], report: TickReport,
    ) -> None:
        leader = caravan.leader
        leader.barrier_health -= self.caravan_damage_rate(caravan, running)

        if leader.barrier_health > 0:
            for m in caravan.members:
                m.barrier_health = leader.barrier_health
                m.wave = leader.wave
            return

        report.waves_cleared += 1
        leader.wave += 1
        if leader.wave > self.waves_for(leader.global_level):
            self._complete_level(caravan, leader, report)
        else:
            for m in caravan.members:
                m.wave = leader.wave

        health = self.barrier_health(leader.global_level, leader.wave)
        for m in caravan.members:
            m.barrier_health = health

    def _complete_level(self, caravan: Caravan, leader: Runner, report: TickReport) -> None:
        cfg = self.config
        state = self.state
        completed = leader.global_level
        zone = zone_of(completed, cfg)
        players = [m for m in caravan.members if isinstance(m, PlayerRunner)]

        if (
            level_in_zone_of(completed, cfg) == cfg.levels_per_zone
            and zone in self.construction.active_hideouts
        ):
            self.construction.on_hideout_cleared(zone)
            report.hideouts_cleared.append(zone)
            for m in players:
                self._grant_currency(m, cfg.hideout_reward, zone)

        new_level = completed + 1
        for m in caravan.members:
            m.set_level(new_level, cfg)
            m.wave = 1

        for m in players:
            self._reward_member(m, completed, report)
        report.levels_completed += 1

        # Each 10-level tile is one path step
        if (new_level - 1) % cfg.levels_per_set == 0:
            for m in caravan.members:
                m.segment_index, m.step_in_segment = self.topology.advance(
                    m.segment_index, m.step_in_segment,
                )

        for m in players:
            self._apply_passage_bonuses(m)

        if isinstance(leader, ConstructionCrew) and leader.finished_target(completed, cfg):
            if self.construction.on_road_built(leader.target_zone, state.clock):
                report.roads_built.append(leader.target_zone)
            state.runners.remove(leader)

        state.highest_zone_reached = max(state.highest_zone_reached, zone_of(new_level, cfg))

    def _reward_member(self, runner: PlayerRunner, completed: int, report: TickReport) -> None:
        cfg = self.config
        zone = zone_of(completed, cfg)
        roll = self.economy.roll_level_rewards(completed, runner.relic_snapshot, self.rng)

        if roll.piece_found:
            report.pieces_found += 1
        if roll.zone_mapped:
            report.zones_mapped.append(zone)
            status = self.construction.on_zone_mapped(zone, self._boss_level_occupied(zone))
            if status == ZoneStatus.ACTIVE_HIDEOUT:
                report.hideouts_spawned.append(zone)

        self._grant_currency(runner, roll.currency, zone)
        runner.currency_collected += roll.bonus_currency
        for relic in roll.fragments:
            runner.fragments_collected[relic] = runner.fragments_collected.get(relic, 0) + 1
        runner.run_damage_bonus += runner.level_gain(cfg)

    def _grant_currency(self, runner: PlayerRunner, amount: float, zone: int) -> None:
        if amount <= 0:
            return
        runner.currency_collected += amount
        # Road zones are free travel
        if not self.construction.has_road(zone):
            runner.durability += amount

    def _apply_passage_bonuses(self, runner: PlayerRunner) -> None:
        """Grant set/zone/road damage bonuses the first time a run passes through."""
        cfg = self.config
        zone = runner.zone_for(cfg)
        set_index = (runner.level_in_zone - 1) // cfg.levels_per_set
        bonuses = cfg.passage_bonuses

        key = (zone, set_index)
        if key not in runner.applied_set_bonuses and self.economy.is_set_complete(zone, set_index):
            runner.applied_set_bonuses.add(key)
            runner.run_damage_bonus += bonuses.get("set", 0.0)
        if zone not in runner.applied_zone_bonuses and self.economy.is_mapped(zone):
            runner.applied_zone_bonuses.add(zone)
            runner.run_damage_bonus += bonuses.get("zone", 0.0)
        if zone not in runner.applied_road_bonuses and self.construction.has_road(zone):
            runner.applied_road_bonuses.add(zone)
            runner.run_damage_bonus += bonuses.get("road", 0.0)

    def _boss_level_occupied(self, zone: int) -> bool:
        boss_level = (zone + 1) * self.config.levels_per_zone
        return any(
            r.global_level == boss_level
            for r in self.state.players
            if r.state == RunnerState.RUNNING
        )

    # ------------------------------------------------------------------
    # Phase 2: recalls
    # ------------------------------------------------------------------
    def _recall_runners(self, report: TickReport) -> None:
        state = self.state
        for runner in state.players:
            if not runner.should_recall(self.config):
                continue
            currency = runner.currency_collected
            fragments = dict(runner.fragments_collected)
            runner.recall(state.clock, self.config)
            self.economy.record_recall(currency, fragments)
            state.total_recalls += 1
            report.recalled.append(runner.id)
            logger.info("%s warped! +%d currency", runner.name, int(currency))

            if crosses_squad_threshold(state.squad_level, state.total_recalls, self.config):
                state.squad_level += 1
                report.squad_level_ups += 1
                logger.info("Squad reached level %d", state.squad_level)
                report.runners_added.extend(self._scale_population())

    def _scale_population(self) -> list[str]:
        """Add runners for a new squad level, queued behind a phantom upgrade."""
        state = self.state
        added: list[str] = []
        for _ in range(self.config.runners_per_squad_level):
            runner = PlayerRunner(
                id=state.new_id(),
                name=f"Runner {len(state.players) + 1}",
                base_damage_rate=0.0,
                state=RunnerState.QUEUED,
                queue_entered_at=state.clock,
            )
            runner.upgrade_queue.append(UpgradeTask.create(
                UpgradeKind.DAMAGE, self.config.starting_damage_rate, self.config,
            ))
            state.runners.append(runner)
            added.append(runner.id)
        return added

    # ------------------------------------------------------------------
    # Phase 3: construction
    # ------------------------------------------------------------------
    def _construction_checks(self, report: TickReport) -> None:
        cfg = self.config
        occupied = {
            zone_of(r.global_level, cfg)
            for r in self.state.players
            if r.state == RunnerState.RUNNING and r.level_in_zone == cfg.levels_per_zone
        }
        report.hideouts_spawned.extend(self.construction.promote_ready(occupied))

        target = self.construction.next_dispatch_target(self.state.clock)
        if target is not None:
            self._spawn_crew(target)
            report.crews_dispatched.append(target)

    def _spawn_crew(self, zone: int) -> ConstructionCrew:
        cfg = self.config
        self.construction.dispatch(zone)
        crew = ConstructionCrew(
            id=self.state.new_id("crew"),
            name="Construction Team",
            target_zone=zone,
            state=RunnerState.RUNNING,
        )
        crew.set_level(zone * cfg.levels_per_zone + 1, cfg)
        crew.wave = 1
        crew.barrier_health = self.barrier_health(crew.global_level, crew.wave)
        tiles_per_zone = cfg.levels_per_zone // cfg.levels_per_set
        crew.segment_index, crew.step_in_segment = self.topology.locate(
            zone * tiles_per_zone, self.rng,
        )
        self.state.runners.append(crew)
        return crew

    # ------------------------------------------------------------------
    # Views for the presentation layer
    # ------------------------------------------------------------------
    def runner_positions(self) -> dict[str, tuple[int, int]]:
        return {
            r.id: (r.segment_index, r.step_in_segment)
            for r in self.state.running
        }

    def furthest_segment(self) -> int:
        return max((r.segment_index for r in self.state.running), default=0)
