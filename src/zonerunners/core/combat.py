"""
Caravan combat rules.

Pure functions for barrier health and wave counts, plus grouping of
running entities into caravans. Runners on the same global level fight
one shared barrier; the caravan leader's barrier and wave are
authoritative.
"""

from __future__ import annotations

import math
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from zonerunners.core.relics import RelicType

if TYPE_CHECKING:
    from zonerunners.core.config import GameConfig
    from zonerunners.core.runner import Runner


def zone_of(global_level: int, config: GameConfig) -> int:
    return (global_level - 1) // config.levels_per_zone


def level_in_zone_of(global_level: int, config: GameConfig) -> int:
    return (global_level - 1) % config.levels_per_zone + 1


def _roads_at_or_beyond(zone: int, roads_built: Iterable[int]) -> int:
    return sum(1 for z in roads_built if z >= zone)


def waves_for_level(
    global_level: int, roads_built: Iterable[int], config: GameConfig,
) -> int:
    """Boss levels have one wave; roads shorten the grind elsewhere."""
    if global_level % config.levels_per_set == 0:
        return 1
    zone = zone_of(global_level, config)
    return max(1, config.waves_per_level - _roads_at_or_beyond(zone, roads_built))


def barrier_type(
    global_level: int, wave: int, roads_built: Iterable[int], config: GameConfig,
) -> str:
    """'' for a normal wave, 'BOSS' or 'ZONE BOSS' on a boss wave."""
    if wave < waves_for_level(global_level, roads_built, config):
        return ""
    level = level_in_zone_of(global_level, config)
    if level == config.levels_per_zone:
        return "ZONE BOSS"
    if level % config.levels_per_set == 0:
        return "BOSS"
    return ""


def compute_barrier_health(
    global_level: int,
    wave: int,
    roads_built: Collection[int],
    active_hideouts: Collection[int],
    config: GameConfig,
) -> float:
    """Barrier health for ``(global_level, wave)``.

    Deterministic in its arguments. Boss multipliers apply only on the
    last wave of a level; roads at or beyond the zone then shave boss
    waves down by a capped fraction.
    """
    zone = zone_of(global_level, config)
    level = level_in_zone_of(global_level, config)
    health = (
        config.base_barrier_health
        * (zone + 1) ** config.zone_exponent
        * level ** config.level_exponent
        * config.barrier_scale
    )

    final_wave = wave >= waves_for_level(global_level, roads_built, config)
    boss_wave = False
    if final_wave:
        if level == config.levels_per_zone:
            boss_wave = True
            if zone in active_hideouts:
                health *= config.hideout_boss_multiplier
            else:
                health *= config.zone_boss_multiplier
        elif level % config.levels_per_set == 0:
            boss_wave = True
            health *= config.boss_multiplier

    if boss_wave:
        reduction = min(
            config.max_road_reduction,
            config.road_reduction_per_zone * _roads_at_or_beyond(zone, roads_built),
        )
        health *= 1 - reduction

    return float(math.floor(health))


@dataclass
class Caravan:
    """Runners sharing one global level and one barrier."""

    global_level: int
    members: list[Runner] = field(default_factory=list)

    @property
    def leader(self) -> Runner:
        return choose_leader(self.members)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def has_crew(self) -> bool:
        return any(m.is_construction_agent for m in self.members)


def choose_leader(members: list[Runner]) -> Runner:
    """Construction crews lead; otherwise the highest STYLE snapshot.

    Ties keep population order.
    """
    for m in members:
        if m.is_construction_agent:
            return m
    return max(members, key=lambda m: m.snapshot_tier(RelicType.STYLE))


def group_caravans(runners: Iterable[Runner]) -> list[Caravan]:
    """Partition running entities by global level, furthest first."""
    groups: dict[int, Caravan] = {}
    for r in runners:
        caravan = groups.get(r.global_level)
        if caravan is None:
            caravan = groups[r.global_level] = Caravan(global_level=r.global_level)
        caravan.members.append(r)
    return sorted(groups.values(), key=lambda c: c.global_level, reverse=True)


def supply_ahead(global_level: int, runners: Iterable[Runner]) -> int:
    """Summed SUPPLY tier of runners strictly ahead of ``global_level``."""
    return sum(
        r.snapshot_tier(RelicType.SUPPLY)
        for r in runners
        if r.global_level > global_level
    )


def estimate_seconds_to_clear(damage_rate: float, health: float) -> int | None:
    """Whole seconds to deplete ``health``; None when no damage is dealt."""
    if damage_rate <= 0:
        return None
    return int(math.ceil(max(0.0, health) / damage_rate))
