"""
Tracker: ranked view of everything currently on the path.

One entry per caravan (runners sharing a global level), ordered by
level then wave, furthest first. Also builds per-zone reports of map
progress and construction status.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from zonerunners.core.combat import (
    barrier_type,
    estimate_seconds_to_clear,
    group_caravans,
    level_in_zone_of,
    zone_of,
)

if TYPE_CHECKING:
    from zonerunners.core.engine import ProgressionEngine


@dataclass
class TrackerEntry:
    """One ranked caravan."""
    kind: str                      # "caravan" or "construction"
    zone: int                      # 1-based for display
    level: int                     # level within the zone
    global_level: int
    wave: int
    max_waves: int
    barrier_type: str
    barrier_health: float
    damage_rate: float
    seconds_to_clear: int | None
    member_ids: list[str] = field(default_factory=list)
    emojis: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_tracker(engine: ProgressionEngine, limit: int = 20) -> list[TrackerEntry]:
    """Rank the caravans on the path, furthest first."""
    cfg = engine.config
    roads = engine.construction.roads_built
    running = engine.state.running

    entries: list[TrackerEntry] = []
    for caravan in group_caravans(running):
        leader = caravan.leader
        rate = engine.caravan_damage_rate(caravan, running)
        entries.append(TrackerEntry(
            kind="construction" if caravan.has_crew else "caravan",
            zone=zone_of(caravan.global_level, cfg) + 1,
            level=level_in_zone_of(caravan.global_level, cfg),
            global_level=caravan.global_level,
            wave=leader.wave,
            max_waves=engine.waves_for(caravan.global_level),
            barrier_type=barrier_type(caravan.global_level, leader.wave, roads, cfg),
            barrier_health=float(leader.barrier_health),
            damage_rate=float(rate),
            seconds_to_clear=estimate_seconds_to_clear(rate, leader.barrier_health),
            member_ids=[m.id for m in caravan.members],
            emojis=[m.emoji for m in caravan.members],
        ))

    entries.sort(key=lambda e: (e.global_level, e.wave), reverse=True)
    return entries[:limit]


def zone_report(engine: ProgressionEngine, zone: int) -> dict[str, Any]:
    """Map and construction summary for one zone (0-based index)."""
    economy = engine.economy
    construction = engine.construction
    return {
        "zone": zone,
        "label": zone + 1,
        "pieces_found": economy.pieces_found(zone),
        "pieces_total": engine.config.pieces_per_zone,
        "set_counts": economy.set_counts(zone),
        "mapped": economy.is_mapped(zone),
        "status": construction.status(zone).value,
        "has_road": construction.has_road(zone),
        "roads_at_or_beyond": construction.roads_at_or_beyond(zone),
        "runners": sorted(
            r.id for r in engine.state.running
            if zone_of(r.global_level, engine.config) == zone
        ),
    }
