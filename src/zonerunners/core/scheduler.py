"""
Upgrade-queue scheduler and squad levelling.

Recalled runners wait in QUEUED until an upgrade slot opens. Slots grow
with squad level; admission is FIFO by queue-entry time, with weaker
runners first on ties so they catch up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from zonerunners.core.runner import PlayerRunner, RunnerState

if TYPE_CHECKING:
    from zonerunners.core.config import GameConfig
    from zonerunners.core.relics import RelicType


@dataclass
class SchedulerReport:
    admitted: list[str] = field(default_factory=list)
    finished: list[str] = field(default_factory=list)
    tier_ups: list[tuple[str, RelicType]] = field(default_factory=list)


def admission_order(runners: Iterable[PlayerRunner]) -> list[PlayerRunner]:
    queued = [r for r in runners if r.state == RunnerState.QUEUED]
    return sorted(queued, key=lambda r: (r.queue_entered_at, r.base_damage_rate, r.id))


def service_upgrades(
    runners: list[PlayerRunner],
    squad_level: int,
    dt: float,
    config: GameConfig,
) -> SchedulerReport:
    """Advance every UPGRADING runner, then fill free slots from the queue."""
    report = SchedulerReport()

    for r in runners:
        if r.state != RunnerState.UPGRADING:
            continue
        for relic in r.advance_upgrade(dt, config):
            report.tier_ups.append((r.id, relic))
        if r.state == RunnerState.READY:
            report.finished.append(r.id)

    slots = config.upgrade_slots(squad_level)
    busy = sum(1 for r in runners if r.state == RunnerState.UPGRADING)
    for r in admission_order(runners):
        if busy >= slots:
            break
        r.start_upgrading()
        report.admitted.append(r.id)
        busy += 1

    return report


def squad_level_for(total_recalls: int, config: GameConfig) -> int:
    """Highest squad level whose cumulative recall threshold is met."""
    level = 0
    while total_recalls >= config.recalls_for_squad_level(level + 1):
        level += 1
    return level


def crosses_squad_threshold(
    squad_level: int, total_recalls: int, config: GameConfig,
) -> bool:
    """True when ``total_recalls`` has reached the next level's threshold."""
    return total_recalls >= config.recalls_for_squad_level(squad_level + 1)
