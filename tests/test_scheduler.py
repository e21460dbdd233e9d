"""Tests for the upgrade-queue scheduler and squad levelling."""

import math

from zonerunners.core.config import GameConfig
from zonerunners.core.runner import PlayerRunner, RunnerState, UpgradeKind, UpgradeTask
from zonerunners.core.scheduler import (
    admission_order,
    crosses_squad_threshold,
    service_upgrades,
    squad_level_for,
)


def _make_config(**overrides) -> GameConfig:
    defaults = {"random_seed": 42}
    defaults.update(overrides)
    return GameConfig(**defaults)


def _queued(runner_id: str, amount: float, entered: float = 0.0, base: float = 10.0) -> PlayerRunner:
    c = _make_config()
    r = PlayerRunner(id=runner_id, name=runner_id, base_damage_rate=base)
    r.upgrade_queue.append(UpgradeTask.create(UpgradeKind.DAMAGE, amount, c))
    r.state = RunnerState.QUEUED
    r.queue_entered_at = entered
    return r


class TestAdmission:
    def test_order_by_entry_time_then_weakest(self):
        runners = [
            _queued("late", 5, entered=10.0, base=1.0),
            _queued("strong", 5, entered=0.0, base=50.0),
            _queued("weak", 5, entered=0.0, base=5.0),
        ]
        assert [r.id for r in admission_order(runners)] == ["weak", "strong", "late"]

    def test_single_slot_at_squad_zero(self):
        c = _make_config()
        runners = [_queued("a", 5), _queued("b", 5, entered=1.0)]
        report = service_upgrades(runners, squad_level=0, dt=1.0, config=c)
        assert report.admitted == ["a"]
        assert runners[0].state == RunnerState.UPGRADING
        assert runners[1].state == RunnerState.QUEUED

    def test_more_slots_at_higher_squad_level(self):
        c = _make_config()
        runners = [_queued(str(i), 5, entered=float(i)) for i in range(4)]
        report = service_upgrades(runners, squad_level=5, dt=1.0, config=c)
        assert len(report.admitted) == 2

    def test_admitted_runner_starts_next_tick(self):
        c = _make_config()
        r = _queued("a", 5)
        service_upgrades([r], squad_level=0, dt=1.0, config=c)
        assert r.base_damage_rate == 10.0
        service_upgrades([r], squad_level=0, dt=1.0, config=c)
        assert r.base_damage_rate == 11.0

    def test_never_exceeds_slots(self):
        c = _make_config()
        runners = [_queued(str(i), 50, entered=float(i)) for i in range(5)]
        for _ in range(30):
            service_upgrades(runners, squad_level=0, dt=1.0, config=c)
            assert sum(r.state == RunnerState.UPGRADING for r in runners) <= 1


class TestCurrencyTaskDuration:
    def test_250_currency_takes_ceil_250_over_3_ticks(self):
        c = _make_config()
        r = _queued("a", 250, base=0.0)
        service_upgrades([r], squad_level=0, dt=1.0, config=c)  # admission tick
        ticks = 0
        while r.state != RunnerState.READY:
            service_upgrades([r], squad_level=0, dt=1.0, config=c)
            ticks += 1
        assert ticks == math.ceil(250 / 3)
        assert r.base_damage_rate == 250.0

    def test_finished_runner_frees_slot(self):
        c = _make_config()
        a = _queued("a", 1)
        b = _queued("b", 1, entered=1.0)
        service_upgrades([a, b], 0, 1.0, c)
        report = service_upgrades([a, b], 0, 1.0, c)
        assert report.finished == ["a"]
        assert report.admitted == ["b"]


class TestSquadLevel:
    def test_thresholds(self):
        c = _make_config()
        assert squad_level_for(9, c) == 0
        assert squad_level_for(10, c) == 1
        assert squad_level_for(29, c) == 1
        assert squad_level_for(30, c) == 2
        assert squad_level_for(60, c) == 3

    def test_crosses_threshold(self):
        c = _make_config()
        assert not crosses_squad_threshold(0, 9, c)
        assert crosses_squad_threshold(0, 10, c)
        assert not crosses_squad_threshold(1, 10, c)
        assert crosses_squad_threshold(1, 30, c)
