"""Tests for the caravan tracker and zone reports."""

from zonerunners.core.config import GameConfig
from zonerunners.core.construction import ZoneStatus
from zonerunners.core.engine import ProgressionEngine
from zonerunners.core.runner import ConstructionCrew, RunnerState
from zonerunners.core.tracker import build_tracker, zone_report


def _engine() -> ProgressionEngine:
    engine = ProgressionEngine(GameConfig(random_seed=42))
    engine.send_all_runners()
    return engine


class TestTracker:
    def test_single_caravan(self):
        engine = _engine()
        entries = build_tracker(engine)
        assert len(entries) == 1
        e = entries[0]
        assert (e.kind, e.zone, e.level, e.wave) == ("caravan", 1, 1, 1)
        assert e.max_waves == 10
        assert e.barrier_health == 11.0
        assert e.damage_rate == 30.0
        assert e.seconds_to_clear == 1
        assert len(e.member_ids) == 3

    def test_furthest_first(self):
        engine = _engine()
        lead = engine.state.players[2]
        lead.set_level(150, engine.config)
        entries = build_tracker(engine)
        assert [e.global_level for e in entries] == [150, 1]
        assert entries[0].zone == 2
        assert entries[0].level == 50
        assert entries[0].member_ids == [lead.id]

    def test_limit(self):
        engine = _engine()
        for i, r in enumerate(engine.state.players):
            r.set_level(10 + i, engine.config)
        assert len(build_tracker(engine, limit=2)) == 2

    def test_crew_caravan_is_construction(self):
        engine = _engine()
        crew = ConstructionCrew(id="crew_x", name="Construction Team", state=RunnerState.RUNNING)
        crew.barrier_health = 11.0
        engine.state.runners.append(crew)
        entries = build_tracker(engine)
        assert entries[0].kind == "construction"
        assert "crew_x" in entries[0].member_ids

    def test_boss_label(self):
        engine = _engine()
        engine.state.players[0].set_level(100, engine.config)
        assert build_tracker(engine)[0].barrier_type == "ZONE BOSS"

    def test_empty_when_nobody_running(self):
        engine = ProgressionEngine(GameConfig(random_seed=1))
        assert build_tracker(engine) == []


class TestZoneReport:
    def test_fresh_zone(self):
        report = zone_report(_engine(), 0)
        assert report["label"] == 1
        assert report["pieces_found"] == 0
        assert report["set_counts"] == [0] * 10
        assert report["status"] == ZoneStatus.UNMAPPED.value
        assert not report["has_road"]
        assert len(report["runners"]) == 3

    def test_mapped_zone_with_road(self):
        engine = _engine()
        engine.economy.pieces(1)[:] = True
        engine.construction.roads_built.add(1)
        report = zone_report(engine, 1)
        assert report["mapped"]
        assert report["pieces_found"] == 100
        assert report["status"] == ZoneStatus.ROAD_BUILT.value
        assert report["has_road"]
        assert report["roads_at_or_beyond"] == 1
        assert report["runners"] == []
