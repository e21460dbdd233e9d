#!/usr/bin/env python3
"""Run a headless Zone Runners game and print progress."""

from zonerunners.core.engine import ProgressionEngine
from zonerunners.core.tracker import build_tracker, zone_report
from zonerunners.experiment.presets import get_preset


def main():
    config = get_preset("seeded")
    ticks = 3600
    report_every = 300

    print(f"=== Zone Runners: {config.game_name} ===")
    print(f"Runners: {config.initial_population}")
    print(f"Starting damage rate: {config.starting_damage_rate}")
    print(f"Ticks: {ticks}")
    print()

    engine = ProgressionEngine(config)
    engine.send_all_runners()

    totals = {"levels": 0, "recalls": 0, "pieces": 0, "roads": 0}

    print(f"{'Tick':>6} {'Squad':>5} {'Run':>4} {'Up':>4} {'Best':>6} "
          f"{'Levels':>7} {'Recalls':>7} {'Pieces':>6} {'Roads':>5} {'Currency':>10}")
    print("-" * 72)

    for _ in range(ticks):
        # Idle player: anyone back from upgrading goes straight out again
        engine.send_all_runners()
        report = engine.tick()
        totals["levels"] += report.levels_completed
        totals["recalls"] += len(report.recalled)
        totals["pieces"] += report.pieces_found
        totals["roads"] += len(report.roads_built)

        if report.tick % report_every == 0:
            state = engine.state
            best = max((r.global_level for r in state.players), default=0)
            upgrading = sum(1 for r in state.players if r.state.value in ("QUEUED", "UPGRADING"))
            print(
                f"{report.tick:6d} {state.squad_level:5d} "
                f"{len(state.running):4d} {upgrading:4d} {best:6d} "
                f"{totals['levels']:7d} {totals['recalls']:7d} "
                f"{totals['pieces']:6d} {totals['roads']:5d} "
                f"{state.economy.lifetime_currency:10.1f}"
            )

    state = engine.state
    print()
    print(f"=== Final State (Tick {state.tick}) ===")
    print(f"Squad level: {state.squad_level}")
    print(f"Runners: {len(state.players)}")
    print(f"Total recalls: {state.total_recalls}")
    print(f"Highest zone reached: {state.highest_zone_reached + 1}")

    print("\nTracker:")
    for entry in build_tracker(engine, limit=5):
        label = f" [{entry.barrier_type}]" if entry.barrier_type else ""
        print(f"  Zone {entry.zone} Level {entry.level:3d} "
              f"Wave {entry.wave}/{entry.max_waves}{label} "
              f"{''.join(entry.emojis)}")

    print("\nZones:")
    for zone in range(state.highest_zone_reached + 1):
        z = zone_report(engine, zone)
        print(f"  Zone {z['label']}: {z['pieces_found']:3d}/{z['pieces_total']} pieces, "
              f"{z['status']}")

    print("\nRunners:")
    for r in state.players:
        print(f"  {r.name:10s} {r.state.value:9s} dmg {r.base_damage_rate:10.1f}  "
              f"level {r.global_level}")


if __name__ == "__main__":
    main()
