"""
Game presets: pre-configured rule sets.

Each preset returns a GameConfig tuned for a particular way of playing
or testing the idle loop.
"""

from __future__ import annotations

from zonerunners.core.config import GameConfig


def default() -> GameConfig:
    """Standard rules with default parameters."""
    return GameConfig(game_name="default")


def quick_start() -> GameConfig:
    """Bigger starting squad and cheaper recalls for short sessions."""
    return GameConfig(
        game_name="quick_start",
        initial_population=5,
        starting_damage_rate=25.0,
        base_capacity=10.0,
        squad_recall_step=5,
    )


def hard_barriers() -> GameConfig:
    """Steeper barrier growth and tougher bosses."""
    return GameConfig(
        game_name="hard_barriers",
        zone_exponent=1.8,
        level_exponent=1.35,
        boss_multiplier=80.0,
        zone_boss_multiplier=400.0,
    )


def lucky_scouts() -> GameConfig:
    """Map pieces and fragments drop far more often."""
    return GameConfig(
        game_name="lucky_scouts",
        piece_base_chance=0.25,
        piece_pity_step=10.0,
        fragment_base_chance=0.3,
    )


def fast_roads() -> GameConfig:
    """No crew cooldown and larger road discounts."""
    return GameConfig(
        game_name="fast_roads",
        dispatch_cooldown=0.0,
        road_reduction_per_zone=0.2,
    )


def seeded() -> GameConfig:
    """Default rules with a fixed seed, for reproducible runs."""
    return GameConfig(game_name="seeded", random_seed=42)


# Registry of all presets
PRESETS: dict[str, callable] = {
    "default": default,
    "quick_start": quick_start,
    "hard_barriers": hard_barriers,
    "lucky_scouts": lucky_scouts,
    "fast_roads": fast_roads,
    "seeded": seeded,
}


def get_preset(name: str) -> GameConfig:
    """Get a preset config by name."""
    if name not in PRESETS:
        raise KeyError(f"Unknown preset: '{name}'. Available: {list(PRESETS.keys())}")
    return PRESETS[name]()


def list_presets() -> list[str]:
    """Return list of available preset names."""
    return list(PRESETS.keys())
