"""
Master configuration for Zone Runners.

ALL tunable parameters live here. Nothing in the engine is hardcoded.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class GameConfig:
    """
    Master configuration holding every designer-chosen constant.

    Use ``to_dict()`` / ``from_dict()`` for serialization and comparison.
    """

    # === Identity ===
    game_name: str = "default"
    random_seed: int | None = None

    # === Timing (seconds) ===
    tick_interval: float = 1.0
    save_interval: float = 60.0

    # === World layout ===
    levels_per_zone: int = 100
    levels_per_set: int = 10
    waves_per_level: int = 10

    # === Barrier ===
    base_barrier_health: float = 10.0
    zone_exponent: float = 1.5
    level_exponent: float = 1.2
    barrier_scale: float = 1.1
    boss_multiplier: float = 50.0
    zone_boss_multiplier: float = 250.0
    hideout_boss_multiplier: float = 1000.0
    road_reduction_per_zone: float = 0.10
    max_road_reduction: float = 0.90

    # === Population ===
    initial_population: int = 3
    starting_damage_rate: float = 10.0
    runners_per_squad_level: int = 1
    squad_recall_step: int = 10           # recalls for level L = sum(step * i, i=1..L)
    upgrade_slots_base: int = 1
    squad_levels_per_upgrade_slot: int = 5

    # === Recall ===
    base_capacity: float = 20.0
    capacity_per_style_tier: float = 4.0

    # === Upgrade tasks ===
    upgrade_rate_fraction: float = 0.01

    # === Relics ===
    max_relic_tier: int = 20
    relic_cost_base: float = 10.0
    relic_cost_per_tier: float = 10.0

    # === Damage-rate bonuses ===
    sidekick_bonus_per_tier: float = 0.025
    supply_bonus_per_tier: float = 0.005
    speed_bonus_per_tier: float = 0.025
    set_complete_flat_bonus: float = 5.0
    level_gain_base: float = 0.5
    level_gain_per_strength: float = 0.1
    crew_damage_rate: float = 999_999_999.0

    # === Passage bonuses (granted once per run) ===
    passage_bonuses: dict[str, float] = field(default_factory=lambda: {
        "set": 1.0,
        "zone": 5.0,
        "road": 10.0,
    })

    # === Rewards ===
    set_currency_reward: float = 1.0
    zone_currency_reward: float = 10.0
    hideout_reward: float = 100.0
    steal_chance_per_tier: float = 0.025

    # === Map pieces ===
    pieces_per_zone: int = 100
    piece_base_chance: float = 0.01
    piece_chance_per_scan_tier: float = 0.001
    piece_pity_step: float = 1.0          # boost / 100 is added to the chance
    piece_currency_reward: float = 1.0

    # === Fragments ===
    fragment_base_chance: float = 0.10
    # level_in_zone -> chance
    fragment_milestone_chances: dict[int, float] = field(default_factory=lambda: {
        25: 0.25,
        50: 0.50,
        75: 0.75,
        100: 1.0,
    })
    scoop_chance_per_tier: float = 0.025

    # === Construction ===
    dispatch_cooldown: float = 60.0

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------
    def recalls_for_squad_level(self, level: int) -> int:
        """Cumulative recalls required to reach squad ``level``."""
        return self.squad_recall_step * level * (level + 1) // 2

    def upgrade_slots(self, squad_level: int) -> int:
        return self.upgrade_slots_base + squad_level // self.squad_levels_per_upgrade_slot

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        d: dict[str, Any] = {}
        for k, v in self.__dict__.items():
            if k.startswith("_"):
                continue
            d[k] = v
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GameConfig:
        """Deserialize from a dict. Unknown keys are ignored."""
        known = cls.__dataclass_fields__
        kwargs = {k: v for k, v in d.items() if k in known and not k.startswith("_")}
        if "fragment_milestone_chances" in kwargs:
            # JSON object keys come back as strings
            kwargs["fragment_milestone_chances"] = {
                int(k): float(v) for k, v in kwargs["fragment_milestone_chances"].items()
            }
        return cls(**kwargs)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_json(cls, s: str) -> GameConfig:
        return cls.from_dict(json.loads(s))

    def diff(self, other: GameConfig) -> dict[str, tuple[Any, Any]]:
        """Return parameters that differ between two configs."""
        diffs: dict[str, tuple[Any, Any]] = {}
        for k in self.to_dict():
            v1 = getattr(self, k)
            v2 = getattr(other, k)
            if v1 != v2:
                diffs[k] = (v1, v2)
        return diffs
