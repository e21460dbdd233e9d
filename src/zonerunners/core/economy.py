"""
Economy ledger for Zone Runners.

Tracks per-zone map-piece discovery (100 pieces per zone, one per level),
pity boosts on failed discovery rolls, lifetime currency and fragment
totals, and the random reward rolls made on level completion.

All randomness goes through the caller's ``numpy.random.Generator``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from zonerunners.core.relics import RELIC_TYPES, RelicType

if TYPE_CHECKING:
    from zonerunners.core.config import GameConfig


@dataclass
class RewardRoll:
    """Outcome of one runner's level-completion rolls."""
    piece_found: bool = False
    zone_mapped: bool = False
    currency: float = 0.0          # counts toward durability
    bonus_currency: float = 0.0    # steal duplicates, never durability
    fragments: list[RelicType] = field(default_factory=list)


class EconomyLedger:
    """Zone map pieces, pity boosts and currency/fragment accounting."""

    def __init__(self, config: GameConfig):
        self.config = config
        self.map_pieces: dict[int, np.ndarray] = {}
        self.pity_boosts: dict[tuple[int, int], float] = {}
        self.lifetime_currency: float = 0.0
        self.lifetime_fragments: dict[RelicType, int] = {t: 0 for t in RELIC_TYPES}

    # ------------------------------------------------------------------
    # Map pieces
    # ------------------------------------------------------------------
    def pieces(self, zone: int) -> np.ndarray:
        """The zone's piece flags, created on first access."""
        if zone not in self.map_pieces:
            self.map_pieces[zone] = np.zeros(self.config.pieces_per_zone, dtype=bool)
        return self.map_pieces[zone]

    def is_found(self, zone: int, index: int) -> bool:
        arr = self.map_pieces.get(zone)
        return bool(arr[index]) if arr is not None else False

    def pieces_found(self, zone: int) -> int:
        arr = self.map_pieces.get(zone)
        return int(arr.sum()) if arr is not None else 0

    def is_mapped(self, zone: int) -> bool:
        arr = self.map_pieces.get(zone)
        return arr is not None and bool(arr.all())

    def set_pieces_found(self, zone: int, set_index: int) -> int:
        arr = self.map_pieces.get(zone)
        if arr is None:
            return 0
        size = self.config.levels_per_set
        return int(arr[set_index * size:(set_index + 1) * size].sum())

    def is_set_complete(self, zone: int, set_index: int) -> bool:
        return self.set_pieces_found(zone, set_index) >= self.config.levels_per_set

    def set_counts(self, zone: int) -> list[int]:
        n_sets = self.config.pieces_per_zone // self.config.levels_per_set
        return [self.set_pieces_found(zone, s) for s in range(n_sets)]

    def discovery_chance(self, zone: int, index: int, scan_tier: int) -> float:
        cfg = self.config
        boost = self.pity_boosts.get((zone, index), 0.0)
        return cfg.piece_base_chance + scan_tier * cfg.piece_chance_per_scan_tier + boost / 100.0

    def roll_piece(
        self, zone: int, index: int, scan_tier: int, rng: np.random.Generator,
    ) -> bool:
        """Roll for one undiscovered piece.

        Success marks the piece found and clears its pity boost; failure
        grows the boost so discovery is eventually guaranteed. Returns
        True only on a new discovery.
        """
        arr = self.pieces(zone)
        if arr[index]:
            return False
        chance = self.discovery_chance(zone, index, scan_tier)
        if rng.random() < chance:
            arr[index] = True
            self.pity_boosts.pop((zone, index), None)
            return True
        key = (zone, index)
        self.pity_boosts[key] = self.pity_boosts.get(key, 0.0) + self.config.piece_pity_step
        return False

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------
    def level_currency(self, completed_level: int) -> float:
        cfg = self.config
        gain = 0.0
        if completed_level % cfg.levels_per_set == 0:
            gain += cfg.set_currency_reward
        if completed_level % cfg.levels_per_zone == 0:
            gain += cfg.zone_currency_reward
        return gain

    def fragment_chance(self, level_in_zone: int) -> float:
        return self.config.fragment_milestone_chances.get(
            level_in_zone, self.config.fragment_base_chance,
        )

    def roll_fragments(
        self, level_in_zone: int, scoop_tier: int, rng: np.random.Generator,
    ) -> list[RelicType]:
        """Fragment drop for one completed level, with a SCOOP second drop."""
        if rng.random() >= self.fragment_chance(level_in_zone):
            return []
        first = RELIC_TYPES[int(rng.integers(len(RELIC_TYPES)))]
        drops = [first]
        if scoop_tier > 0 and rng.random() < scoop_tier * self.config.scoop_chance_per_tier:
            others = [t for t in RELIC_TYPES if t != first]
            drops.append(others[int(rng.integers(len(others)))])
        return drops

    def roll_level_rewards(
        self,
        completed_level: int,
        relic_tiers: dict[RelicType, int],
        rng: np.random.Generator,
    ) -> RewardRoll:
        """All reward rolls for one runner finishing ``completed_level``."""
        cfg = self.config
        zone = (completed_level - 1) // cfg.levels_per_zone
        index = (completed_level - 1) % cfg.levels_per_zone
        level_in_zone = index + 1
        roll = RewardRoll()

        was_mapped = self.is_mapped(zone)
        if not self.is_found(zone, index):
            if self.roll_piece(zone, index, relic_tiers.get(RelicType.SCAN, 0), rng):
                roll.piece_found = True
                roll.currency += cfg.piece_currency_reward
                roll.zone_mapped = not was_mapped and self.is_mapped(zone)

        gain = self.level_currency(completed_level)
        if gain > 0:
            roll.currency += gain
            steal = relic_tiers.get(RelicType.STEAL, 0)
            if steal > 0 and rng.random() < steal * cfg.steal_chance_per_tier:
                roll.bonus_currency += gain

        roll.fragments = self.roll_fragments(
            level_in_zone, relic_tiers.get(RelicType.SCOOP, 0), rng,
        )
        return roll

    def record_recall(self, currency: float, fragments: dict[RelicType, int]) -> None:
        self.lifetime_currency += currency
        for relic, count in fragments.items():
            self.lifetime_fragments[relic] = self.lifetime_fragments.get(relic, 0) + int(count)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        return {
            "map_pieces": {str(z): arr.tolist() for z, arr in self.map_pieces.items()},
            "pity_boosts": {f"{z}_{i}": v for (z, i), v in self.pity_boosts.items()},
            "lifetime_currency": float(self.lifetime_currency),
            "lifetime_fragments": {t.value: int(v) for t, v in self.lifetime_fragments.items()},
        }

    def load_dict(self, d: dict[str, Any]) -> None:
        """Restore from a dict, defaulting and migrating each field independently."""
        self.map_pieces = {}
        for key, value in (d.get("map_pieces") or {}).items():
            self.map_pieces[int(key)] = migrate_piece_array(value, self.config)

        self.pity_boosts = {}
        for key, value in (d.get("pity_boosts") or {}).items():
            zone, _, index = str(key).partition("_")
            self.pity_boosts[(int(zone), int(index))] = float(value)

        self.lifetime_currency = float(d.get("lifetime_currency", 0.0))
        self.lifetime_fragments = {t: 0 for t in RELIC_TYPES}
        for key, value in (d.get("lifetime_fragments") or {}).items():
            if key in RelicType.__members__:
                self.lifetime_fragments[RelicType(key)] = int(value)


def migrate_piece_array(value: Any, config: GameConfig) -> np.ndarray:
    """Normalise a stored piece record to a full boolean array.

    Older saves kept ten per-set counts (or ``True`` for a full set), or
    a bare ``True`` for a whole mapped zone.
    """
    size = config.pieces_per_zone
    per_set = config.levels_per_set
    arr = np.zeros(size, dtype=bool)
    if value is True:
        arr[:] = True
    elif isinstance(value, list):
        if len(value) == size // per_set and len(value) != size:
            for s, count in enumerate(value):
                if count is True:
                    arr[s * per_set:(s + 1) * per_set] = True
                elif isinstance(count, (int, float)) and not isinstance(count, bool):
                    n = max(0, min(int(count), per_set))
                    arr[s * per_set:s * per_set + n] = True
        else:
            flags = [bool(v) for v in value[:size]]
            arr[:len(flags)] = flags
    return arr
