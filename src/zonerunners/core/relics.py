"""
Relic types and tier progression.

Relics are per-runner permanent upgrades. Fragments are banked per type
and converted into tiers; one large deposit can resolve several tier-ups.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from zonerunners.core.config import GameConfig


class RelicType(str, Enum):
    """The eight relic families."""
    STRENGTH = "STRENGTH"   # per-level damage gain
    SCOOP = "SCOOP"         # chance of a second fragment
    STEAL = "STEAL"         # chance of duplicate currency
    SIDEKICK = "SIDEKICK"   # caravan-size bonus
    SPEED = "SPEED"         # catch-up bonus on roads
    STYLE = "STYLE"         # recall capacity, caravan leadership
    SUPPLY = "SUPPLY"       # convoy support for runners behind
    SCAN = "SCAN"           # map piece discovery


RELIC_TYPES: tuple[RelicType, ...] = tuple(RelicType)

# Even STYLE tiers -> vehicle
STYLE_EMOJIS: dict[int, str] = {
    0: "🛺", 2: "🚗", 4: "🛻", 6: "🚕", 8: "🚓",
    10: "🚙", 12: "🚑", 14: "🚐", 16: "🚚", 18: "🚌", 20: "🚛",
}

CREW_EMOJI = "🚧"


def empty_relic_map(value: float = 0) -> dict[RelicType, float]:
    return {t: value for t in RELIC_TYPES}


def relic_cost(tier: int, config: GameConfig) -> float:
    """Fragments needed to go from ``tier`` to ``tier + 1``."""
    return config.relic_cost_base + tier * config.relic_cost_per_tier


def resolve_tier_ups(
    tier: int, bank: float, config: GameConfig,
) -> tuple[int, float]:
    """Spend ``bank`` on as many consecutive tier-ups as it covers.

    Returns the new ``(tier, bank)``. Tiers stop at ``max_relic_tier``;
    any remainder stays banked.
    """
    while tier < config.max_relic_tier:
        cost = relic_cost(tier, config)
        if bank < cost:
            break
        bank -= cost
        tier += 1
    return tier, bank


def style_emoji(style_tier: int) -> str:
    t = min((style_tier // 2) * 2, 20)
    return STYLE_EMOJIS.get(t, STYLE_EMOJIS[0])
