"""
Zone construction and hideout lifecycle.

Per zone, one-way progression::

    UNMAPPED → READY_FOR_HIDEOUT → ACTIVE_HIDEOUT → PENDING_ROAD
             ↘ ACTIVE_HIDEOUT ↗                  → UNDER_CONSTRUCTION → ROAD_BUILT

A fully mapped zone spawns its hideout at once unless a player is
standing on the zone's boss level; then it waits in READY_FOR_HIDEOUT
and is promoted on the first tick the boss level is clear. Clearing a
hideout queues the zone for a road. One construction crew at a time is
dispatched to the lowest pending zone whose predecessor already has a
road, with a cooldown after each finished road.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable, Iterator

logger = logging.getLogger(__name__)


class ZoneStatus(str, Enum):
    UNMAPPED = "unmapped"
    READY_FOR_HIDEOUT = "ready_for_hideout"
    ACTIVE_HIDEOUT = "active_hideout"
    PENDING_ROAD = "pending_road"
    UNDER_CONSTRUCTION = "under_construction"
    ROAD_BUILT = "road_built"


class ZoneSet:
    """Sorted set of zone indices with explicit add/discard semantics."""

    def __init__(self, zones: Iterable[int] = ()):
        self._zones: set[int] = {int(z) for z in zones}

    def add(self, zone: int) -> bool:
        """Insert ``zone``; returns False if it was already present."""
        if zone in self._zones:
            return False
        self._zones.add(zone)
        return True

    def discard(self, zone: int) -> bool:
        """Remove ``zone``; returns False if it was absent."""
        if zone not in self._zones:
            return False
        self._zones.remove(zone)
        return True

    def count_at_or_above(self, zone: int) -> int:
        return sum(1 for z in self._zones if z >= zone)

    def lowest(self) -> int | None:
        return min(self._zones) if self._zones else None

    def __contains__(self, zone: object) -> bool:
        return zone in self._zones

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._zones))

    def __len__(self) -> int:
        return len(self._zones)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ZoneSet):
            return self._zones == other._zones
        return NotImplemented

    def __repr__(self) -> str:
        return f"ZoneSet({sorted(self._zones)})"

    def to_list(self) -> list[int]:
        return sorted(self._zones)


class ConstructionSubsystem:
    """Hideout spawning, hideout clearing and road building per zone."""

    def __init__(self, dispatch_cooldown: float = 60.0):
        self.dispatch_cooldown = dispatch_cooldown
        self.ready_for_hideout = ZoneSet()
        self.active_hideouts = ZoneSet()
        self.pending_roads = ZoneSet()
        self.roads_built = ZoneSet()
        self.under_construction: int | None = None
        self.dispatch_ready_at: float = 0.0

    def status(self, zone: int) -> ZoneStatus:
        if zone in self.roads_built:
            return ZoneStatus.ROAD_BUILT
        if self.under_construction == zone:
            return ZoneStatus.UNDER_CONSTRUCTION
        if zone in self.pending_roads:
            return ZoneStatus.PENDING_ROAD
        if zone in self.active_hideouts:
            return ZoneStatus.ACTIVE_HIDEOUT
        if zone in self.ready_for_hideout:
            return ZoneStatus.READY_FOR_HIDEOUT
        return ZoneStatus.UNMAPPED

    def has_road(self, zone: int) -> bool:
        return zone in self.roads_built

    def roads_at_or_beyond(self, zone: int) -> int:
        return self.roads_built.count_at_or_above(zone)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def on_zone_mapped(self, zone: int, boss_occupied: bool) -> ZoneStatus:
        """A zone's last map piece was found."""
        if self.status(zone) != ZoneStatus.UNMAPPED:
            return self.status(zone)
        if boss_occupied:
            self.ready_for_hideout.add(zone)
            logger.info("Zone %d fully mapped; hideout waiting for the boss level to clear", zone + 1)
        else:
            self.active_hideouts.add(zone)
            logger.info("Hideout spawned in zone %d", zone + 1)
        return self.status(zone)

    def promote_ready(self, occupied_boss_zones: set[int]) -> list[int]:
        """Spawn hideouts for ready zones whose boss level is now clear."""
        promoted = [z for z in self.ready_for_hideout if z not in occupied_boss_zones]
        for zone in promoted:
            self.ready_for_hideout.discard(zone)
            self.active_hideouts.add(zone)
            logger.info("Area clear; hideout spawned in zone %d", zone + 1)
        return promoted

    def on_hideout_cleared(self, zone: int) -> bool:
        if not self.active_hideouts.discard(zone):
            return False
        self.pending_roads.add(zone)
        logger.info("Hideout in zone %d cleared; road pending", zone + 1)
        return True

    def next_dispatch_target(self, clock: float) -> int | None:
        """Zone a new crew should build, or None if none may go now."""
        if self.under_construction is not None or clock < self.dispatch_ready_at:
            return None
        for zone in self.pending_roads:
            if zone == 0 or self.has_road(zone - 1):
                return zone
        return None

    def dispatch(self, zone: int) -> None:
        self.pending_roads.discard(zone)
        self.under_construction = zone
        logger.info("Construction crew dispatched to zone %d", zone + 1)

    def abandon_construction(self) -> int | None:
        """Put the zone under construction back in the pending queue.

        Used when no crew is left working on it, e.g. after loading a
        save that lost its crew.
        """
        zone = self.under_construction
        if zone is None:
            return None
        self.under_construction = None
        self.pending_roads.add(zone)
        logger.warning("No crew building zone %d; road requeued", zone + 1)
        return zone

    def on_road_built(self, zone: int, clock: float) -> bool:
        if self.under_construction != zone:
            return False
        self.under_construction = None
        self.roads_built.add(zone)
        self.dispatch_ready_at = clock + self.dispatch_cooldown
        logger.info("Road construction complete for zone %d", zone + 1)
        return True

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        return {
            "ready_for_hideout": self.ready_for_hideout.to_list(),
            "active_hideouts": self.active_hideouts.to_list(),
            "pending_roads": self.pending_roads.to_list(),
            "roads_built": self.roads_built.to_list(),
            "under_construction": self.under_construction,
            "dispatch_ready_at": float(self.dispatch_ready_at),
        }

    def load_dict(self, d: dict[str, Any]) -> None:
        self.roads_built = ZoneSet(d.get("roads_built") or d.get("conquered_zones") or [])
        uc = d.get("under_construction")
        self.under_construction = int(uc) if uc is not None and uc not in self.roads_built else None
        # Later states win so a zone never sits in two sets
        taken = set(self.roads_built)
        if self.under_construction is not None:
            taken.add(self.under_construction)
        self.pending_roads = ZoneSet(z for z in d.get("pending_roads") or [] if z not in taken)
        taken |= set(self.pending_roads)
        self.active_hideouts = ZoneSet(z for z in d.get("active_hideouts") or [] if z not in taken)
        taken |= set(self.active_hideouts)
        self.ready_for_hideout = ZoneSet(z for z in d.get("ready_for_hideout") or [] if z not in taken)
        self.dispatch_ready_at = float(d.get("dispatch_ready_at", 0.0))
