"""
Map topology for Zone Runners.

The world is a chain of segments. Each segment is built from a static
ASCII pattern: ``#`` cells form the path, ``.`` cells are filled with a
random tile from the segment's environment theme, anything else is kept
literally. Every path cell is one "tile" of ten levels.

Segments are generated lazily with the injected numpy RNG so that a
seeded engine reproduces the same world.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

PATH_CELL = "#"
OPEN_CELL = "."

# Entry point and landmark of the very first segment
FIRST_ENTRY: tuple[int, int] = (7, 2)
FIRST_LANDMARK: tuple[int, int] = (7, 1)
LANDMARK_TILE = "🏝️"

# Always-visible window around the first entry (x range, y range)
START_VISIBLE_X = range(6, 9)
START_VISIBLE_Y = range(0, 3)

ENVIRONMENTS: list[list[str]] = [
    ["🟨", "🌵"],
    ["⛰️", "🏔", "🌋", "🗻"],
    ["🌳", "🌲", "🌱", "🌿"],
    ["🏡", "🏟", "🏢", "🏤", "🏥", "🏦", "🏨", "🏪", "🏫", "🏬", "🏭", "🏗"],
]

MAP_PATTERNS: list[str] = [
    # 0: starting beach, entry at (7, 2)
    """
    ...............
    ...............
    .......#.......
    .......#.......
    .......#######.
    .............#.
    .#############.
    .#.............
    """,
    # 1: switchbacks
    """
    .#.............
    .#############.
    .............#.
    .#############.
    .#.............
    .#############.
    .............#.
    .............#.
    """,
    # 2: canyons
    """
    .#...###...###.
    .#...#.#...#.#.
    .#...#.#...#.#.
    .#...#.#...#.#.
    .#...#.#...#.#.
    .#...#.#...#.#.
    .#####.#####.#.
    .............#.
    """,
    # 3: hook
    """
    ...#...........
    ...#...........
    ...#...#######.
    ...#...#.....#.
    ...#...#.....#.
    ...#...#.....#.
    ...#####.....#.
    .............#.
    """,
    # 4: staircase
    """
    ##.............
    .##............
    ..##...........
    ...##..........
    ....##.........
    .....##........
    ......##.......
    .......########
    """,
]


def pattern_rows(pattern: str) -> list[str]:
    return [row.strip() for row in pattern.strip().splitlines() if row.strip()]


def trace_path(
    rows: list[str], entry: tuple[int, int] | None = None,
) -> list[tuple[int, int]]:
    """Walk the path cells of a pattern.

    Starts at ``entry`` when it is a path cell, otherwise at the first
    path cell in row-major order, then repeatedly steps to an unvisited
    neighbour (up, down, left, right). Stops when no neighbour is left.
    """
    nodes = {
        (x, y)
        for y, row in enumerate(rows)
        for x, ch in enumerate(row)
        if ch == PATH_CELL
    }
    if not nodes:
        return []

    current: tuple[int, int] | None = min(nodes, key=lambda n: (n[1], n[0]))
    if entry is not None and entry in nodes:
        current = entry

    path: list[tuple[int, int]] = []
    visited: set[tuple[int, int]] = set()
    while current is not None:
        path.append(current)
        visited.add(current)
        x, y = current
        current = None
        for nxt in ((x, y - 1), (x, y + 1), (x - 1, y), (x + 1, y)):
            if nxt in nodes and nxt not in visited:
                current = nxt
                break
    return path


def validate_pattern(pattern: str, entry: tuple[int, int] | None = None) -> list[tuple[int, int]]:
    """Check that a pattern traces into one simple path.

    Raises:
        ValueError: If the pattern has no path cells, or the trace stops
            before visiting every path cell.
    """
    rows = pattern_rows(pattern)
    total = sum(row.count(PATH_CELL) for row in rows)
    if total == 0:
        raise ValueError("Map pattern has no path cells")
    path = trace_path(rows, entry)
    if len(path) != total:
        raise ValueError(
            f"Map pattern is not a simple path: traced {len(path)} of {total} cells"
        )
    return path


for _i, _p in enumerate(MAP_PATTERNS):
    validate_pattern(_p, FIRST_ENTRY if _i == 0 else None)


@dataclass
class MapSegment:
    """One generated stretch of the world. Immutable once built."""

    index: int
    pattern_index: int
    environment_index: int
    grid: list[list[str]]
    path: list[tuple[int, int]]

    @property
    def environment(self) -> list[str]:
        return ENVIRONMENTS[self.environment_index]

    @property
    def length(self) -> int:
        return len(self.path)

    @classmethod
    def build(
        cls,
        index: int,
        pattern_index: int,
        environment_index: int,
        rng: np.random.Generator,
    ) -> MapSegment:
        rows = pattern_rows(MAP_PATTERNS[pattern_index])
        tiles = ENVIRONMENTS[environment_index]
        grid: list[list[str]] = []
        for row in rows:
            cells: list[str] = []
            for ch in row:
                if ch == OPEN_CELL:
                    cells.append(tiles[int(rng.integers(len(tiles)))])
                else:
                    cells.append(ch)
            grid.append(cells)

        entry = None
        if index == 0:
            entry = FIRST_ENTRY
            lx, ly = FIRST_LANDMARK
            if ly < len(grid) and lx < len(grid[ly]):
                grid[ly][lx] = LANDMARK_TILE

        return cls(
            index=index,
            pattern_index=pattern_index,
            environment_index=environment_index,
            grid=grid,
            path=trace_path(rows, entry),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "pattern_index": self.pattern_index,
            "environment_index": self.environment_index,
            "grid": [list(row) for row in self.grid],
            "path": [list(p) for p in self.path],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MapSegment:
        pattern_index = d.get("pattern_index", 0)
        index = d.get("index", 0)
        path = d.get("path")
        if path:
            path = [tuple(p) for p in path]
        else:
            path = trace_path(
                pattern_rows(MAP_PATTERNS[pattern_index]),
                FIRST_ENTRY if index == 0 else None,
            )
        return cls(
            index=index,
            pattern_index=pattern_index,
            environment_index=d.get("environment_index", 0),
            grid=[list(row) for row in d.get("grid", [])],
            path=path,
        )


@dataclass
class MapTopology:
    """The ordered list of segments plus per-segment exploration marks."""

    segments: list[MapSegment] = field(default_factory=list)
    active_pattern_index: int = -1
    # segment index -> furthest path index any runner has reached
    furthest_step: dict[int, int] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate_next(self, rng: np.random.Generator) -> MapSegment:
        """Append one segment with a fresh pattern and environment."""
        if not self.segments:
            pattern_index = 0
            environment_index = 0
        else:
            patterns = [
                i for i in range(1, len(MAP_PATTERNS))
                if i != self.active_pattern_index
            ]
            pattern_index = patterns[int(rng.integers(len(patterns)))]
            previous = self.segments[-1].environment_index
            envs = [i for i in range(len(ENVIRONMENTS)) if i != previous]
            environment_index = envs[int(rng.integers(len(envs)))]

        segment = MapSegment.build(len(self.segments), pattern_index, environment_index, rng)
        self.segments.append(segment)
        self.active_pattern_index = pattern_index
        return segment

    def ensure_initial(self, rng: np.random.Generator) -> None:
        while len(self.segments) < 2:
            self.generate_next(rng)

    def ensure_ahead(self, furthest_segment: int, rng: np.random.Generator) -> int:
        """Keep at least one segment beyond ``furthest_segment``.

        Returns the number of segments appended.
        """
        added = 0
        while furthest_segment >= len(self.segments) - 1:
            self.generate_next(rng)
            added += 1
        return added

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------
    def global_offset(self, segment_index: int) -> int:
        """Global tile index of the first path cell of a segment."""
        return sum(s.length for s in self.segments[:segment_index])

    def locate(self, tile: int, rng: np.random.Generator) -> tuple[int, int]:
        """Map a global tile index to ``(segment_index, step)``, extending the world."""
        offset = 0
        i = 0
        while True:
            if i >= len(self.segments):
                self.generate_next(rng)
            length = self.segments[i].length
            if tile < offset + length:
                return i, tile - offset
            offset += length
            i += 1

    def advance(self, segment_index: int, step: int) -> tuple[int, int]:
        """One step forward along the path, crossing into the next segment."""
        step += 1
        if segment_index < len(self.segments) and step >= self.segments[segment_index].length:
            return segment_index + 1, 0
        return segment_index, step

    def coordinate(self, segment_index: int, step: int) -> tuple[int, int] | None:
        if segment_index >= len(self.segments):
            return None
        path = self.segments[segment_index].path
        if 0 <= step < len(path):
            return path[step]
        return None

    # ------------------------------------------------------------------
    # Fog of war
    # ------------------------------------------------------------------
    def record_step(self, segment_index: int, step: int) -> None:
        if step > self.furthest_step.get(segment_index, -1):
            self.furthest_step[segment_index] = step

    def visible_cells(
        self, segment_index: int, furthest_segment: int = 0,
    ) -> set[tuple[int, int]]:
        """Cells of a segment currently revealed.

        Segments behind ``furthest_segment`` with no recorded step count
        as fully explored.
        """
        visible: set[tuple[int, int]] = set()
        if segment_index >= len(self.segments):
            return visible
        segment = self.segments[segment_index]

        if segment_index == 0:
            visible.update((x, y) for x in START_VISIBLE_X for y in START_VISIBLE_Y)

        reached = self.furthest_step.get(segment_index)
        if reached is None:
            reached = segment.length - 1 if segment_index < furthest_segment else -1

        for x, y in segment.path[: reached + 1]:
            for dy in (-1, 0, 1):
                for dx in (-1, 0, 1):
                    visible.add((x + dx, y + dy))
        return visible

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "active_pattern_index": self.active_pattern_index,
            "furthest_step": {str(k): v for k, v in self.furthest_step.items()},
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MapTopology:
        return cls(
            segments=[MapSegment.from_dict(s) for s in d.get("segments", [])],
            active_pattern_index=d.get("active_pattern_index", -1),
            furthest_step={int(k): int(v) for k, v in d.get("furthest_step", {}).items()},
        )
