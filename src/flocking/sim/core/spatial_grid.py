from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List, Tuple

from pygame.math import Vector2

if TYPE_CHECKING:
    from .agent import Agent


class SpatialGrid:
    def __init__(self, cell_size: float) -> None:
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List["Agent"]] = {}
        self._active_keys: List[Tuple[int, int]] = []

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def rebuild(self, agents: List["Agent"], cell_size: float) -> None:
        if cell_size != self._cell_size:
            self._cells.clear()
            self._active_keys.clear()
            self._cell_size = cell_size
        else:
            self.clear()
        for agent in agents:
            self.insert(agent)

    def build_neighbor_cell_offsets(self, radius: float) -> List[Tuple[int, int]]:
        cell_range = int(math.ceil(abs(radius) / self._cell_size))
        return [(dx, dy) for dx in range(-cell_range, cell_range + 1) for dy in range(-cell_range, cell_range + 1)]

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def insert(self, agent: "Agent") -> None:
        key = self._cell_key(agent.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this frame; mark it active again.
            self._active_keys.append(key)
        bucket.append(agent)

    def collect_neighbors_precomputed(
        self,
        position: Vector2,
        cell_offsets: List[Tuple[int, int]],
        radius_sq: float,
        out_agents: List["Agent"],
        out_offsets: List[Vector2],
        exclude_id: int | None = None,
    ) -> None:
        """
        Collect agents with ``0 < dist_sq < radius_sq`` around ``position``.

        Coincident agents (``dist_sq == 0``) are never reported, so callers can
        divide by the distance. Buffers are reused across calls.
        """

        out_agents.clear()
        offset_count = 0
        base_key = self._cell_key(position)
        pos_x = position.x
        pos_y = position.y
        cells = self._cells
        append_agent = out_agents.append
        append_offset = out_offsets.append

        for dx, dy in cell_offsets:
            bucket = cells.get((base_key[0] + dx, base_key[1] + dy))
            if not bucket:
                continue
            for agent in bucket:
                if exclude_id is not None and agent.id == exclude_id:
                    continue
                pos = agent.position
                offset_x = pos.x - pos_x
                offset_y = pos.y - pos_y
                dist_sq = offset_x * offset_x + offset_y * offset_y
                if 0.0 < dist_sq < radius_sq:
                    append_agent(agent)
                    if offset_count < len(out_offsets):
                        out_offsets[offset_count].update(offset_x, offset_y)
                    else:
                        append_offset(Vector2(offset_x, offset_y))
                    offset_count += 1

        del out_offsets[offset_count:]

    def _cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))
