from __future__ import annotations

import math
from typing import List, TYPE_CHECKING

from pygame.math import Vector2

from ..core.agent import Agent
from ..core.config import FlockingParams
from ..core.pointer import PointerState
from ..utils.math2d import normalize

if TYPE_CHECKING:
    from ..core.world import World


def collect_neighbors_bruteforce(
    agent: Agent,
    agents: List[Agent],
    radius_sq: float,
    out_agents: List[Agent],
    out_offsets: List[Vector2],
) -> None:
    out_agents.clear()
    offset_count = 0
    pos_x = agent.position.x
    pos_y = agent.position.y
    for other in agents:
        if other is agent:
            continue
        offset_x = other.position.x - pos_x
        offset_y = other.position.y - pos_y
        dist_sq = offset_x * offset_x + offset_y * offset_y
        if 0.0 < dist_sq < radius_sq:
            out_agents.append(other)
            if offset_count < len(out_offsets):
                out_offsets[offset_count].update(offset_x, offset_y)
            else:
                out_offsets.append(Vector2(offset_x, offset_y))
            offset_count += 1
    del out_offsets[offset_count:]


def flocking_force(
    agent: Agent,
    neighbors: List[Agent],
    neighbor_offsets: List[Vector2],
    params: FlockingParams,
) -> Vector2:
    """Weighted separation + alignment + cohesion for one agent.

    ``neighbor_offsets[k]`` is ``neighbors[k].position - agent.position`` and is
    never zero. With no neighbors the result is exactly zero.
    """
    count = len(neighbors)
    if count == 0:
        return Vector2()

    sep_x = 0.0
    sep_y = 0.0
    vel_x = 0.0
    vel_y = 0.0
    pos_x = 0.0
    pos_y = 0.0
    for other, offset in zip(neighbors, neighbor_offsets):
        inv_len = 1.0 / math.sqrt(offset.x * offset.x + offset.y * offset.y)
        sep_x -= offset.x * inv_len
        sep_y -= offset.y * inv_len
        vel_x += other.velocity.x
        vel_y += other.velocity.y
        pos_x += other.position.x
        pos_y += other.position.y

    ali_x, ali_y = normalize(vel_x / count - agent.velocity.x, vel_y / count - agent.velocity.y)
    coh_x, coh_y = normalize(pos_x / count - agent.position.x, pos_y / count - agent.position.y)
    return Vector2(
        sep_x * params.separation + ali_x * params.alignment + coh_x * params.cohesion,
        sep_y * params.separation + ali_y * params.alignment + coh_y * params.cohesion,
    )


def pointer_force(position: Vector2, pointer: PointerState, radius: float) -> Vector2:
    if not pointer.active:
        return Vector2()
    dx = pointer.x - position.x
    dy = pointer.y - position.y
    dist = math.sqrt(dx * dx + dy * dy)
    if dist == 0.0 or not dist < radius:
        return Vector2()
    strength = (1.0 - dist / radius) * 2.0
    if pointer.repel:
        strength = -strength
    return Vector2(dx / dist * strength, dy / dist * strength)


def compute_acceleration(world: World, agent: Agent) -> int:
    """Write the agent's acceleration for this frame and return its neighbor count.

    Reads other agents' positions and velocities only; nothing is integrated
    until every agent has been evaluated.
    """
    params = world.params
    radius_sq = params.perception_radius * params.perception_radius
    neighbors = world._neighbor_agents
    offsets = world._neighbor_offsets
    if radius_sq <= 0.0:
        neighbors.clear()
        offsets.clear()
    elif world.config.use_spatial_grid:
        world._grid.collect_neighbors_precomputed(
            agent.position,
            world._grid_cell_offsets,
            radius_sq,
            neighbors,
            offsets,
            exclude_id=agent.id,
        )
    else:
        collect_neighbors_bruteforce(agent, world.agents, radius_sq, neighbors, offsets)

    acceleration = flocking_force(agent, neighbors, offsets, params)
    acceleration += pointer_force(agent.position, world.pointer, params.mouse_force)
    agent.acceleration.update(acceleration)
    return len(neighbors)
