from __future__ import annotations

from ..core.agent import Agent
from ..core.config import FlockingParams
from ..core.store import Trail
from ..utils.math2d import limit_magnitude


def wrap_coordinate(value: float, extent: float) -> float:
    if value < 0.0:
        return extent
    if value > extent:
        return 0.0
    return value


def trim_trail(trail: Trail, trail_length: float) -> None:
    while trail and len(trail) > trail_length:
        trail.popleft()


def append_trail(trail: Trail, x: float, y: float, trail_length: float) -> None:
    trail.append((x, y))
    trim_trail(trail, trail_length)


def integrate(
    agent: Agent,
    params: FlockingParams,
    width: float,
    height: float,
    trail: Trail | None = None,
) -> None:
    """Advance one agent by one frame using its accumulated acceleration.

    Euler step with unit time: the velocity absorbs the acceleration and is
    clamped to ``max_speed``, then the position moves by the velocity and wraps
    toroidally. ``trail`` receives the new position when given.
    """
    velocity = agent.velocity
    vx, vy = limit_magnitude(
        velocity.x + agent.acceleration.x,
        velocity.y + agent.acceleration.y,
        params.max_speed,
    )
    velocity.update(vx, vy)

    position = agent.position
    position.update(
        wrap_coordinate(position.x + vx, width),
        wrap_coordinate(position.y + vy, height),
    )

    if trail is not None:
        append_trail(trail, position.x, position.y, params.trail_length)
