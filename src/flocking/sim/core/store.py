from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Iterator, List, Sequence, Tuple

from pygame.math import Vector2

from .agent import Agent
from .rng import DeterministicRng

logger = logging.getLogger(__name__)

TrailPoint = Tuple[float, float]
Trail = Deque[TrailPoint]


class AgentStore:
    """Dense, index-addressed population of agents plus one trail per agent.

    Agents are only ever created or destroyed in bulk, by :meth:`initialize` or
    :meth:`load`. Indices stay stable until the next bulk replacement.
    """

    def __init__(self, rng: DeterministicRng):
        self._rng = rng
        self._agents: List[Agent] = []
        self._trails: List[Trail] = []

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def trails(self) -> List[Trail]:
        return self._trails

    @property
    def count(self) -> int:
        return len(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents)

    def agent_at(self, index: int) -> Agent:
        return self._agents[index]

    def trail_at(self, index: int) -> Trail:
        return self._trails[index]

    def initialize(self, count: int, width: float, height: float) -> None:
        rng = self._rng
        agents: List[Agent] = []
        for index in range(max(0, int(count))):
            agents.append(
                Agent(
                    id=index,
                    position=Vector2(rng.next_float() * width, rng.next_float() * height),
                    velocity=Vector2(rng.next_range(-1.0, 1.0), rng.next_range(-1.0, 1.0)),
                    hue=rng.next_range(-30.0, 30.0),
                )
            )
        self._replace(agents)
        logger.debug("initialized %d agents in %.1fx%.1f world", len(agents), width, height)

    def load(self, positions: Sequence[TrailPoint], velocities: Sequence[TrailPoint]) -> None:
        if len(positions) != len(velocities):
            raise ValueError("positions and velocities must have the same length")
        agents = [
            Agent(id=index, position=Vector2(pos), velocity=Vector2(vel))
            for index, (pos, vel) in enumerate(zip(positions, velocities))
        ]
        self._replace(agents)

    def _replace(self, agents: List[Agent]) -> None:
        # Agents and trails are always replaced together.
        self._agents, self._trails = agents, [deque() for _ in agents]
