from __future__ import annotations

import logging
from dataclasses import replace
from time import perf_counter
from typing import List, Sequence, Tuple

from pygame.math import Vector2

from .agent import Agent
from .config import FlockingParams, SimulationConfig, preset_params
from .pointer import PointerState
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid
from .store import AgentStore, Trail
from ..systems import integration, metrics as metrics_system, steering
from ..types.metrics import FrameMetrics
from ..types.snapshot import FrameSnapshot, SnapshotPointer, SnapshotWorld
from ..utils.math2d import heading_from_velocity

logger = logging.getLogger(__name__)


class World:
    """Owned simulation state: population, trails, parameters, pointer and world size.

    External code mutates it only between frames; :meth:`step` advances it by
    exactly one frame.
    """

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._store = AgentStore(self._rng)
        self._pointer = PointerState()
        self._width = float(config.width)
        self._height = float(config.height)
        self._frame = 0
        self._grid = SpatialGrid(1.0)
        self._grid_cell_offsets: List[Tuple[int, int]] = []
        self._neighbor_agents: List[Agent] = []
        self._neighbor_offsets: List[Vector2] = []
        self._metrics: FrameMetrics | None = None
        self._store.initialize(config.boid_count, self._width, self._height)

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def params(self) -> FlockingParams:
        return self._config.params

    @property
    def store(self) -> AgentStore:
        return self._store

    @property
    def agents(self) -> List[Agent]:
        return self._store.agents

    @property
    def trails(self) -> List[Trail]:
        return self._store.trails

    @property
    def pointer(self) -> PointerState:
        return self._pointer

    @property
    def width(self) -> float:
        return self._width

    @property
    def height(self) -> float:
        return self._height

    @property
    def frame(self) -> int:
        return self._frame

    @property
    def metrics(self) -> FrameMetrics | None:
        return self._metrics

    def reset(self) -> None:
        self._rng.reset(self._config.seed)
        self._frame = 0
        self._metrics = None
        self._reinitialize()

    def set_population(self, count: int) -> None:
        count = max(0, int(count))
        self._config.boid_count = count
        self._reinitialize()

    def resize(self, width: float, height: float) -> None:
        self._width = float(width)
        self._height = float(height)
        self._config.width = self._width
        self._config.height = self._height
        logger.debug("world resized to %.1fx%.1f", self._width, self._height)
        self._reinitialize()

    def load(self, positions: Sequence[Tuple[float, float]], velocities: Sequence[Tuple[float, float]]) -> None:
        self._store.load(positions, velocities)
        self._config.boid_count = self._store.count

    def apply_params(self, params: FlockingParams) -> None:
        self._config.params = params
        self._trim_trails()

    def update_params(self, **changes: float) -> FlockingParams:
        self._config.params = replace(self._config.params, **changes)
        self._trim_trails()
        return self._config.params

    def apply_preset(self, name: str) -> FlockingParams:
        self._config.params = preset_params(name)
        self._trim_trails()
        logger.debug("applied preset %s", name)
        return self._config.params

    def set_trails_enabled(self, enabled: bool) -> None:
        self._config.show_trails = bool(enabled)
        if not enabled:
            for trail in self._store.trails:
                trail.clear()

    def step(self) -> FrameMetrics:
        start = perf_counter()
        config = self._config
        params = config.params
        agents = self._store.agents
        trails = self._store.trails

        if config.use_spatial_grid:
            self._rebuild_grid(params.perception_radius)

        neighbor_checks = 0
        for agent in agents:
            neighbor_checks += steering.compute_acceleration(self, agent)

        interval = max(1, int(config.trail_interval))
        sample_trails = config.show_trails and self._frame % interval == 0
        for agent, trail in zip(agents, trails):
            integration.integrate(
                agent,
                params,
                self._width,
                self._height,
                trail if sample_trails else None,
            )

        duration_ms = (perf_counter() - start) * 1000.0
        self._metrics = metrics_system.create_metrics(self._frame, agents, neighbor_checks, duration_ms, fps=0)
        self._frame += 1
        return self._metrics

    def snapshot(self, running: bool = True, fps: int = 0) -> FrameSnapshot:
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(self._frame, self.agents, 0, 0.0, fps)
        metrics.fps = fps
        agents_payload = [
            {
                "id": agent.id,
                "x": agent.position.x,
                "y": agent.position.y,
                "vx": agent.velocity.x,
                "vy": agent.velocity.y,
                "hue": agent.hue,
                "heading": heading_from_velocity(agent.velocity),
                "speed": agent.velocity.length(),
            }
            for agent in self.agents
        ]
        trails_payload = [[[x, y] for x, y in trail] for trail in self.trails]
        pointer = self._pointer
        return FrameSnapshot(
            frame=self._frame,
            running=running,
            fps=fps,
            metrics=metrics,
            agents=agents_payload,
            trails=trails_payload,
            world=SnapshotWorld(width=self._width, height=self._height, show_trails=self._config.show_trails),
            pointer=SnapshotPointer(
                x=pointer.x,
                y=pointer.y,
                active=pointer.active,
                repel=pointer.repel,
                radius=self._config.params.mouse_force,
            ),
        )

    def _trim_trails(self) -> None:
        trail_length = self._config.params.trail_length
        for trail in self._store.trails:
            integration.trim_trail(trail, trail_length)

    def _reinitialize(self) -> None:
        self._store.initialize(self._config.boid_count, self._width, self._height)

    def _rebuild_grid(self, radius: float) -> None:
        cell_size = abs(radius)
        if cell_size * cell_size <= 0.0:
            return
        previous = self._grid.cell_size
        self._grid.rebuild(self._store.agents, cell_size)
        if cell_size != previous or not self._grid_cell_offsets:
            self._grid_cell_offsets = self._grid.build_neighbor_cell_offsets(radius)
