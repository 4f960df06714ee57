from __future__ import annotations

import math
from typing import List

from ..core.agent import Agent
from ..types.metrics import FrameMetrics


class FrameRateMeter:
    """Counts completed frames per rolling one-second window.

    ``fps`` only changes when a window closes, so it updates at most once per
    second. Timestamps are supplied by the caller in seconds.
    """

    def __init__(self, window_seconds: float = 1.0):
        self.window_seconds = window_seconds
        self.fps = 0
        self._frames = 0
        self._window_start: float | None = None

    def reset(self) -> None:
        self.fps = 0
        self._frames = 0
        self._window_start = None

    def record_frame(self, now: float) -> int:
        if self._window_start is None:
            self._window_start = now
        self._frames += 1
        if now - self._window_start >= self.window_seconds:
            self.fps = self._frames
            self._frames = 0
            self._window_start = now
        return self.fps


def average_speed(agents: List[Agent]) -> float:
    if not agents:
        return 0.0
    return sum(math.hypot(agent.velocity.x, agent.velocity.y) for agent in agents) / len(agents)


def create_metrics(
    frame: int,
    agents: List[Agent],
    neighbor_checks: int,
    duration_ms: float,
    fps: int,
) -> FrameMetrics:
    return FrameMetrics(
        frame=frame,
        population=len(agents),
        neighbor_checks=neighbor_checks,
        average_speed=average_speed(agents),
        frame_duration_ms=duration_ms,
        fps=fps,
    )
