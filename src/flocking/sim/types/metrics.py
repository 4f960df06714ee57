from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class FrameMetrics:
    frame: int
    population: int
    neighbor_checks: int
    average_speed: float
    frame_duration_ms: float = 0.0
    fps: int = 0
