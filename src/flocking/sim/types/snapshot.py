from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import FrameMetrics


@dataclass(slots=True)
class FrameSnapshot:
    frame: int
    running: bool
    fps: int
    metrics: FrameMetrics
    agents: List[Dict[str, Any]]
    trails: List[List[List[float]]]
    world: "SnapshotWorld"
    pointer: "SnapshotPointer"


@dataclass(slots=True)
class SnapshotWorld:
    width: float
    height: float
    show_trails: bool


@dataclass(slots=True)
class SnapshotPointer:
    x: float
    y: float
    active: bool
    repel: bool
    radius: float
