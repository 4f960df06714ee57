from __future__ import annotations

import logging
from time import perf_counter
from typing import Callable

from .world import World
from ..systems.metrics import FrameRateMeter
from ..types.snapshot import FrameSnapshot

logger = logging.getLogger(__name__)


class Scheduler:
    """Run/pause state machine that advances a :class:`World` one frame per tick.

    The scheduler owns no timing source: a driver (async loop, headless runner
    or test) calls :meth:`tick` once per display frame.
    """

    def __init__(self, running: bool = True, clock: Callable[[], float] = perf_counter):
        self._running = running
        self._clock = clock
        self._meter = FrameRateMeter()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def fps(self) -> int:
        return self._meter.fps

    def resume(self) -> None:
        if not self._running:
            logger.info("simulation resumed")
        self._running = True

    def pause(self) -> None:
        if self._running:
            logger.info("simulation paused")
        self._running = False

    def toggle(self) -> bool:
        if self._running:
            self.pause()
        else:
            self.resume()
        return self._running

    def tick(self, world: World, now: float | None = None) -> FrameSnapshot:
        if self._running:
            metrics = world.step()
            metrics.fps = self._meter.record_frame(self._clock() if now is None else now)
        return world.snapshot(running=self._running, fps=self._meter.fps)
