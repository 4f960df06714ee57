from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class PointerState:
    x: float = 0.0
    y: float = 0.0
    active: bool = False
    repel: bool = False

    def press(self, x: float, y: float, repel: bool = False) -> None:
        self.x = x
        self.y = y
        self.repel = repel
        self.active = True

    def move(self, x: float, y: float) -> None:
        self.x = x
        self.y = y

    def release(self) -> None:
        self.active = False
