from __future__ import annotations

import math

from pygame.math import Vector2


def limit_magnitude(x: float, y: float, max_length: float) -> tuple[float, float]:
    if max_length <= 0.0:
        return 0.0, 0.0
    magnitude_sq = x * x + y * y
    if magnitude_sq <= max_length * max_length:
        return x, y
    magnitude = math.sqrt(magnitude_sq)
    if magnitude == 0.0:
        return 0.0, 0.0
    scale = max_length / magnitude
    return x * scale, y * scale


def normalize(x: float, y: float) -> tuple[float, float]:
    magnitude = math.sqrt(x * x + y * y)
    if magnitude == 0.0:
        return 0.0, 0.0
    return x / magnitude, y / magnitude


def heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)
