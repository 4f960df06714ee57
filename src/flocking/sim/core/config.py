from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Tuple

import yaml


class UnknownPresetError(KeyError):
    pass


@dataclass
class FlockingParams:
    separation: float = 1.5
    alignment: float = 1.0
    cohesion: float = 1.0
    perception_radius: float = 50.0
    max_speed: float = 4.0
    # Exposed for tuning but never applied to the accumulated steering.
    max_force: float = 0.1
    trail_length: float = 8.0
    # Pointer interaction radius; the force falls off linearly to zero at this distance.
    mouse_force: float = 100.0


@dataclass
class SimulationConfig:
    boid_count: int = 1500
    width: float = 1280.0
    height: float = 720.0
    seed: int = 42
    show_trails: bool = True
    trail_interval: int = 2
    use_spatial_grid: bool = True
    params: FlockingParams = field(default_factory=FlockingParams)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


@dataclass
class AppConfig:
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    frame_rate: float = 60.0
    broadcast_interval: int = 1

    @staticmethod
    def from_yaml(path: Path) -> "AppConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_app_config(data)


PRESETS: Dict[str, Dict[str, float]] = {
    "flock": {},
    "swarm": {"separation": 0.5, "alignment": 2.0, "cohesion": 2.0},
    "chaos": {"separation": 0.2, "alignment": 0.5, "cohesion": 0.3, "max_speed": 8.0},
    "order": {"separation": 2.0, "alignment": 2.0, "cohesion": 1.0, "max_speed": 2.0},
    "vortex": {"separation": 1.0, "alignment": 0.5, "cohesion": 0.5, "mouse_force": 300.0},
}

# (min, max, step) of the stock control panel sliders, reported by the web status endpoint. Not enforced.
PARAM_RANGES: Dict[str, Tuple[float, float, float]] = {
    "boid_count": (100, 3000, 100),
    "separation": (0.0, 3.0, 0.1),
    "alignment": (0.0, 3.0, 0.1),
    "cohesion": (0.0, 3.0, 0.1),
    "perception_radius": (10.0, 150.0, 5.0),
    "max_speed": (1.0, 10.0, 0.5),
    "max_force": (0.01, 0.5, 0.01),
    "trail_length": (0, 30, 1),
}


def preset_params(name: str) -> FlockingParams:
    """Return a fresh parameter set for ``name``, starting from the defaults."""
    key = name.lower().strip()
    if key not in PRESETS:
        raise UnknownPresetError(f"Unknown preset: {name}")
    return replace(FlockingParams(), **PRESETS[key])


def load_params(raw: dict | None) -> FlockingParams:
    raw = dict(raw or {})
    preset = raw.pop("preset", None)
    base = preset_params(preset) if preset else FlockingParams()
    return replace(base, **{k: float(v) for k, v in raw.items()})


def load_config(raw: dict) -> SimulationConfig:
    params = load_params(raw.get("params"))
    sim_values = {k: v for k, v in raw.items() if k != "params"}
    return SimulationConfig(params=params, **sim_values)


def load_app_config(raw: dict) -> AppConfig:
    simulation = load_config(raw.get("simulation", {}))
    app_values = {k: v for k, v in raw.items() if k != "simulation"}
    return AppConfig(simulation=simulation, **app_values)
