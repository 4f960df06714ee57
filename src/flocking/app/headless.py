from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig, preset_params
from ..sim.core.scheduler import Scheduler
from ..sim.core.world import World

logger = logging.getLogger(__name__)

_BASIC_HEADER = [
    "frame",
    "population",
    "neighbor_checks",
    "avg_speed",
    "frame_ms",
]

_DETAILED_HEADER = [
    "frame",
    "population",
    "neighbor_checks",
    "avg_speed",
    "frame_ms",
    "neighbor_checks_per_agent",
    "frame_ms_per_agent",
    "max_speed",
    "centroid_x",
    "centroid_y",
    "polarization",
    "avg_trail_length",
]


def _format_basic_row(metrics: object, frame_ms: float) -> list[object]:
    return [
        metrics.frame,
        metrics.population,
        metrics.neighbor_checks,
        f"{metrics.average_speed:.4f}",
        f"{frame_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: object, frame_ms: float) -> list[object]:
    population = metrics.population
    if population <= 0:
        neighbor_checks_per_agent = 0.0
        frame_ms_per_agent = 0.0
        max_speed = 0.0
        centroid_x = 0.0
        centroid_y = 0.0
        polarization = 0.0
        avg_trail_length = 0.0
    else:
        neighbor_checks_per_agent = metrics.neighbor_checks / population
        frame_ms_per_agent = frame_ms / population
        max_speed = 0.0
        sum_x = 0.0
        sum_y = 0.0
        heading_x = 0.0
        heading_y = 0.0
        for agent in world.agents:
            velocity = agent.velocity
            speed = math.hypot(velocity.x, velocity.y)
            if speed > max_speed:
                max_speed = speed
            if speed > 0.0:
                heading_x += velocity.x / speed
                heading_y += velocity.y / speed
            sum_x += agent.position.x
            sum_y += agent.position.y
        centroid_x = sum_x / population
        centroid_y = sum_y / population
        # 1.0 when every agent heads the same way, near 0.0 for random headings.
        polarization = math.hypot(heading_x, heading_y) / population
        avg_trail_length = sum(len(trail) for trail in world.trails) / population

    return [
        metrics.frame,
        population,
        metrics.neighbor_checks,
        f"{metrics.average_speed:.4f}",
        f"{frame_ms:.3f}",
        f"{neighbor_checks_per_agent:.4f}",
        f"{frame_ms_per_agent:.4f}",
        f"{max_speed:.4f}",
        f"{centroid_x:.4f}",
        f"{centroid_y:.4f}",
        f"{polarization:.4f}",
        f"{avg_trail_length:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    count = len(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / count),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 500,
    boids: Optional[int] = None,
    preset: Optional[str] = None,
    config_path: Optional[Path] = None,
) -> World:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    if boids is not None:
        config.boid_count = boids
    if preset is not None:
        config.params = preset_params(preset)

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    world = World(config)
    scheduler = Scheduler(running=True)
    logger.info("running %d frames with %d boids (seed=%d)", steps, len(world.agents), config.seed)

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    frame_ms_series: list[float] = []
    speed_series: list[float] = []
    neighbor_checks_series: list[float] = []
    max_frame_ms = (-1.0, -1)

    try:
        for _ in range(steps):
            scheduler.tick(world)
            metrics = world.metrics
            frame_ms = 0.0 if deterministic_log else metrics.frame_duration_ms

            if summary_path:
                frame_ms_series.append(frame_ms)
                speed_series.append(metrics.average_speed)
                neighbor_checks_series.append(float(metrics.neighbor_checks))
                if frame_ms > max_frame_ms[0]:
                    max_frame_ms = (frame_ms, metrics.frame)

            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, frame_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, frame_ms))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(frame_ms_series) - window), len(frame_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "boids": len(world.agents),
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "params": asdict(config.params),
            "frame_ms": _summary_stats(frame_ms_series),
            "average_speed": _summary_stats(speed_series),
            "neighbor_checks": _summary_stats(neighbor_checks_series),
            "over_budget": {
                "frame_ms_gt_16": sum(1 for value in frame_ms_series if value > 16.7),
                "frame_ms_gt_33": sum(1 for value in frame_ms_series if value > 33.3),
            },
            "peaks": {
                "frame_ms": {"value": float(max_frame_ms[0]), "frame": max_frame_ms[1]},
            },
            "tail_window": {
                "window": window,
                "frame_ms": _summary_stats(frame_ms_series[tail_slice]),
                "average_speed": _summary_stats(speed_series[tail_slice]),
                "neighbor_checks": _summary_stats(neighbor_checks_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))

    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless flocking simulation")
    parser.add_argument("--steps", type=int, default=600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--boids", type=int, default=None, help="Population size (defaults to the config value).")
    parser.add_argument("--preset", default=None, help="Parameter preset: flock, swarm, chaos, order or vortex.")
    parser.add_argument("--config", type=Path, default=None, help="YAML file with simulation settings.")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write per-frame metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=500,
        help="Tail window size (frames) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (frame_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level.")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        boids=args.boids,
        preset=args.preset,
        config_path=args.config,
    )


if __name__ == "__main__":
    main()
