from __future__ import annotations

import asyncio
import json
import logging
import math
import os
from collections import deque
from contextlib import asynccontextmanager, suppress
from dataclasses import asdict, dataclass, fields
from typing import Any, AsyncIterator, Dict, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..sim.core.config import PARAM_RANGES, AppConfig, FlockingParams, UnknownPresetError
from ..sim.core.scheduler import Scheduler
from ..sim.core.world import World
from ..sim.types.snapshot import FrameSnapshot

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FLOCKING_CONFIG"

_PARAM_NAMES = {f.name for f in fields(FlockingParams)}


@dataclass(frozen=True)
class QueuedSnapshot:
    frame: int
    payload: str


class SimulationController:
    def __init__(self, config: AppConfig):
        self.config = config
        self.world = World(config.simulation)
        self.scheduler = Scheduler(running=False)
        self.broadcast_interval = max(1, config.broadcast_interval)
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        # Holds about one second of broadcasts; unacknowledged frames beyond that are dropped.
        queue_size = max(1, math.ceil(max(1.0, config.frame_rate) / self.broadcast_interval))
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=queue_size)
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self.scheduler.running

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
            logger.info("frame loop started at %.1f fps", self.config.frame_rate)
        self.scheduler.resume()

    async def stop(self) -> None:
        self.scheduler.pause()

    async def shutdown(self) -> None:
        self.scheduler.pause()
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
            logger.info("frame loop stopped")

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
        await self._clear_queue()
        await self._broadcast_snapshot()

    async def set_population(self, count: int) -> None:
        async with self._lock:
            self.world.set_population(count)
        await self._clear_queue()
        await self._broadcast_snapshot()

    async def resize(self, width: float, height: float) -> None:
        async with self._lock:
            self.world.resize(width, height)
        await self._clear_queue()
        await self._broadcast_snapshot()

    async def _clear_queue(self) -> None:
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(1.0 / max(1e-3, self.config.frame_rate))
            if not self.scheduler.running:
                continue
            async with self._lock:
                snapshot = self.scheduler.tick(self.world)
            if snapshot.frame % self.broadcast_interval == 0:
                await self._broadcast_snapshot(snapshot)

    async def acknowledge(self, frame: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].frame <= frame:
                self._snapshot_queue.popleft()

    def handle_pointer(self, message: Dict[str, Any]) -> None:
        pointer = self.world.pointer
        x = float(message.get("x", pointer.x))
        y = float(message.get("y", pointer.y))
        active = message.get("active")
        if active is None:
            pointer.move(x, y)
        elif active:
            pointer.press(x, y, repel=bool(message.get("repel", False)))
        else:
            pointer.move(x, y)
            pointer.release()

    def _serialize_snapshot(self, snapshot: FrameSnapshot | None = None) -> QueuedSnapshot:
        if snapshot is None:
            snapshot = self.world.snapshot(running=self.scheduler.running, fps=self.scheduler.fps)
        payload = {
            "type": "snapshot",
            "frame": snapshot.frame,
            "payload": {
                "frame": snapshot.frame,
                "running": snapshot.running,
                "fps": snapshot.fps,
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "trails": snapshot.trails,
                "world": asdict(snapshot.world),
                "pointer": asdict(snapshot.pointer),
            },
        }
        return QueuedSnapshot(frame=snapshot.frame, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.frame > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.frame
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self, snapshot: FrameSnapshot | None = None) -> None:
        if not self.clients:
            return
        queued = self._serialize_snapshot(snapshot)
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


def _number(payload: dict, key: str) -> float:
    if key not in payload:
        raise HTTPException(status_code=400, detail=f"Missing field: {key}")
    value = payload[key]
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"Field {key} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Field {key} must be a number") from None
    if not math.isfinite(number):
        raise HTTPException(status_code=400, detail=f"Field {key} must be finite")
    return number


def _flag(payload: dict, key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"Field {key} must be a boolean")
    return value


def _param_changes(payload: dict) -> Dict[str, float]:
    unknown = set(payload) - _PARAM_NAMES
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown parameters: {', '.join(sorted(unknown))}")
    return {key: _number(payload, key) for key in payload}


def load_server_config(path: str | os.PathLike[str] | None = None) -> AppConfig:
    """Read the server configuration from ``path`` or the ``FLOCKING_CONFIG`` YAML file.

    Without either, the stock defaults are used.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return AppConfig()
    logger.info("loading server config from %s", path)
    return AppConfig.from_yaml(path)


controller = SimulationController(load_server_config())


@asynccontextmanager
async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
    await controller.start()
    try:
        yield
    finally:
        await controller.shutdown()


app = FastAPI(title="Flocking Simulation", lifespan=_lifespan)


@app.get("/api/status")
async def status() -> JSONResponse:
    world = controller.world
    return JSONResponse(
        {
            "running": controller.running,
            "frame": world.frame,
            "fps": controller.scheduler.fps,
            "population": len(world.agents),
            "width": world.width,
            "height": world.height,
            "show_trails": world.config.show_trails,
            "params": asdict(world.params),
            "param_ranges": {name: list(bounds) for name, bounds in PARAM_RANGES.items()},
        }
    )


@app.get("/api/params")
async def get_params() -> JSONResponse:
    return JSONResponse(asdict(controller.world.params))


@app.put("/api/params")
async def replace_params(payload: dict) -> JSONResponse:
    changes = _param_changes(payload)
    controller.world.apply_params(FlockingParams(**changes))
    return JSONResponse(asdict(controller.world.params))


@app.patch("/api/params")
async def update_params(payload: dict) -> JSONResponse:
    params = controller.world.update_params(**_param_changes(payload))
    return JSONResponse(asdict(params))


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.scheduler.resume()
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.scheduler.pause()
    return JSONResponse({"running": False})


@app.post("/api/control/toggle")
async def toggle_simulation() -> JSONResponse:
    return JSONResponse({"running": controller.scheduler.toggle()})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "frame": controller.world.frame})


@app.post("/api/control/population")
async def set_population(payload: dict) -> JSONResponse:
    count = int(_number(payload, "count"))
    await controller.set_population(count)
    return JSONResponse({"population": len(controller.world.agents)})


@app.post("/api/control/resize")
async def resize_world(payload: dict) -> JSONResponse:
    await controller.resize(_number(payload, "width"), _number(payload, "height"))
    return JSONResponse({"width": controller.world.width, "height": controller.world.height})


@app.post("/api/control/preset")
async def apply_preset(payload: dict) -> JSONResponse:
    name = str(payload.get("name", ""))
    try:
        params = controller.world.apply_preset(name)
    except UnknownPresetError:
        raise HTTPException(status_code=400, detail=f"Unknown preset: {name}") from None
    return JSONResponse(asdict(params))


@app.post("/api/control/trails")
async def set_trails(payload: dict) -> JSONResponse:
    enabled = _flag(payload, "enabled", True)
    controller.world.set_trails_enabled(enabled)
    return JSONResponse({"show_trails": enabled})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type")
            if kind == "ack":
                frame = payload.get("frame")
                if isinstance(frame, int):
                    await controller.acknowledge(frame)
            elif kind == "pointer":
                try:
                    controller.handle_pointer(payload)
                except (TypeError, ValueError):
                    logger.debug("ignoring malformed pointer message: %s", message)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller"]
