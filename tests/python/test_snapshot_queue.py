import asyncio
import json

from flocking.app.server import SimulationController
from flocking.sim.core.config import AppConfig, SimulationConfig


class _RecordingClient:
    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send_text(self, text: str) -> None:
        self.sent.append(text)


def _controller(frame_rate: float = 60.0) -> SimulationController:
    return SimulationController(
        AppConfig(simulation=SimulationConfig(seed=4, boid_count=12, width=200.0, height=150.0), frame_rate=frame_rate)
    )


def _connect(controller: SimulationController) -> _RecordingClient:
    client = _RecordingClient()
    controller.clients.add(client)
    controller._client_last_sent[client] = -1
    return client


def test_snapshot_queue_ack_cleanup() -> None:
    controller = _controller()
    client = _connect(controller)
    controller.scheduler.resume()

    async def exercise() -> None:
        await controller._broadcast_snapshot(controller.scheduler.tick(controller.world))
        await controller._broadcast_snapshot(controller.scheduler.tick(controller.world))
        async with controller._queue_lock:
            queued_frames = [item.frame for item in controller._snapshot_queue]
        assert queued_frames == [1, 2]
        await controller.acknowledge(1)
        async with controller._queue_lock:
            remaining_frames = [item.frame for item in controller._snapshot_queue]
        assert remaining_frames == [2]
        assert [json.loads(text)["frame"] for text in client.sent] == [1, 2]

    asyncio.run(exercise())


def test_serialized_snapshot_payload() -> None:
    controller = _controller()
    controller.world.step()

    queued = controller._serialize_snapshot()
    message = json.loads(queued.payload)

    assert message["type"] == "snapshot"
    assert message["frame"] == queued.frame == 1
    payload = message["payload"]
    assert payload["running"] is False
    assert len(payload["agents"]) == 12
    assert len(payload["trails"]) == 12
    assert payload["world"] == {"width": 200.0, "height": 150.0, "show_trails": True}
    assert payload["metrics"]["population"] == 12


def test_population_change_resets_queue() -> None:
    controller = _controller()
    _connect(controller)

    async def exercise() -> None:
        controller.world.step()
        await controller._broadcast_snapshot()
        await controller.set_population(3)
        async with controller._queue_lock:
            queued = list(controller._snapshot_queue)
        assert len(queued) == 1
        assert len(json.loads(queued[0].payload)["payload"]["agents"]) == 3

    asyncio.run(exercise())


def test_pointer_messages_update_pointer_state() -> None:
    controller = _controller()
    pointer = controller.world.pointer

    controller.handle_pointer({"type": "pointer", "x": 10, "y": 20, "active": True, "repel": True})
    assert (pointer.x, pointer.y, pointer.active, pointer.repel) == (10.0, 20.0, True, True)

    controller.handle_pointer({"type": "pointer", "x": 15, "y": 25})
    assert (pointer.x, pointer.y, pointer.active) == (15.0, 25.0, True)

    controller.handle_pointer({"type": "pointer", "active": False})
    assert pointer.active is False
    assert (pointer.x, pointer.y) == (15.0, 25.0)


def test_frame_loop_advances_until_shutdown() -> None:
    controller = SimulationController(
        AppConfig(simulation=SimulationConfig(seed=4, boid_count=12, width=200.0, height=150.0), frame_rate=500.0)
    )

    async def exercise() -> None:
        await controller.start()
        assert controller.running
        await asyncio.sleep(0.1)
        await controller.shutdown()
        frames = controller.world.frame
        assert frames >= 1
        assert not controller.running
        await asyncio.sleep(0.02)
        assert controller.world.frame == frames

    asyncio.run(exercise())


def test_frame_loop_without_clients_queues_nothing() -> None:
    controller = _controller(frame_rate=1000.0)

    async def exercise() -> None:
        await controller.start()
        await asyncio.sleep(0.2)
        await controller.shutdown()
        assert controller.world.frame >= 1
        async with controller._queue_lock:
            assert len(controller._snapshot_queue) == 0

    asyncio.run(exercise())


def test_unacknowledged_snapshots_are_capped_to_one_second() -> None:
    controller = _controller(frame_rate=5.0)
    client = _connect(controller)
    controller.scheduler.resume()

    async def exercise() -> None:
        for _ in range(12):
            await controller._broadcast_snapshot(controller.scheduler.tick(controller.world))
        async with controller._queue_lock:
            queued_frames = [item.frame for item in controller._snapshot_queue]
        assert queued_frames == [8, 9, 10, 11, 12]
        assert len(client.sent) == 12

    asyncio.run(exercise())
