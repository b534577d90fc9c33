"""WebSocket endpoints for real-time bus positions."""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from shuttle.core.subscription import BusTracker, StopReason
from shuttle.schemas.location import LocationRecord

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py
client = None

QUEUE_SIZE = 10


def _offer(queue: asyncio.Queue, payload: bytes) -> None:
    try:
        queue.put_nowait(payload)
    except asyncio.QueueFull:
        # Slow consumer: drop this frame, the next snapshot supersedes it
        logger.debug("WebSocket queue full, dropping update")


async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> bool:
    """Forward queued payloads; True when a ``None`` sentinel ended the stream."""
    try:
        while True:
            data = await queue.get()
            if data is None:
                return True
            await websocket.send_bytes(data)
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("WebSocket error")
    return False


@router.websocket("/ws/buses")
async def buses_ws(websocket: WebSocket) -> None:
    """Stream the full map of active buses on every change."""
    await websocket.accept()

    if client is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)

    def on_buses(buses: dict[str, LocationRecord]) -> None:
        _offer(queue, orjson.dumps({
            "type": "buses",
            "buses": {bus_id: r.model_dump() for bus_id, r in buses.items()},
        }))

    subscription = client.subscribe_to_all_active_buses(on_buses)
    try:
        await _pump(websocket, queue)
    finally:
        subscription.unsubscribe()


@router.websocket("/ws/buses/{bus_id}")
async def bus_ws(websocket: WebSocket, bus_id: str) -> None:
    """Stream one bus; send a single ``stopped`` message and close when it goes idle."""
    await websocket.accept()

    if client is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)

    def on_location(record: LocationRecord) -> None:
        _offer(queue, orjson.dumps({"type": "location", "location": record.model_dump()}))

    def on_stopped(stopped_bus_id: str, reason: StopReason) -> None:
        # The stop notice and end sentinel must not be dropped
        while queue.qsize() > QUEUE_SIZE - 2:
            queue.get_nowait()
        queue.put_nowait(orjson.dumps({
            "type": "stopped", "bus_id": stopped_bus_id, "reason": reason.value,
        }))
        queue.put_nowait(None)

    tracker = BusTracker(client, on_stopped=on_stopped, on_location=on_location)
    tracker.start_tracking(bus_id)
    try:
        finished = await _pump(websocket, queue)
    finally:
        tracker.stop_tracking()
    if finished:
        await websocket.close()
