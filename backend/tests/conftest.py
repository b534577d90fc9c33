"""Shared fixtures: fake clock, recording store, engine wiring."""

import asyncio
import os

# Settings are read at import time; tests never talk to Redis
os.environ.setdefault("STORE_BACKEND", "memory")

import pytest

from shuttle.core.orchestrator import ScenarioOrchestrator
from shuttle.core.publisher import LocationPublisher
from shuttle.core.routes import RouteCatalog, Waypoint
from shuttle.core.scheduler import create_scheduler
from shuttle.core.simulation import SimulationConfig, SimulationEngine
from shuttle.core.store import InMemoryBroadcastStore

# Two-waypoint route from LRT Bukit Jalil to the APU main entrance
POINT_A = Waypoint(3.0582, 101.69212, "A")
POINT_B = Waypoint(3.056069, 101.700466, "B")


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_750_000_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingStore(InMemoryBroadcastStore):
    """In-memory store that also logs every write/remove in order."""

    def __init__(self) -> None:
        super().__init__()
        self.ops: list[tuple] = []

    async def write(self, path, key, value):
        self.ops.append(("write", key, dict(value)))
        await super().write(path, key, value)

    async def remove(self, path, key):
        self.ops.append(("remove", key))
        await super().remove(path, key)

    def writes(self) -> list[dict]:
        return [op[2] for op in self.ops if op[0] == "write"]


class SlowRemoveStore(RecordingStore):
    """Remove takes a few milliseconds, like a round trip to Redis."""

    async def remove(self, path, key):
        await asyncio.sleep(0.01)
        await super().remove(path, key)


class FailingStore(InMemoryBroadcastStore):
    async def write(self, path, key, value):
        raise ConnectionError("store unavailable")

    async def remove(self, path, key):
        raise ConnectionError("store unavailable")


def make_config(
    route_id: str = "AB",
    bus_id: str = "BUS1",
    driver_id: str = "driver1",
    speed_kmh: float = 25,
    update_interval_ms: int = 2000,
) -> SimulationConfig:
    return SimulationConfig(
        route_id=route_id,
        bus_id=bus_id,
        driver_id=driver_id,
        driver_email=f"{driver_id}@apu.edu.my",
        speed_kmh=speed_kmh,
        update_interval_ms=update_interval_ms,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def scheduler():
    # Not started: jobs stay pending, so nothing fires on its own
    return create_scheduler()


@pytest.fixture
def catalog() -> RouteCatalog:
    return RouteCatalog(
        {
            "AB": [POINT_A, POINT_B],
            "LOOP": [POINT_A, POINT_B, Waypoint(3.06, 101.70, "C")],
            "POINT": [POINT_A, POINT_A],
        },
        default_route_id="AB",
    )


@pytest.fixture
def engine(store, scheduler, catalog, clock) -> SimulationEngine:
    publisher = LocationPublisher(store, path="activeDrivers", clock=clock)
    return SimulationEngine(publisher, scheduler, catalog, clock=clock)


@pytest.fixture
def orchestrator(engine, scheduler) -> ScenarioOrchestrator:
    return ScenarioOrchestrator(engine, scheduler)
