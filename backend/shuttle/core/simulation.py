"""Simulated bus movement: one repeating timer per (driver, bus) pair."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from shuttle.core.geometry import position_at_progress, segment_index_at_progress, total_distance
from shuttle.core.publisher import LocationPublisher
from shuttle.core.routes import RouteCatalog, Waypoint

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000

SimulationKey = tuple[str, str]  # (driver_id, bus_id)


def now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class SimulationConfig:
    route_id: str
    bus_id: str
    driver_id: str
    driver_email: str | None = None
    speed_kmh: float = 25.0
    update_interval_ms: int = 2000

    def __post_init__(self) -> None:
        if self.speed_kmh <= 0:
            raise ValueError(f"speed_kmh must be positive, got {self.speed_kmh}")
        if self.update_interval_ms <= 0:
            raise ValueError(f"update_interval_ms must be positive, got {self.update_interval_ms}")

    @property
    def key(self) -> SimulationKey:
        return (self.driver_id, self.bus_id)


@dataclass
class SimulationState:
    is_running: bool
    current_waypoint_index: int
    progress: float  # 0.0–1.0 of total traversal time
    start_time_ms: float
    config: SimulationConfig
    route_id: str  # resolved id, may differ from config.route_id after fallback
    waypoints: list[Waypoint]
    total_traversal_ms: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


def job_id_for(driver_id: str, bus_id: str) -> str:
    return f"sim:{driver_id}:{bus_id}"


class SimulationEngine:
    """Drives simulated buses along their routes and publishes each position."""

    def __init__(
        self,
        publisher: LocationPublisher,
        scheduler: AsyncIOScheduler,
        routes: RouteCatalog | None = None,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.publisher = publisher
        self.scheduler = scheduler
        self.routes = routes or RouteCatalog()
        self._clock = clock
        self._states: dict[SimulationKey, SimulationState] = {}
        # Bumped by every start and stop of a key; an in-flight start that sees
        # a different epoch after its awaits has been cancelled or superseded
        self._epochs: dict[SimulationKey, int] = {}
        # Keys whose start is still awaiting the store, with the epoch it holds
        self._starting: dict[SimulationKey, int] = {}

    async def start(self, config: SimulationConfig) -> bool:
        """Start (or restart) the simulation for ``config.key``.

        Returns False when a stop (or a newer start) for the same key lands
        while the previous run is being retracted.
        """
        key = config.key
        epoch = self._bump(key)
        self._starting[key] = epoch
        try:
            await self._halt(config.driver_id, config.bus_id)
        finally:
            if self._starting.get(key) == epoch:
                del self._starting[key]
        if self._epochs.get(key) != epoch:
            logger.info("Start of bus %s (driver %s) cancelled", config.bus_id, config.driver_id)
            return False

        route_id, waypoints = self.routes.resolve(config.route_id)
        distance_km = total_distance(waypoints)
        total_traversal_ms = distance_km / config.speed_kmh * MS_PER_HOUR

        state = SimulationState(
            is_running=True,
            current_waypoint_index=0,
            progress=0.0,
            start_time_ms=self._clock(),
            config=config,
            route_id=route_id,
            waypoints=waypoints,
            total_traversal_ms=total_traversal_ms,
        )
        self._states[config.key] = state

        self.scheduler.add_job(
            self.tick,
            "interval",
            seconds=config.update_interval_ms / 1000,
            args=[config.driver_id, config.bus_id, state],
            id=job_id_for(config.driver_id, config.bus_id),
            name=f"Simulate bus {config.bus_id} on {route_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Simulation started: %s - bus %s (driver %s), %.2f km at %.0f km/h, ~%ds",
            route_id, config.bus_id, config.driver_id, distance_km, config.speed_kmh,
            round(total_traversal_ms / 1000),
        )
        return True

    async def tick(self, driver_id: str, bus_id: str, run: SimulationState | None = None) -> None:
        """Advance one simulation step: compute position, publish it, auto-stop at the end."""
        key = (driver_id, bus_id)
        state = self._states.get(key)
        if state is None or not state.is_running:
            return
        if run is not None and run is not state:
            # Timer belongs to a run that has since been replaced
            return

        async with state.lock:
            if self._states.get(key) is not state or not state.is_running:
                return

            progress = self._progress(state, self._clock())
            lat, lng = position_at_progress(state.waypoints, progress)
            await self.publisher.write_location(
                driver_id, bus_id, lat, lng, driver_email=state.config.driver_email,
            )
            state.current_waypoint_index = segment_index_at_progress(len(state.waypoints), progress)
            state.progress = progress

            if progress >= 1.0:
                # Final position is already written; retract liveness after it
                logger.info("Simulation completed: %s - bus %s", state.route_id, bus_id)
                self._release(key, state)
                await self.publisher.remove_location(driver_id)

    async def stop(self, driver_id: str, bus_id: str) -> bool:
        """Stop the simulation for a key. Safe to call when nothing is running.

        Also cancels a start for the same key that has not registered its timer yet.
        """
        self._bump((driver_id, bus_id))
        await self._halt(driver_id, bus_id)
        return True

    def starting(self) -> list[SimulationKey]:
        """Keys whose start is still retracting the previous run."""
        return list(self._starting)

    def get_state(self, driver_id: str, bus_id: str) -> SimulationState | None:
        return self._states.get((driver_id, bus_id))

    def is_running(self, driver_id: str, bus_id: str) -> bool:
        state = self._states.get((driver_id, bus_id))
        return state is not None and state.is_running

    def has_timer(self, driver_id: str, bus_id: str) -> bool:
        return self.scheduler.get_job(job_id_for(driver_id, bus_id)) is not None

    def list_active(self) -> list[tuple[str, str, SimulationState]]:
        """Return (driver_id, bus_id, state) for every running simulation."""
        return [
            (driver_id, bus_id, state)
            for (driver_id, bus_id), state in self._states.items()
            if state.is_running
        ]

    def running_time_seconds(self, state: SimulationState) -> int:
        return round((self._clock() - state.start_time_ms) / 1000)

    def dispose(self) -> None:
        """Cancel every timer and forget all state. Published records are left as-is."""
        for key in list(self._starting):
            self._bump(key)
        for key, state in list(self._states.items()):
            self._release(key, state)

    def _bump(self, key: SimulationKey) -> int:
        epoch = self._epochs.get(key, 0) + 1
        self._epochs[key] = epoch
        return epoch

    async def _halt(self, driver_id: str, bus_id: str) -> None:
        key = (driver_id, bus_id)
        state = self._states.get(key)
        if state is not None:
            # Wait out an in-flight tick so its write cannot land after the retract
            async with state.lock:
                self._release(key, state)
        else:
            self._remove_job(key)

        await self.publisher.remove_location(driver_id)
        if state is not None:
            logger.info("Simulation stopped: bus %s (driver %s)", bus_id, driver_id)

    @staticmethod
    def _progress(state: SimulationState, now: float) -> float:
        if state.total_traversal_ms <= 0:
            # All waypoints coincide: nothing to traverse
            return 1.0
        elapsed = max(0.0, now - state.start_time_ms)
        return min(elapsed / state.total_traversal_ms, 1.0)

    def _release(self, key: SimulationKey, state: SimulationState) -> None:
        state.is_running = False
        # A superseded run must not cancel the timer of the run that replaced it
        if self._states.get(key) is state:
            del self._states[key]
            self._remove_job(key)

    def _remove_job(self, key: SimulationKey) -> None:
        job_id = job_id_for(*key)
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
