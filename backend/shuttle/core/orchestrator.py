"""Named multi-bus demo scenarios with staggered, cancellable starts."""

import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from shuttle.core.scenarios import DEMO_SCENARIOS, ScenarioDefinition
from shuttle.core.simulation import SimulationConfig, SimulationEngine
from shuttle.schemas.demo import BusStatus, DemoStatus, ScenarioBusInfo, ScenarioInfo, ScenarioSummary

logger = logging.getLogger(__name__)


class ScenarioNotFoundError(LookupError):
    pass


def pending_job_id(scenario_key: str, bus_id: str) -> str:
    return f"scenario:{scenario_key}:{bus_id}"


class ScenarioOrchestrator:
    """Starts and stops bundles of simulated buses on one SimulationEngine.

    A scenario counts as active from the moment all of its starts are
    scheduled, so a status query may list it before any delayed bus has
    begun broadcasting.
    """

    def __init__(
        self,
        engine: SimulationEngine,
        scheduler: AsyncIOScheduler,
        scenarios: dict[str, ScenarioDefinition] | None = None,
    ) -> None:
        self.engine = engine
        self.scheduler = scheduler
        self.scenarios = scenarios if scenarios is not None else DEMO_SCENARIOS
        # Insertion-ordered set of active scenario keys
        self._active: dict[str, None] = {}
        # (scenario_key, bus_id) -> scheduler job id of a deferred start
        self._pending: dict[tuple[str, str], str] = {}

    def _get(self, key: str) -> ScenarioDefinition:
        scenario = self.scenarios.get(key)
        if scenario is None:
            raise ScenarioNotFoundError(key)
        return scenario

    async def start_scenario(self, key: str) -> None:
        scenario = self._get(key)
        logger.info("Starting %s scenario with %d buses", scenario.name, len(scenario.buses))

        for bus in scenario.buses:
            if bus.start_delay_ms > 0:
                self._cancel_pending(key, bus.config.bus_id)
                job_id = pending_job_id(key, bus.config.bus_id)
                run_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
                    milliseconds=bus.start_delay_ms,
                )
                self.scheduler.add_job(
                    self._start_deferred,
                    "date",
                    run_date=run_at,
                    args=[key, bus.config],
                    id=job_id,
                    name=f"Deferred start of {bus.config.bus_id} ({key})",
                    replace_existing=True,
                    misfire_grace_time=None,
                )
                self._pending[(key, bus.config.bus_id)] = job_id
            else:
                await self._start_bus(bus.config)

        self._active[key] = None
        logger.info("%s scenario scheduled", scenario.name)

    async def _start_deferred(self, key: str, config: SimulationConfig) -> None:
        self._pending.pop((key, config.bus_id), None)
        await self._start_bus(config)

    async def _start_bus(self, config: SimulationConfig) -> None:
        try:
            await self.engine.start(config)
        except Exception:
            logger.exception("Failed to start bus %s", config.bus_id)

    async def stop_scenario(self, key: str) -> None:
        scenario = self._get(key)
        logger.info("Stopping %s scenario", scenario.name)

        for bus in scenario.buses:
            self._cancel_pending(key, bus.config.bus_id)
            await self.engine.stop(bus.config.driver_id, bus.config.bus_id)

        self._active.pop(key, None)
        logger.info("%s scenario stopped", scenario.name)

    async def stop_all_demos(self) -> None:
        """Cancel every pending start and stop every running simulation."""
        logger.info("Stopping all demos")
        for scenario_key, bus_id in list(self._pending):
            self._cancel_pending(scenario_key, bus_id)

        # Starts already handed to the engine count too, even without a timer yet
        keys = [(driver_id, bus_id) for driver_id, bus_id, _ in self.engine.list_active()]
        keys += [key for key in self.engine.starting() if key not in keys]
        for driver_id, bus_id in keys:
            await self.engine.stop(driver_id, bus_id)

        self._active.clear()
        logger.info("All demos stopped")

    def get_demo_status(self) -> DemoStatus:
        buses = [
            BusStatus(
                bus_id=bus_id,
                driver_id=driver_id,
                route_id=state.route_id,
                progress_percent=round(state.progress * 100),
                waypoint_index=state.current_waypoint_index,
                total_waypoints=len(state.waypoints),
                running_time_seconds=self.engine.running_time_seconds(state),
            )
            for driver_id, bus_id, state in self.engine.list_active()
        ]
        return DemoStatus(
            active_buses=len(buses),
            buses=buses,
            active_scenarios=list(self._active),
        )

    def get_available_scenarios(self) -> list[ScenarioSummary]:
        return [
            ScenarioSummary(
                key=key,
                name=scenario.name,
                description=scenario.description,
                bus_count=len(scenario.buses),
            )
            for key, scenario in self.scenarios.items()
        ]

    def get_scenario_info(self, key: str) -> ScenarioInfo:
        scenario = self._get(key)
        return ScenarioInfo(
            key=key,
            name=scenario.name,
            description=scenario.description,
            bus_count=len(scenario.buses),
            buses=[
                ScenarioBusInfo(
                    bus_id=bus.config.bus_id,
                    driver_id=bus.config.driver_id,
                    route_id=bus.config.route_id,
                    speed_kmh=bus.config.speed_kmh,
                    start_delay_ms=bus.start_delay_ms,
                )
                for bus in scenario.buses
            ],
        )

    def pending_starts(self) -> list[str]:
        return list(self._pending.values())

    def dispose(self) -> None:
        """Cancel pending starts and forget active scenarios; running buses belong to the engine."""
        for scenario_key, bus_id in list(self._pending):
            self._cancel_pending(scenario_key, bus_id)
        self._active.clear()

    def _cancel_pending(self, scenario_key: str, bus_id: str) -> None:
        job_id = self._pending.pop((scenario_key, bus_id), None)
        if job_id and self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
