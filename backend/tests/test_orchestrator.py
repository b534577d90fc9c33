"""Tests for ScenarioOrchestrator."""

import asyncio

import pytest

from conftest import SlowRemoveStore, make_config
from shuttle.core.orchestrator import ScenarioNotFoundError, ScenarioOrchestrator
from shuttle.core.publisher import LocationPublisher
from shuttle.core.routes import RouteCatalog
from shuttle.core.scenarios import ScenarioBus, ScenarioDefinition
from shuttle.core.scheduler import create_scheduler
from shuttle.core.simulation import SimulationEngine
from shuttle.core.store import InMemoryBroadcastStore


def make_scenarios(second_delay_ms: int = 15_000, interval_ms: int = 2000) -> dict[str, ScenarioDefinition]:
    # M_VERTICA takes ~25 minutes at 20 km/h, well beyond any test
    return {
        "PAIR": ScenarioDefinition(
            key="PAIR",
            name="Staggered pair",
            description="Two buses, second one delayed",
            buses=[
                ScenarioBus(make_config("M_VERTICA", "MV1", "d1", 20, interval_ms), 0),
                ScenarioBus(make_config("M_VERTICA", "MV2", "d2", 20, interval_ms), second_delay_ms),
            ],
        ),
        "SOLO": ScenarioDefinition(
            key="SOLO",
            name="Solo",
            description="One delayed bus",
            buses=[ScenarioBus(make_config("M_VERTICA", "S1", "d3", 20, interval_ms), 30_000)],
        ),
    }


@pytest.fixture
def long_engine(store, scheduler, clock):
    publisher = LocationPublisher(store, clock=clock)
    return SimulationEngine(publisher, scheduler, RouteCatalog(), clock=clock)


@pytest.fixture
def pair_orchestrator(long_engine, scheduler):
    return ScenarioOrchestrator(long_engine, scheduler, make_scenarios())


@pytest.mark.asyncio
async def test_delayed_bus_is_pending_until_its_start(pair_orchestrator, long_engine):
    await pair_orchestrator.start_scenario("PAIR")

    # t=0: only the undelayed bus runs, the scenario already counts as active
    assert [b for _, b, _ in long_engine.list_active()] == ["MV1"]
    assert pair_orchestrator.pending_starts() == ["scenario:PAIR:MV2"]
    status = pair_orchestrator.get_demo_status()
    assert status.active_buses == 1
    assert status.active_scenarios == ["PAIR"]

    # Deferred start fires
    bus = make_scenarios()["PAIR"].buses[1]
    await pair_orchestrator._start_deferred("PAIR", bus.config)
    assert sorted(b for _, b, _ in long_engine.list_active()) == ["MV1", "MV2"]
    assert pair_orchestrator.pending_starts() == []


@pytest.mark.asyncio
async def test_staggered_start_with_running_scheduler():
    # Same shape as a 0s / 15s dispatch, scaled down to keep the test fast
    scheduler = create_scheduler()
    engine = SimulationEngine(LocationPublisher(InMemoryBroadcastStore()), scheduler, RouteCatalog())
    orchestrator = ScenarioOrchestrator(engine, scheduler, make_scenarios(second_delay_ms=400, interval_ms=50))
    scheduler.start()
    try:
        await orchestrator.start_scenario("PAIR")
        await asyncio.sleep(0.1)
        assert len(engine.list_active()) == 1

        await asyncio.sleep(1.0)
        assert len(engine.list_active()) == 2
        assert all(state.progress > 0 for _, _, state in engine.list_active())

        await orchestrator.stop_all_demos()
        assert engine.list_active() == []
        assert scheduler.get_jobs() == []
    finally:
        scheduler.shutdown(wait=False)


@pytest.mark.asyncio
async def test_stop_scenario_cancels_pending_and_stops_buses(pair_orchestrator, long_engine, scheduler):
    await pair_orchestrator.start_scenario("PAIR")
    await pair_orchestrator.stop_scenario("PAIR")

    assert long_engine.list_active() == []
    assert pair_orchestrator.pending_starts() == []
    assert scheduler.get_jobs() == []
    assert pair_orchestrator.get_demo_status().active_scenarios == []


@pytest.mark.asyncio
async def test_stop_scenario_leaves_other_scenarios(pair_orchestrator, long_engine):
    await pair_orchestrator.start_scenario("PAIR")
    await pair_orchestrator.start_scenario("SOLO")
    await pair_orchestrator.stop_scenario("PAIR")

    assert pair_orchestrator.pending_starts() == ["scenario:SOLO:S1"]
    assert pair_orchestrator.get_demo_status().active_scenarios == ["SOLO"]


@pytest.mark.asyncio
async def test_stop_all_demos_stops_everything(pair_orchestrator, long_engine, scheduler, store):
    await pair_orchestrator.start_scenario("PAIR")
    await pair_orchestrator.start_scenario("SOLO")
    # Ad-hoc bus outside any scenario
    await long_engine.start(make_config("FORTUNE_PARK", "FP9", "d9", 22))

    await pair_orchestrator.stop_all_demos()

    assert long_engine.list_active() == []
    status = pair_orchestrator.get_demo_status()
    assert status.active_scenarios == []
    assert status.active_buses == 0
    assert pair_orchestrator.pending_starts() == []
    assert scheduler.get_jobs() == []
    assert await store.read("activeDrivers") is None


@pytest.mark.asyncio
async def test_stop_all_demos_with_nothing_running(pair_orchestrator):
    await pair_orchestrator.stop_all_demos()
    await pair_orchestrator.stop_all_demos()
    assert pair_orchestrator.get_demo_status().active_buses == 0


@pytest.mark.asyncio
async def test_restarting_scenario_does_not_duplicate(pair_orchestrator, long_engine, scheduler):
    await pair_orchestrator.start_scenario("PAIR")
    await pair_orchestrator.start_scenario("PAIR")

    assert len(long_engine.list_active()) == 1
    assert len(scheduler.get_jobs()) == 2  # one tick timer + one deferred start
    assert pair_orchestrator.get_demo_status().active_scenarios == ["PAIR"]


@pytest.mark.asyncio
async def test_unknown_scenario(pair_orchestrator):
    with pytest.raises(ScenarioNotFoundError):
        await pair_orchestrator.start_scenario("NOPE")
    with pytest.raises(ScenarioNotFoundError):
        await pair_orchestrator.stop_scenario("NOPE")
    with pytest.raises(ScenarioNotFoundError):
        pair_orchestrator.get_scenario_info("NOPE")


@pytest.mark.asyncio
async def test_demo_status_reports_progress(pair_orchestrator, long_engine, clock):
    await pair_orchestrator.start_scenario("PAIR")
    state = long_engine.get_state("d1", "MV1")

    clock.advance(state.total_traversal_ms * 0.5)
    await long_engine.tick("d1", "MV1")

    status = pair_orchestrator.get_demo_status()
    bus = status.buses[0]
    assert bus.bus_id == "MV1"
    assert bus.driver_id == "d1"
    assert bus.route_id == "M_VERTICA"
    assert bus.progress_percent == 50
    assert bus.waypoint_index == 4
    assert bus.total_waypoints == 10
    assert bus.running_time_seconds == round(state.total_traversal_ms * 0.5 / 1000)


def test_available_scenarios_default_catalog(orchestrator):
    scenarios = {s.key: s for s in orchestrator.get_available_scenarios()}
    assert scenarios["FULL_SERVICE"].bus_count == 5
    assert scenarios["BIDIRECTIONAL"].bus_count == 2
    assert scenarios["BIDIRECTIONAL"].name == "Bidirectional Traffic"


def test_scenario_info_lists_buses(orchestrator):
    info = orchestrator.get_scenario_info("BIDIRECTIONAL")
    assert [(b.bus_id, b.route_id, b.start_delay_ms) for b in info.buses] == [
        ("LRT001", "LRT_BUKIT_JALIL", 0),
        ("LRT002", "APU_TO_LRT", 15_000),
    ]


@pytest.mark.asyncio
async def test_dispose_cancels_pending_starts(pair_orchestrator, scheduler):
    await pair_orchestrator.start_scenario("SOLO")
    pair_orchestrator.dispose()
    assert pair_orchestrator.pending_starts() == []
    assert scheduler.get_jobs() == []


@pytest.fixture
def slow_orchestrator(scheduler, clock):
    publisher = LocationPublisher(SlowRemoveStore(), clock=clock)
    engine = SimulationEngine(publisher, scheduler, RouteCatalog(), clock=clock)
    return ScenarioOrchestrator(engine, scheduler, make_scenarios())


@pytest.mark.asyncio
async def test_stop_all_demos_cancels_deferred_start_in_progress(slow_orchestrator, scheduler):
    engine = slow_orchestrator.engine
    bus = make_scenarios()["SOLO"].buses[0]
    # The date job has fired and the engine is retracting the previous record
    starting = asyncio.create_task(slow_orchestrator._start_deferred("SOLO", bus.config))
    await asyncio.sleep(0)
    assert engine.starting() == [("d3", "S1")]

    await slow_orchestrator.stop_all_demos()
    await starting

    assert engine.list_active() == []
    assert not engine.has_timer("d3", "S1")
    assert scheduler.get_jobs() == []


@pytest.mark.asyncio
async def test_stop_scenario_cancels_deferred_start_in_progress(slow_orchestrator, scheduler):
    engine = slow_orchestrator.engine
    bus = make_scenarios()["PAIR"].buses[1]
    starting = asyncio.create_task(slow_orchestrator._start_deferred("PAIR", bus.config))
    await asyncio.sleep(0)

    await slow_orchestrator.stop_scenario("PAIR")
    await starting

    assert engine.list_active() == []
    assert scheduler.get_jobs() == []
