"""Demo mode REST API: scenarios and ad-hoc simulated buses."""

from fastapi import APIRouter, HTTPException

from shuttle.config import settings
from shuttle.core.orchestrator import ScenarioNotFoundError
from shuttle.core.routes import ROUTE_PRESETS
from shuttle.core.simulation import SimulationConfig
from shuttle.schemas.demo import DemoStatus, ScenarioInfo, ScenarioSummary, StartSimulationRequest

router = APIRouter(prefix="/api/demo", tags=["demo"])

# Will be set by main.py
engine = None
orchestrator = None


def _require_orchestrator():
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Demo service not ready")
    return orchestrator


@router.get("/scenarios", response_model=list[ScenarioSummary])
async def list_scenarios():
    """List the predefined multi-bus scenarios."""
    return _require_orchestrator().get_available_scenarios()


@router.get("/scenarios/{key}", response_model=ScenarioInfo)
async def get_scenario(key: str):
    try:
        return _require_orchestrator().get_scenario_info(key)
    except ScenarioNotFoundError:
        raise HTTPException(status_code=404, detail="Scenario not found")


@router.post("/scenarios/{key}/start", response_model=DemoStatus)
async def start_scenario(key: str):
    orch = _require_orchestrator()
    try:
        await orch.start_scenario(key)
    except ScenarioNotFoundError:
        raise HTTPException(status_code=404, detail="Scenario not found")
    return orch.get_demo_status()


@router.post("/scenarios/{key}/stop", response_model=DemoStatus)
async def stop_scenario(key: str):
    orch = _require_orchestrator()
    try:
        await orch.stop_scenario(key)
    except ScenarioNotFoundError:
        raise HTTPException(status_code=404, detail="Scenario not found")
    return orch.get_demo_status()


@router.post("/stop-all", response_model=DemoStatus)
async def stop_all():
    """Stop every scenario and simulated bus."""
    orch = _require_orchestrator()
    await orch.stop_all_demos()
    return orch.get_demo_status()


@router.get("/status", response_model=DemoStatus)
async def get_status():
    return _require_orchestrator().get_demo_status()


@router.post("/simulations", response_model=DemoStatus)
async def start_simulation(req: StartSimulationRequest):
    """Start one simulated bus; speed and interval default to the route preset."""
    orch = _require_orchestrator()
    preset = ROUTE_PRESETS.get(req.route_id)
    config = SimulationConfig(
        route_id=req.route_id,
        bus_id=req.bus_id,
        driver_id=req.driver_id,
        driver_email=req.driver_email,
        speed_kmh=req.speed_kmh or (preset.speed_kmh if preset else 25.0),
        update_interval_ms=req.update_interval_ms or (
            preset.update_interval_ms if preset else settings.default_update_interval_ms
        ),
    )
    await engine.start(config)
    return orch.get_demo_status()


@router.delete("/simulations/{driver_id}/{bus_id}", response_model=DemoStatus)
async def stop_simulation(driver_id: str, bus_id: str):
    orch = _require_orchestrator()
    await engine.stop(driver_id, bus_id)
    return orch.get_demo_status()
