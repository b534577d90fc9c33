from pydantic import BaseModel, Field


class ScenarioSummary(BaseModel):
    key: str
    name: str
    description: str
    bus_count: int


class ScenarioBusInfo(BaseModel):
    bus_id: str
    driver_id: str
    route_id: str
    speed_kmh: float
    start_delay_ms: int


class ScenarioInfo(BaseModel):
    key: str
    name: str
    description: str
    bus_count: int
    buses: list[ScenarioBusInfo] = []


class BusStatus(BaseModel):
    bus_id: str
    driver_id: str
    route_id: str
    progress_percent: int
    waypoint_index: int  # 0-based start of the current segment
    total_waypoints: int
    running_time_seconds: int


class DemoStatus(BaseModel):
    active_buses: int
    buses: list[BusStatus] = []
    active_scenarios: list[str] = []


class StartSimulationRequest(BaseModel):
    route_id: str
    bus_id: str = Field(min_length=1)
    driver_id: str = Field(min_length=1)
    driver_email: str | None = None
    speed_kmh: float | None = Field(default=None, gt=0)
    update_interval_ms: int | None = Field(default=None, gt=0)
