"""Static catalog of multi-bus demo scenarios."""

from dataclasses import dataclass, field

from shuttle.core.simulation import SimulationConfig


@dataclass(frozen=True)
class ScenarioBus:
    config: SimulationConfig
    start_delay_ms: int = 0


@dataclass(frozen=True)
class ScenarioDefinition:
    key: str
    name: str
    description: str
    buses: list[ScenarioBus] = field(default_factory=list)


def _bus(driver_id: str, bus_id: str, email: str, route_id: str, speed: float, delay_ms: int) -> ScenarioBus:
    return ScenarioBus(
        config=SimulationConfig(
            route_id=route_id,
            bus_id=bus_id,
            driver_id=driver_id,
            driver_email=email,
            speed_kmh=speed,
            update_interval_ms=2000,
        ),
        start_delay_ms=delay_ms,
    )


DEMO_SCENARIOS: dict[str, ScenarioDefinition] = {
    "FULL_SERVICE": ScenarioDefinition(
        key="FULL_SERVICE",
        name="Full Service - All Routes",
        description="Complete APU Shuttle Services in operation",
        buses=[
            _bus("lrt_full_1", "LRT001", "lrt1@apu.edu.my", "LRT_BUKIT_JALIL", 25, 0),
            _bus("fortune_full_1", "FP001", "fp1@apu.edu.my", "FORTUNE_PARK", 22, 10_000),
            _bus("mvertica_full_1", "MV001", "mv1@apu.edu.my", "M_VERTICA", 20, 20_000),
            _bus("citygreen_full_1", "CG001", "cg1@apu.edu.my", "CITY_OF_GREEN", 20, 30_000),
            _bus("bloomsvale_full_1", "BV001", "bv1@apu.edu.my", "BLOOMSVALE", 20, 40_000),
        ],
    ),
    "BIDIRECTIONAL": ScenarioDefinition(
        key="BIDIRECTIONAL",
        name="Bidirectional Traffic",
        description="Buses going both directions (LRT <-> APU)",
        buses=[
            _bus("lrt_bi_1", "LRT001", "lrt1@apu.edu.my", "LRT_BUKIT_JALIL", 25, 0),
            _bus("lrt_bi_2", "LRT002", "lrt2@apu.edu.my", "APU_TO_LRT", 25, 15_000),
        ],
    ),
}
