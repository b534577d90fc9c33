"""Static shuttle route catalog with default-route fallback."""

import logging
from dataclasses import dataclass

from shuttle.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Waypoint:
    latitude: float
    longitude: float
    name: str = ""


@dataclass(frozen=True)
class RoutePreset:
    route_id: str
    speed_kmh: float
    update_interval_ms: int = 2000


_APU_MAIN_ENTRANCE = Waypoint(3.056069, 101.700466, "APU Campus - Main Entrance (Jalan Teknologi 5)")

# APU Campus Connect shuttle routes (effective 2 May 2025)
ROUTE_WAYPOINTS: dict[str, list[Waypoint]] = {
    # LRT Bukit Jalil to APU (main route, peak hours)
    "LRT_BUKIT_JALIL": [
        Waypoint(3.0582, 101.69212, "LRT Bukit Jalil Station"),
        Waypoint(3.058, 101.6925, "Bukit Jalil Highway Junction"),
        Waypoint(3.0575, 101.693, "Jalan 1/149"),
        Waypoint(3.057, 101.6935, "Bukit Jalil Park Connector"),
        Waypoint(3.0565, 101.694, "Jalan 1/149A"),
        Waypoint(3.056, 101.695, "Technology Park Malaysia Entry"),
        Waypoint(3.0558, 101.697, "Jalan Teknologi 3"),
        Waypoint(3.0556, 101.6985, "Jalan Teknologi 4"),
        Waypoint(3.0555, 101.6995, "Technology Park Center"),
        _APU_MAIN_ENTRANCE,
    ],
    "FORTUNE_PARK": [
        Waypoint(3.036267, 101.7073743, "Fortune Park Residence"),
        Waypoint(3.0365, 101.707, "Fortune Park Main Gate"),
        Waypoint(3.037, 101.7065, "Sungai Besi Road Junction"),
        Waypoint(3.038, 101.7055, "Taman Serdang Perdana"),
        Waypoint(3.04, 101.704, "Serdang Perdana Junction"),
        Waypoint(3.043, 101.702, "Jalan Teknologi Connector"),
        Waypoint(3.048, 101.701, "Technology Park Approach"),
        Waypoint(3.052, 101.7008, "Technology Park Malaysia"),
        Waypoint(3.055, 101.7006, "Jalan Teknologi 5 Approach"),
        _APU_MAIN_ENTRANCE,
    ],
    "M_VERTICA": [
        Waypoint(3.1185411, 101.7272555, "M Vertica KL City Residences"),
        Waypoint(3.118, 101.727, "M Vertica Main Gate"),
        Waypoint(3.115, 101.725, "KL City Connector"),
        Waypoint(3.11, 101.722, "Jalan Ampang Junction"),
        Waypoint(3.1, 101.715, "Highway Connector"),
        Waypoint(3.08, 101.71, "Technology Park Approach"),
        Waypoint(3.07, 101.708, "Bukit Jalil Connector"),
        Waypoint(3.065, 101.706, "Jalan Teknologi Approach"),
        Waypoint(3.06, 101.702, "Technology Park Malaysia"),
        _APU_MAIN_ENTRANCE,
    ],
    "CITY_OF_GREEN": [
        Waypoint(3.0438964, 101.6929362, "City of Green Condominium"),
        Waypoint(3.044, 101.6925, "City of Green Main Gate"),
        Waypoint(3.0445, 101.692, "Bukit Jalil Residential Area"),
        Waypoint(3.045, 101.6915, "Jalan 1/149 Connector"),
        Waypoint(3.048, 101.695, "Technology Park Approach"),
        Waypoint(3.052, 101.697, "Jalan Teknologi 2"),
        Waypoint(3.054, 101.698, "Jalan Teknologi 3"),
        Waypoint(3.055, 101.699, "Jalan Teknologi 4"),
        Waypoint(3.0555, 101.6995, "Technology Park Center"),
        _APU_MAIN_ENTRANCE,
    ],
    # Van service
    "BLOOMSVALE": [
        Waypoint(3.0757673, 101.6609445, "Bloomsvale Residence"),
        Waypoint(3.0755, 101.6615, "Bloomsvale Main Gate"),
        Waypoint(3.075, 101.6625, "Residential Area Connector"),
        Waypoint(3.072, 101.665, "Sungai Besi Highway"),
        Waypoint(3.068, 101.67, "Highway Junction"),
        Waypoint(3.064, 101.675, "Bukit Jalil Approach"),
        Waypoint(3.06, 101.685, "Technology Park Connector"),
        Waypoint(3.058, 101.69, "Jalan Teknologi Approach"),
        Waypoint(3.0565, 101.695, "Technology Park Malaysia"),
        _APU_MAIN_ENTRANCE,
    ],
}
# Return leg is the main route reversed
ROUTE_WAYPOINTS["APU_TO_LRT"] = list(reversed(ROUTE_WAYPOINTS["LRT_BUKIT_JALIL"]))

ROUTE_PRESETS: dict[str, RoutePreset] = {
    "LRT_BUKIT_JALIL": RoutePreset("LRT_BUKIT_JALIL", speed_kmh=25),
    "FORTUNE_PARK": RoutePreset("FORTUNE_PARK", speed_kmh=22),
    "M_VERTICA": RoutePreset("M_VERTICA", speed_kmh=20),
    "CITY_OF_GREEN": RoutePreset("CITY_OF_GREEN", speed_kmh=20),
    "BLOOMSVALE": RoutePreset("BLOOMSVALE", speed_kmh=20),
    "APU_TO_LRT": RoutePreset("APU_TO_LRT", speed_kmh=25),
}


class RouteCatalog:
    """Read-only lookup of route id -> ordered waypoints."""

    def __init__(
        self,
        routes: dict[str, list[Waypoint]] | None = None,
        default_route_id: str | None = None,
    ) -> None:
        self._routes = dict(routes if routes is not None else ROUTE_WAYPOINTS)
        self.default_route_id = default_route_id or settings.default_route_id
        if self.default_route_id not in self._routes:
            raise ValueError(f"Default route {self.default_route_id!r} is not in the catalog")

    def __contains__(self, route_id: str) -> bool:
        return route_id in self._routes

    def route_ids(self) -> list[str]:
        return list(self._routes)

    def resolve(self, route_id: str) -> tuple[str, list[Waypoint]]:
        """Return (resolved_route_id, waypoints), substituting the default route for unknown ids."""
        waypoints = self._routes.get(route_id)
        if waypoints is None:
            logger.warning(
                "Unknown route %r - falling back to default route %s",
                route_id, self.default_route_id,
            )
            return self.default_route_id, self._routes[self.default_route_id]
        return route_id, waypoints
