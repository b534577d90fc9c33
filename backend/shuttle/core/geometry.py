"""Great-circle distances and waypoint interpolation along a route."""

import math
from typing import Protocol, Sequence

EARTH_RADIUS_KM = 6371.0


class _Point(Protocol):
    latitude: float
    longitude: float


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in kilometres between two lat/lng points."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def total_distance(waypoints: Sequence[_Point]) -> float:
    """Length of the polyline through all waypoints, in kilometres."""
    total = 0.0
    for i in range(1, len(waypoints)):
        prev, cur = waypoints[i - 1], waypoints[i]
        total += haversine_distance(prev.latitude, prev.longitude, cur.latitude, cur.longitude)
    return total


def segment_index_at_progress(count: int, progress: float) -> int:
    """Index of the waypoint that starts the segment containing ``progress``.

    Clamped to ``count - 2`` so there is always a following waypoint; at
    progress 1.0 this is the last segment rather than one past the end.
    """
    if count < 2:
        return 0
    progress = max(0.0, min(1.0, progress))
    return min(int(math.floor(progress * (count - 1))), count - 2)


def position_at_progress(waypoints: Sequence[_Point], progress: float) -> tuple[float, float]:
    """Return (lat, lng) at given progress (0.0–1.0) along the waypoints.

    Progress is split evenly between segments regardless of their length,
    so a bus spends the same time on every leg of the route.
    """
    if not waypoints:
        raise ValueError("route has no waypoints")
    if len(waypoints) == 1:
        return (waypoints[0].latitude, waypoints[0].longitude)

    progress = max(0.0, min(1.0, progress))
    if progress >= 1.0:
        last = waypoints[-1]
        return (last.latitude, last.longitude)

    n = len(waypoints)
    index = segment_index_at_progress(n, progress)
    fraction = progress * (n - 1) - index

    start, end = waypoints[index], waypoints[index + 1]
    lat = start.latitude + (end.latitude - start.latitude) * fraction
    lng = start.longitude + (end.longitude - start.longitude) * fraction
    return (lat, lng)
