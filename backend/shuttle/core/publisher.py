"""Writes and retracts a driver's live location record in the broadcast store."""

import logging
import time
from typing import Callable

from shuttle.config import settings
from shuttle.core.store import BroadcastStore
from shuttle.schemas.location import LocationRecord

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocationPublisher:
    """Best-effort writer shared by real GPS updates and simulated buses.

    Store failures are logged and swallowed so a failing tick never breaks
    the caller's update loop; there is no retry.
    """

    def __init__(
        self,
        store: BroadcastStore,
        path: str | None = None,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.store = store
        self.path = path or settings.active_drivers_path
        self._clock = clock

    async def write_location(
        self,
        driver_id: str,
        bus_id: str,
        latitude: float,
        longitude: float,
        driver_email: str | None = None,
    ) -> LocationRecord | None:
        record = LocationRecord(
            driver_id=driver_id,
            bus_id=bus_id,
            driver_email=driver_email,
            latitude=latitude,
            longitude=longitude,
            timestamp=int(self._clock()),
            is_active=True,
        )
        try:
            await self.store.write(self.path, driver_id, record.model_dump())
        except Exception:
            logger.exception("Failed to write location for driver %s (bus %s)", driver_id, bus_id)
            return None
        logger.debug("Driver location updated: %s bus %s (%.6f, %.6f)", driver_id, bus_id, latitude, longitude)
        return record

    async def remove_location(self, driver_id: str) -> bool:
        try:
            await self.store.remove(self.path, driver_id)
        except Exception:
            logger.exception("Failed to remove location for driver %s", driver_id)
            return False
        logger.debug("Driver location tracking stopped for %s", driver_id)
        return True
