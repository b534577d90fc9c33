"""Consumer-side views over the activeDrivers table, plus per-bus liveness tracking."""

import logging
from enum import Enum
from functools import partial
from typing import Callable

from pydantic import ValidationError

from shuttle.config import settings
from shuttle.core.store import BroadcastStore, Snapshot, Subscription
from shuttle.schemas.location import LocationRecord

logger = logging.getLogger(__name__)

BusCallback = Callable[[LocationRecord | None], None]
TableCallback = Callable[[dict[str, LocationRecord]], None]


def parse_table(snapshot: Snapshot | None) -> dict[str, LocationRecord]:
    """Validate every row of a driver table, dropping malformed ones."""
    if not snapshot:
        return {}
    records = {}
    for driver_id, raw in snapshot.items():
        if not isinstance(raw, dict):
            logger.warning("Ignoring non-object entry for driver %s", driver_id)
            continue
        try:
            records[driver_id] = LocationRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed location for driver %s: %d errors", driver_id, e.error_count())
    return records


def active_by_bus(records: dict[str, LocationRecord]) -> dict[str, LocationRecord]:
    return {r.bus_id: r for r in records.values() if r.is_active}


class LocationSubscriptionClient:
    """Subscribes to the live driver table and reshapes each full snapshot."""

    def __init__(self, store: BroadcastStore, path: str | None = None) -> None:
        self.store = store
        self.path = path or settings.active_drivers_path

    def subscribe_to_one_bus(self, bus_id: str, callback: BusCallback) -> Subscription:
        """Deliver the active record for ``bus_id`` or ``None`` on every change.

        ``None`` covers an empty table, a missing bus, an inactive record
        and a malformed one alike.
        """
        def on_change(snapshot: Snapshot | None) -> None:
            callback(active_by_bus(parse_table(snapshot)).get(bus_id))

        return self.store.subscribe_value(self.path, on_change)

    def subscribe_to_all_active_buses(self, callback: TableCallback) -> Subscription:
        """Deliver ``{bus_id: record}`` for every active bus on every change."""
        def on_change(snapshot: Snapshot | None) -> None:
            callback(active_by_bus(parse_table(snapshot)))

        return self.store.subscribe_value(self.path, on_change)

    def subscribe_to_all_active_drivers(self, callback: TableCallback) -> Subscription:
        """Deliver ``{driver_id: record}`` for every active driver on every change."""
        def on_change(snapshot: Snapshot | None) -> None:
            records = parse_table(snapshot)
            callback({d: r for d, r in records.items() if r.is_active})

        return self.store.subscribe_value(self.path, on_change)

    async def get_active_buses(self) -> dict[str, LocationRecord]:
        return active_by_bus(parse_table(await self.store.read(self.path)))


class TrackingState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"  # tracking requested, no position received yet
    ACTIVE = "active"


class StopReason(str, Enum):
    STOPPED_SHARING = "stopped_sharing"  # bus was broadcasting, then went away
    NOT_BROADCASTING = "not_broadcasting"  # bus never produced a position


class BusTracker:
    """Follows one bus and notifies once when it stops broadcasting.

    Driven purely by subscription callbacks and explicit calls; there is no
    heartbeat, so a bus only goes idle when its publisher retracts the record.
    """

    def __init__(
        self,
        client: LocationSubscriptionClient,
        on_stopped: Callable[[str, StopReason], None],
        on_location: Callable[[LocationRecord], None] | None = None,
    ) -> None:
        self.client = client
        self.on_stopped = on_stopped
        self.on_location = on_location
        self.state = TrackingState.IDLE
        self.bus_id: str | None = None
        self.location: LocationRecord | None = None
        self._subscription: Subscription | None = None
        self._last_notified: str | None = None

    @property
    def is_tracking(self) -> bool:
        return self.state != TrackingState.IDLE

    def start_tracking(self, bus_id: str) -> None:
        bus_id = bus_id.strip() if bus_id else ""
        if not bus_id:
            raise ValueError("Invalid bus ID")
        self._unsubscribe()
        self.bus_id = bus_id
        self.location = None
        self.state = TrackingState.WAITING
        self._last_notified = None
        logger.info("Now tracking bus %s", bus_id)
        sub = self.client.subscribe_to_one_bus(bus_id, partial(self._on_update, bus_id))
        if self.bus_id == bus_id and self.state != TrackingState.IDLE:
            self._subscription = sub
        else:
            # The initial snapshot already ended tracking
            sub.unsubscribe()

    def stop_tracking(self) -> None:
        """Stop on request; no stop notification is emitted."""
        self._unsubscribe()
        self._go_idle()

    def _on_update(self, bus_id: str, record: LocationRecord | None) -> None:
        if self.bus_id is not None and bus_id != self.bus_id:
            return  # late delivery for a bus we no longer follow

        if record is not None and self.state != TrackingState.IDLE:
            self.location = record
            self.state = TrackingState.ACTIVE
            if self.on_location:
                self.on_location(record)
            return
        if record is not None:
            return

        reason = (
            StopReason.STOPPED_SHARING if self.state == TrackingState.ACTIVE
            else StopReason.NOT_BROADCASTING
        )
        self._unsubscribe()
        self._go_idle()
        if self._last_notified != bus_id:
            self._last_notified = bus_id
            logger.info("Bus %s went idle: %s", bus_id, reason.value)
            self.on_stopped(bus_id, reason)

    def _go_idle(self) -> None:
        self.state = TrackingState.IDLE
        self.location = None
        self.bus_id = None

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
