from pydantic import BaseModel, ConfigDict


class LocationRecord(BaseModel):
    """One driver's broadcast position, stored under activeDrivers/<driver_id>."""

    model_config = ConfigDict(allow_inf_nan=False)

    driver_id: str
    bus_id: str
    driver_email: str | None = None
    latitude: float
    longitude: float
    timestamp: int  # epoch milliseconds
    is_active: bool = True


class DriverLocationUpdate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    bus_id: str
    latitude: float
    longitude: float
    driver_email: str | None = None
