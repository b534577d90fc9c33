"""Real GPS path: drivers share and retract their live location."""

from fastapi import APIRouter, HTTPException

from shuttle.schemas.location import DriverLocationUpdate, LocationRecord

router = APIRouter(prefix="/api/drivers", tags=["drivers"])

# Will be set by main.py
publisher = None


@router.put("/{driver_id}/location", response_model=LocationRecord)
async def update_location(driver_id: str, update: DriverLocationUpdate):
    """Publish the driver's current position as an active record."""
    if publisher is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    record = await publisher.write_location(
        driver_id, update.bus_id, update.latitude, update.longitude,
        driver_email=update.driver_email,
    )
    if record is None:
        raise HTTPException(status_code=502, detail="Location store unavailable")
    return record


@router.delete("/{driver_id}/location")
async def stop_location(driver_id: str):
    """Stop sharing: remove the driver's record so subscribers see the bus go idle."""
    if publisher is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    removed = await publisher.remove_location(driver_id)
    return {"driver_id": driver_id, "removed": removed}
