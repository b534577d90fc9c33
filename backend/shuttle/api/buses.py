"""Bus REST API endpoints."""

from fastapi import APIRouter

from shuttle.schemas.location import LocationRecord

router = APIRouter(prefix="/api/buses", tags=["buses"])

# Will be set by main.py
client = None


@router.get("", response_model=dict[str, LocationRecord])
async def list_buses():
    """Get all currently active buses keyed by bus id."""
    if client is None:
        return {}
    return await client.get_active_buses()


@router.get("/{bus_id}", response_model=LocationRecord | None)
async def get_bus(bus_id: str):
    """Get the live record of one bus, or null when it is not broadcasting."""
    if client is None:
        return None
    buses = await client.get_active_buses()
    return buses.get(bus_id)
