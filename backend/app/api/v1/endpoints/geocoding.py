from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from app.core.geocoding_service import geocoding_service

router = APIRouter()


class GeocodeResponse(BaseModel):
    lat: float
    lng: float


@router.get("", response_model=GeocodeResponse)
async def geocode(address: str = Query(..., min_length=1)):
    """Coordinates for a free-text address, used to center maps."""
    result = await geocoding_service.geocode(address)

    if not result:
        raise HTTPException(
            status_code=404,
            detail="Could not geocode address"
        )

    return GeocodeResponse(lat=result["lat"], lng=result["lng"])
