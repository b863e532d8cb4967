from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import datetime


class NeighborhoodRatingCreate(BaseModel):
    neighborhood: str = Field(..., min_length=1)
    city: Optional[str] = None
    district: Optional[str] = None
    security: float = Field(..., ge=1, le=5)
    parking: float = Field(..., ge=1, le=5)
    family_friendly: float = Field(..., ge=1, le=5)
    public_transport: float = Field(..., ge=1, le=5)
    green_spaces: float = Field(..., ge=1, le=5)
    services: float = Field(..., ge=1, le=5)
    user_id: int


class NeighborhoodRatingResponse(BaseModel):
    id: int
    neighborhood: str
    city: Optional[str] = None
    district: Optional[str] = None
    security: float
    parking: float
    family_friendly: float
    public_transport: float
    green_spaces: float
    services: float
    user_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NeighborhoodRatingSummary(BaseModel):
    neighborhood: str
    count: int
    averages: Dict[str, Optional[float]]
    overall: Optional[float] = None
