from pydantic import BaseModel
from typing import List, Optional


class DistrictNeighborhoods(BaseModel):
    district: str
    neighborhoods: List[str]


class CityTaxonomyResponse(BaseModel):
    city: str
    districts: List[DistrictNeighborhoods]


class LocationSuggestion(BaseModel):
    label: str
    token: str


class SuggestResponse(BaseModel):
    query: str
    city: str
    suggestions: List[LocationSuggestion]


class EncodeResponse(BaseModel):
    token: str


class DecodedLocationResponse(BaseModel):
    token: str
    city: str
    district: Optional[str] = None
    neighborhood: Optional[str] = None
    all_neighborhoods: bool = False
    known: bool = True
    level: str
    # Neighborhoods this token covers when searching
    neighborhoods: List[str] = []
