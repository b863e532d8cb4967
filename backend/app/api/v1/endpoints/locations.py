"""
Location API Endpoints

Taxonomy browsing, search-bar suggestions and the location token codec.
"""

import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Query

from app.core.autocomplete_service import get_autocomplete_ranker
from app.core.config import settings
from app.core.location_codec import get_location_codec
from app.schemas.location import (
    CityTaxonomyResponse,
    DecodedLocationResponse,
    DistrictNeighborhoods,
    EncodeResponse,
    LocationSuggestion,
    SuggestResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_city(city: str) -> str:
    canonical = get_location_codec().taxonomy.canonical_city(city)
    if not canonical:
        raise HTTPException(status_code=404, detail=f"Unknown city: {city}")
    return canonical


@router.get("/cities")
def list_cities():
    return {"cities": get_location_codec().taxonomy.cities_available()}


@router.get("/districts")
def list_districts(city: str = Query(settings.DEFAULT_CITY)):
    city = _require_city(city)
    return {"city": city, "districts": get_location_codec().taxonomy.districts_of(city)}


@router.get("/neighborhoods")
def list_neighborhoods(
    city: str = Query(settings.DEFAULT_CITY),
    district: Optional[str] = Query(None),
):
    city = _require_city(city)
    taxonomy = get_location_codec().taxonomy
    if district is None:
        return {"city": city, "district": None, "neighborhoods": taxonomy.all_neighborhoods_of(city)}
    if not taxonomy.is_district(district, city):
        raise HTTPException(status_code=404, detail=f"Unknown district in {city}: {district}")
    return {"city": city, "district": district, "neighborhoods": taxonomy.neighborhoods_of(district, city)}


@router.get("/taxonomy", response_model=CityTaxonomyResponse)
def city_taxonomy(city: str = Query(settings.DEFAULT_CITY)):
    """Full district -> neighborhoods tree of a city."""
    city = _require_city(city)
    taxonomy = get_location_codec().taxonomy
    return CityTaxonomyResponse(
        city=city,
        districts=[
            DistrictNeighborhoods(district=d, neighborhoods=taxonomy.neighborhoods_of(d, city))
            for d in taxonomy.districts_of(city)
        ],
    )


@router.get("/suggest", response_model=SuggestResponse)
def suggest_locations(
    q: str = Query("", description="Text typed in the search bar"),
    city: str = Query(settings.DEFAULT_CITY),
):
    ranker = get_autocomplete_ranker()
    canonical = ranker.taxonomy.canonical_city(city) or city
    pairs = ranker.suggest_pairs(q, canonical)
    return SuggestResponse(
        query=q,
        city=canonical,
        suggestions=[LocationSuggestion(label=label, token=token) for label, token in pairs],
    )


@router.get("/encode", response_model=EncodeResponse)
def encode_location(
    city: str = Query(...),
    district: Optional[str] = Query(None),
    neighborhood: Optional[str] = Query(None),
    all: bool = Query(False, description="Every neighborhood of the city"),
):
    city = _require_city(city)
    token = get_location_codec().encode(city, district, neighborhood, all_neighborhoods=all)
    return EncodeResponse(token=token)


@router.get("/decode", response_model=DecodedLocationResponse)
def decode_location(token: str = Query("")):
    codec = get_location_codec()
    decoded = codec.decode(token)
    return DecodedLocationResponse(
        token=token,
        city=decoded.city,
        district=decoded.district,
        neighborhood=decoded.neighborhood,
        all_neighborhoods=decoded.all_neighborhoods,
        known=decoded.known,
        level=decoded.level,
        neighborhoods=codec.taxonomy.expand(*decoded.as_triple()),
    )
