from fastapi import APIRouter
from app.api.v1.endpoints import geocoding, locations, neighborhoods, search

api_router = APIRouter()

api_router.include_router(locations.router, prefix="/locations", tags=["locations"])
api_router.include_router(search.router, prefix="/search", tags=["search"])
api_router.include_router(geocoding.router, prefix="/geocoding", tags=["geocoding"])
api_router.include_router(neighborhoods.router, prefix="/neighborhoods", tags=["neighborhoods"])
