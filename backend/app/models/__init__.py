# Core models
from app.models.agency import Agency
from app.models.agent import Agent
from app.models.property import Property
from app.models.neighborhood_rating import NeighborhoodRating

__all__ = [
    "Agency",
    "Agent",
    "Property",
    "NeighborhoodRating",
]
