from sqlalchemy import Column, String, Integer, Numeric, DateTime
from sqlalchemy.sql import func

from app.db.base import Base


RATING_CATEGORIES = (
    "security",
    "parking",
    "family_friendly",
    "public_transport",
    "green_spaces",
    "services",
)


class NeighborhoodRating(Base):
    """One user's 1-5 scores for a neighborhood."""
    __tablename__ = "neighborhood_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    city = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    neighborhood = Column(String(255), nullable=False, index=True)
    security = Column(Numeric(3, 1), nullable=False)
    parking = Column(Numeric(3, 1), nullable=False)
    family_friendly = Column(Numeric(3, 1), nullable=False)
    public_transport = Column(Numeric(3, 1), nullable=False)
    green_spaces = Column(Numeric(3, 1), nullable=False)
    services = Column(Numeric(3, 1), nullable=False)
    user_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
