"""
Neighborhood rating aggregates.

Averages per neighborhood are cached with the ratings staleness window and
dropped as soon as a new rating for that neighborhood is stored.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.result_cache import CacheKey, Freshness, ResultCache
from app.models.neighborhood_rating import RATING_CATEGORIES, NeighborhoodRating

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5


class RatingService:
    def __init__(self, cache: Optional[ResultCache] = None):
        self.cache = cache or ResultCache(
            stale_time=settings.RATINGS_STALE_TIME_SECONDS,
            gc_time=settings.RATINGS_GC_TIME_SECONDS,
            name="ratings",
        )

    @staticmethod
    def _key(neighborhood: str) -> CacheKey:
        return CacheKey("ratings", neighborhood, "averages")

    def get_aggregate(self, db: Session, neighborhood: str) -> Dict[str, Any]:
        """Average score per category plus the number of ratings."""
        key = self._key(neighborhood)
        entry, freshness = self.cache.lookup(key)
        if freshness == Freshness.FRESH:
            return entry.value

        aggregate = self._compute(db, neighborhood)
        self.cache.put(key, aggregate)
        return aggregate

    def _compute(self, db: Session, neighborhood: str) -> Dict[str, Any]:
        columns = [func.avg(getattr(NeighborhoodRating, c)) for c in RATING_CATEGORIES]
        row = (
            db.query(func.count(NeighborhoodRating.id), *columns)
            .filter(NeighborhoodRating.neighborhood == neighborhood)
            .one()
        )
        count = row[0] or 0
        averages = {
            category: (round(float(value), 1) if value is not None else None)
            for category, value in zip(RATING_CATEGORIES, row[1:])
        }
        scored = [v for v in averages.values() if v is not None]
        return {
            "neighborhood": neighborhood,
            "count": count,
            "averages": averages,
            "overall": round(sum(scored) / len(scored), 1) if scored else None,
        }

    def add_rating(self, db: Session, data: Dict[str, Any]) -> NeighborhoodRating:
        for category in RATING_CATEGORIES:
            score = data.get(category)
            if score is None or not (MIN_SCORE <= float(score) <= MAX_SCORE):
                raise ValueError(f"{category} must be between {MIN_SCORE} and {MAX_SCORE}")

        rating = NeighborhoodRating(
            city=data.get("city"),
            district=data.get("district"),
            neighborhood=data["neighborhood"],
            user_id=data["user_id"],
            **{category: data[category] for category in RATING_CATEGORIES},
        )
        db.add(rating)
        db.commit()
        db.refresh(rating)

        self.cache.invalidate(self._key(rating.neighborhood))
        logger.info(f"Stored rating {rating.id} for {rating.neighborhood}")
        return rating


rating_service = RatingService()
