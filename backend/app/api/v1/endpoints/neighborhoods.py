import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.core.rating_service import rating_service
from app.schemas.rating import (
    NeighborhoodRatingCreate,
    NeighborhoodRatingResponse,
    NeighborhoodRatingSummary,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/ratings", response_model=NeighborhoodRatingSummary)
def get_neighborhood_ratings(
    neighborhood: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    return rating_service.get_aggregate(db, neighborhood)


@router.post("/ratings", response_model=NeighborhoodRatingResponse, status_code=status.HTTP_201_CREATED)
def create_neighborhood_rating(
    rating_in: NeighborhoodRatingCreate,
    db: Session = Depends(get_db),
):
    try:
        rating = rating_service.add_rating(db, rating_in.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return rating
