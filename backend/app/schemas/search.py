from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime


class RouteResponse(BaseModel):
    kind: str  # "detail" or "multi"
    path: str
    url: str
    token: Optional[str] = None
    query: List[Tuple[str, str]] = []


class SearchResponse(BaseModel):
    domain: str
    status: str  # "fresh" or "stale"
    location: List[str]
    filter_signature: str
    count: int
    items: List[Dict[str, Any]]
    fetched_at: datetime
    route: RouteResponse
