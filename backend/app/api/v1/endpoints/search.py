"""
Search API Endpoints

Faceted search over properties, agencies and agents for one or more location
tokens. The requested domain is answered; the other two are prefetched.
"""

import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.filters import FilterValidationError, from_query_params
from app.core.location_codec import get_location_codec
from app.core.result_cache import Freshness
from app.core.search_orchestrator import (
    DomainState,
    SearchOrchestrator,
    SearchRoute,
    get_search_orchestrator,
)
from app.core.search_store import SearchDomain
from app.schemas.search import RouteResponse, SearchResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def _selected_tokens(request: Request) -> List[str]:
    values = request.query_params.getlist("neighborhoods")
    if not values:
        return []
    return get_location_codec().normalize_neighborhoods_param(values)


def _parse_filter(request: Request):
    params = {key: request.query_params.getlist(key) for key in request.query_params.keys()}
    try:
        return from_query_params(params)
    except FilterValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _route_response(route: SearchRoute) -> RouteResponse:
    return RouteResponse(
        kind=route.kind.value,
        path=route.path,
        url=route.url,
        token=route.token,
        query=list(route.query),
    )


@router.get("/route", response_model=RouteResponse)
def search_route(
    request: Request,
    domain: SearchDomain = SearchDomain.PROPERTIES,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    """Where a search submit should navigate for the selected locations."""
    route = orchestrator.route_for(_selected_tokens(request), domain, _parse_filter(request))
    return _route_response(route)


@router.get("/{domain}", response_model=SearchResponse)
async def search_domain(
    domain: SearchDomain,
    request: Request,
    orchestrator: SearchOrchestrator = Depends(get_search_orchestrator),
):
    property_filter = _parse_filter(request)
    selected = _selected_tokens(request)
    tokens = get_location_codec().normalize_neighborhoods_param(selected)

    session = orchestrator.session()
    status = await session.search(tokens, property_filter, active_domain=domain)

    if status.state == DomainState.ERROR:
        logger.error(f"Search {domain.value} failed for {tokens}: {status.error}")
        raise HTTPException(
            status_code=502,
            detail={"domain": domain.value, "message": f"Could not load {domain.value}, try again"},
        )

    result = status.result
    return SearchResponse(
        domain=domain.value,
        status="stale" if status.freshness == Freshness.STALE else "fresh",
        location=list(result.location),
        filter_signature=result.filter_signature,
        count=len(result.items),
        items=list(result.items),
        fetched_at=result.fetched_at,
        route=_route_response(orchestrator.route_for(selected, domain, property_filter)),
    )
