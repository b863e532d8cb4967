"""
Search Store

Query interface behind the search orchestrator. A store answers
``fetch_entities(domain, location_filter, property_filter)`` with a list of
plain dicts; both implementations shape items through the same functions, so
a result looks the same whichever store produced it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.filters import PropertyFilter
from app.core.location_codec import LocationCodec
from app.core.predicate_compiler import compile_filter, field_value
from app.models.agency import Agency
from app.models.agent import Agent
from app.models.property import Property

logger = logging.getLogger(__name__)


class SearchDomain(str, Enum):
    PROPERTIES = "properties"
    AGENCIES = "agencies"
    AGENTS = "agents"


@dataclass(frozen=True)
class LocationFilter:
    """Neighborhood scope of a search, expanded from location tokens."""
    city: Optional[str]
    district: Optional[str] = None
    neighborhoods: Sequence[str] = field(default_factory=tuple)
    # True when the whole city is selected; rows are then matched on city alone
    all_neighborhoods: bool = False

    @classmethod
    def from_tokens(cls, tokens: Sequence[str], codec: LocationCodec) -> "LocationFilter":
        """
        Decode and expand tokens. Several tokens union their neighborhoods in
        token order without duplicates.
        """
        decoded = [codec.decode(token) for token in tokens] or [codec.decode(None)]
        taxonomy = codec.taxonomy

        neighborhoods: List[str] = []
        for location in decoded:
            for name in taxonomy.expand(location.city, location.district, location.neighborhood):
                if name not in neighborhoods:
                    neighborhoods.append(name)

        cities = {location.city for location in decoded}
        city = decoded[0].city if len(cities) == 1 else None

        if len(decoded) == 1:
            only = decoded[0]
            return cls(
                city=only.city,
                district=only.district,
                neighborhoods=tuple(neighborhoods),
                all_neighborhoods=only.level == "city",
            )
        return cls(city=city, neighborhoods=tuple(neighborhoods))

    def covers(self, city: Optional[str], neighborhood: Optional[str]) -> bool:
        if self.all_neighborhoods:
            return city == self.city
        if self.city is not None and city is not None and city != self.city:
            return False
        return neighborhood in self.neighborhoods

    def intersects(self, city: Optional[str], influence: Iterable[str]) -> bool:
        """Agency/agent coverage test against their influence neighborhoods."""
        if self.city is not None and city is not None and city != self.city:
            return False
        influence = set(influence or ())
        if self.all_neighborhoods:
            return bool(influence) and (city == self.city or bool(influence & set(self.neighborhoods)))
        return bool(influence & set(self.neighborhoods))


# ============================================================
# Item shapes
# ============================================================

def _list(value) -> List[Any]:
    return list(value or [])


def property_item(row: Any) -> Dict[str, Any]:
    return {
        "id": field_value(row, "id"),
        "reference": field_value(row, "reference"),
        "title": field_value(row, "title"),
        "address": field_value(row, "address"),
        "city": field_value(row, "city"),
        "district": field_value(row, "district"),
        "neighborhood": field_value(row, "neighborhood"),
        "type": field_value(row, "type"),
        "operation_type": field_value(row, "operation_type"),
        "price": field_value(row, "price"),
        "previous_price": field_value(row, "previous_price"),
        "bedrooms": field_value(row, "bedrooms"),
        "bathrooms": field_value(row, "bathrooms"),
        "superficie": field_value(row, "superficie"),
        "features": _list(field_value(row, "features")),
        "image_urls": _list(field_value(row, "image_urls")),
        "agent_id": field_value(row, "agent_id"),
        "agency_id": field_value(row, "agency_id"),
        "created_at": field_value(row, "created_at"),
    }


def agency_item(row: Any) -> Dict[str, Any]:
    return {
        "id": field_value(row, "id"),
        "agency_name": field_value(row, "agency_name"),
        "agency_address": field_value(row, "agency_address"),
        "agency_description": field_value(row, "agency_description"),
        "agency_logo": field_value(row, "agency_logo"),
        "city": field_value(row, "city"),
        "influence_neighborhoods": _list(field_value(row, "influence_neighborhoods")),
    }


def agent_item(row: Any) -> Dict[str, Any]:
    return {
        "id": field_value(row, "id"),
        "name": field_value(row, "name"),
        "surname": field_value(row, "surname"),
        "description": field_value(row, "description"),
        "avatar": field_value(row, "avatar"),
        "city": field_value(row, "city"),
        "influence_neighborhoods": _list(field_value(row, "influence_neighborhoods")),
        "years_of_experience": field_value(row, "years_of_experience"),
    }


ITEM_SHAPES: Dict[SearchDomain, Callable[[Any], Dict[str, Any]]] = {
    SearchDomain.PROPERTIES: property_item,
    SearchDomain.AGENCIES: agency_item,
    SearchDomain.AGENTS: agent_item,
}


def _agency_order(item: Dict[str, Any]):
    return ((item.get("agency_name") or "").lower(), item.get("id") or 0)


def _agent_order(item: Dict[str, Any]):
    years = item.get("years_of_experience")
    return (-(years or 0), (item.get("name") or "").lower(), item.get("id") or 0)


# ============================================================
# Stores
# ============================================================

class SearchStore(ABC):
    @abstractmethod
    async def fetch_entities(
        self,
        domain: SearchDomain,
        location_filter: LocationFilter,
        property_filter: PropertyFilter,
    ) -> List[Dict[str, Any]]:
        """Return matching items of one domain, already ordered."""


class InMemorySearchStore(SearchStore):
    """Store over plain lists of dicts, for tests and local development."""

    def __init__(
        self,
        properties: Optional[List[Dict[str, Any]]] = None,
        agencies: Optional[List[Dict[str, Any]]] = None,
        agents: Optional[List[Dict[str, Any]]] = None,
    ):
        self.properties = list(properties or [])
        self.agencies = list(agencies or [])
        self.agents = list(agents or [])

    async def fetch_entities(self, domain, location_filter, property_filter):
        domain = SearchDomain(domain)

        if domain == SearchDomain.PROPERTIES:
            rows = [
                p for p in self.properties
                if p.get("is_active", True)
                and location_filter.covers(p.get("city"), p.get("neighborhood"))
            ]
            compiled = compile_filter(property_filter)
            return [property_item(p) for p in compiled.apply(rows)]

        rows = self.agencies if domain == SearchDomain.AGENCIES else self.agents
        shape = ITEM_SHAPES[domain]
        items = [
            shape(r) for r in rows
            if r.get("deleted_at") is None
            and location_filter.intersects(r.get("city"), r.get("influence_neighborhoods"))
        ]
        return sorted(items, key=_agency_order if domain == SearchDomain.AGENCIES else _agent_order)


class SqlAlchemySearchStore(SearchStore):
    """Store backed by the application database."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def fetch_entities(self, domain, location_filter, property_filter):
        domain = SearchDomain(domain)
        db = self.session_factory()
        try:
            if domain == SearchDomain.PROPERTIES:
                return self._fetch_properties(db, location_filter, property_filter)
            return self._fetch_influencers(db, domain, location_filter)
        finally:
            db.close()

    def _fetch_properties(self, db: Session, location_filter: LocationFilter, property_filter: PropertyFilter):
        compiled = compile_filter(property_filter)
        query = db.query(Property).filter(Property.is_active.is_(True))

        if location_filter.all_neighborhoods:
            query = query.filter(Property.city == location_filter.city)
        else:
            if not location_filter.neighborhoods:
                return []
            if location_filter.city is not None:
                query = query.filter(or_(Property.city == location_filter.city, Property.city.is_(None)))
            query = query.filter(Property.neighborhood.in_(list(location_filter.neighborhoods)))

        rows = query.filter(*compiled.where_clauses(Property)).order_by(*compiled.order_by(Property)).all()
        logger.debug(f"Property query returned {len(rows)} rows before feature filtering")

        # Feature containment and the final ordering are applied in Python so
        # results match the in-memory store on every backend.
        return [property_item(row) for row in compiled.apply(rows)]

    def _fetch_influencers(self, db: Session, domain: SearchDomain, location_filter: LocationFilter):
        model = Agency if domain == SearchDomain.AGENCIES else Agent
        query = db.query(model).filter(model.deleted_at.is_(None))
        if location_filter.city is not None:
            query = query.filter(or_(model.city == location_filter.city, model.city.is_(None)))

        shape = ITEM_SHAPES[domain]
        items = [
            shape(row) for row in query.all()
            if location_filter.intersects(row.city, row.influence_neighborhoods)
        ]
        return sorted(items, key=_agency_order if domain == SearchDomain.AGENCIES else _agent_order)
