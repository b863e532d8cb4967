"""
Filter Predicate Compiler

Turns a PropertyFilter into a predicate plus an ordering. The compiled result
is a pure function of the filter and works both on materialized rows (client
side re-sort, in-memory store) and as SQLAlchemy clauses for store queries.

Rules:
- operation type: exact match, always applied
- price bounds: applied independently (an inverted range matches nothing)
- "less-than" lower bound: price < lowest price option for the operation
- "no-limit" upper bound: no constraint
- bedrooms/bathrooms: at least N; studio means exactly 0 bedrooms
- features: every selected tag must be present
"""

import functools
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, literal

from app.core.filters import (
    PRICE_LESS_THAN,
    PRICE_NO_LIMIT,
    PropertyFilter,
    SortBy,
    filter_signature,
    price_lower_bound,
)

logger = logging.getLogger(__name__)


def field_value(item: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute object (ORM row)."""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _as_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_timestamp(value: Any) -> float:
    if value is None:
        return float("-inf")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, str):
        try:
            return _as_timestamp(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return float("-inf")
    number = _as_number(value)
    return number if number is not None else float("-inf")


def price_per_area(item: Any) -> float:
    """price / superficie, +inf when the area is missing or zero."""
    price = _as_number(field_value(item, "price"))
    area = _as_number(field_value(item, "superficie"))
    if price is None or not area or area <= 0:
        return math.inf
    return price / area


def price_drop_percentage(item: Any) -> float:
    """(previous_price - price) / previous_price * 100, 0 without a previous price."""
    previous = _as_number(field_value(item, "previous_price"))
    price = _as_number(field_value(item, "price"))
    if not previous or previous <= 0 or price is None:
        return 0.0
    return (previous - price) / previous * 100


@dataclass(frozen=True)
class CompiledFilter:
    """Predicate and ordering compiled from one PropertyFilter."""
    property_filter: PropertyFilter
    signature: str
    lower_bound: Optional[int]
    upper_bound: Optional[int]
    less_than: Optional[int]

    # ------------------------------------------------------------------
    # In-memory evaluation
    # ------------------------------------------------------------------

    def matches(self, item: Any) -> bool:
        f = self.property_filter

        if field_value(item, "operation_type") != f.operation_type.value:
            return False

        price = _as_number(field_value(item, "price"))
        if self.lower_bound is not None and (price is None or price < self.lower_bound):
            return False
        if self.less_than is not None and (price is None or price >= self.less_than):
            return False
        if self.upper_bound is not None and (price is None or price > self.upper_bound):
            return False

        bedrooms = field_value(item, "bedrooms")
        if f.studio_only:
            if bedrooms != 0:
                return False
        elif f.bedrooms_at_least is not None:
            if bedrooms is None or bedrooms < f.bedrooms_at_least:
                return False

        if f.bathrooms_at_least is not None:
            bathrooms = field_value(item, "bathrooms")
            if bathrooms is None or bathrooms < f.bathrooms_at_least:
                return False

        if f.features:
            item_features = set(field_value(item, "features") or ())
            if not f.features.issubset(item_features):
                return False

        return True

    def sort_key(self, item: Any) -> Tuple:
        """Ascending key; ties keep input order because sorted() is stable."""
        sort_by = self.property_filter.effective_sort
        if sort_by == SortBy.PRICE_ASC:
            price = _as_number(field_value(item, "price"))
            return (math.inf if price is None else price,)
        if sort_by == SortBy.PRICE_PER_AREA:
            return (price_per_area(item),)
        if sort_by == SortBy.PRICE_DROP:
            return (-price_drop_percentage(item),)
        return (-_as_timestamp(field_value(item, "created_at")),)

    def compare(self, a: Any, b: Any) -> int:
        """Comparator form of sort_key: negative when a sorts before b."""
        ka, kb = self.sort_key(a), self.sort_key(b)
        return (ka > kb) - (ka < kb)

    def filter(self, items: Iterable[Any]) -> List[Any]:
        return [item for item in items if self.matches(item)]

    def sort(self, items: Iterable[Any]) -> List[Any]:
        return sorted(items, key=self.sort_key)

    def apply(self, items: Iterable[Any]) -> List[Any]:
        return self.sort(self.filter(items))

    # ------------------------------------------------------------------
    # Store-side evaluation (SQLAlchemy)
    # ------------------------------------------------------------------

    def where_clauses(self, model) -> List[Any]:
        """
        SQLAlchemy criteria for the scalar part of the predicate.

        Feature containment depends on the array column type of the backend,
        so callers finish with ``apply`` on the fetched rows.
        """
        f = self.property_filter
        clauses = [model.operation_type == f.operation_type.value]

        if self.lower_bound is not None:
            clauses.append(model.price >= self.lower_bound)
        if self.less_than is not None:
            clauses.append(model.price < self.less_than)
        if self.upper_bound is not None:
            clauses.append(model.price <= self.upper_bound)

        if f.studio_only:
            clauses.append(model.bedrooms == 0)
        elif f.bedrooms_at_least is not None:
            clauses.append(model.bedrooms >= f.bedrooms_at_least)

        if f.bathrooms_at_least is not None:
            clauses.append(model.bathrooms >= f.bathrooms_at_least)

        return clauses

    def order_by(self, model) -> List[Any]:
        sort_by = self.property_filter.effective_sort
        if sort_by == SortBy.PRICE_ASC:
            return [model.price.asc(), model.id.asc()]
        if sort_by == SortBy.PRICE_PER_AREA:
            has_area = case((model.superficie > 0, 0), else_=1)
            ratio = case((model.superficie > 0, model.price * literal(1.0) / model.superficie), else_=None)
            return [has_area.asc(), ratio.asc(), model.id.asc()]
        if sort_by == SortBy.PRICE_DROP:
            drop = case(
                (model.previous_price > 0,
                 (model.previous_price - model.price) * literal(100.0) / model.previous_price),
                else_=literal(0.0),
            )
            return [drop.desc(), model.id.asc()]
        return [model.created_at.desc(), model.id.asc()]

    def store_params(self) -> Dict[str, Any]:
        """Plain parameters for stores that build their own queries."""
        f = self.property_filter
        return {
            "operation_type": f.operation_type.value,
            "price_gte": self.lower_bound,
            "price_lt": self.less_than,
            "price_lte": self.upper_bound,
            "bedrooms_eq": 0 if f.studio_only else None,
            "bedrooms_gte": None if f.studio_only else f.bedrooms_at_least,
            "bathrooms_gte": f.bathrooms_at_least,
            "features_all": sorted(f.features),
            "sort_by": f.effective_sort.value,
        }


def _compile(property_filter: PropertyFilter) -> CompiledFilter:
    lower_bound = None
    less_than = None
    upper_bound = None

    if property_filter.price_min == PRICE_LESS_THAN:
        less_than = price_lower_bound(property_filter.operation_type)
    elif property_filter.price_min is not None:
        lower_bound = int(property_filter.price_min)

    if property_filter.price_max is not None and property_filter.price_max != PRICE_NO_LIMIT:
        upper_bound = int(property_filter.price_max)

    return CompiledFilter(
        property_filter=property_filter,
        signature=filter_signature(property_filter),
        lower_bound=lower_bound,
        upper_bound=upper_bound,
        less_than=less_than,
    )


@functools.lru_cache(maxsize=256)
def compile_filter(property_filter: PropertyFilter) -> CompiledFilter:
    """Compile a filter. Filters are immutable, so results are memoized."""
    return _compile(property_filter)


def compile_predicate(property_filter: PropertyFilter) -> Tuple[Callable[[Any], bool], Callable[[Any, Any], int]]:
    """(predicate, comparator) pair."""
    compiled = compile_filter(property_filter)
    return compiled.matches, compiled.compare
