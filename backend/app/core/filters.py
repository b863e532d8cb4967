"""
Property search filters.

PropertyFilter is an immutable value: every change produces a new filter, so
the filter signature used in cache keys can be computed from the value alone.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


class FilterValidationError(ValueError):
    """Raised when raw query-string input cannot be turned into a filter."""


class OperationType(str, Enum):
    SALE = "Venta"
    RENT = "Alquiler"


class SortBy(str, Enum):
    NEWEST = "newest"
    PRICE_ASC = "price-asc"
    PRICE_PER_AREA = "price-per-area"
    PRICE_DROP = "price-drop"


# Price sentinels
PRICE_LESS_THAN = "less-than"
PRICE_NO_LIMIT = "no-limit"

PriceMin = Union[int, str, None]
PriceMax = Union[int, str, None]

# Price vocabularies offered per operation type (euros, or euros/month for rentals)
PRICE_OPTIONS: Dict[OperationType, List[int]] = {
    OperationType.SALE: [100000, 150000, 200000, 300000, 400000, 500000, 600000,
                         700000, 800000, 900000, 1000000, 2000000],
    OperationType.RENT: [400, 600, 800, 1000, 1200, 1500, 2000, 2500, 3000, 4000, 5000],
}


def price_lower_bound(operation_type: OperationType) -> int:
    """Upper limit of the "less than" price band: the lowest option offered."""
    return PRICE_OPTIONS[OperationType(operation_type)][0]


# Feature tags shared by the property form and the filters
PROPERTY_FEATURES: Dict[str, str] = {
    "aire-acondicionado": "Aire acondicionado",
    "calefaccion": "Calefacción",
    "ascensor": "Ascensor",
    "terraza": "Terraza",
    "balcon": "Balcón",
    "jardin": "Jardín",
    "piscina": "Piscina",
    "armarios-empotrados": "Armarios empotrados",
    "trastero": "Trastero",
    "garaje": "Garaje",
    "parking": "Parking",
    "bien-conectado": "Bien conectado",
    "exterior": "Exterior",
    "amueblado": "Amueblado",
    "electrodomesticos": "Electrodomésticos",
    "bano-suite": "Baño en-suite",
    "accesible": "Accesible",
    "permite-mascota": "Permite mascota",
    "vistas-mar": "Vistas al mar",
    "security": "Seguridad 24h",
    "gym": "Gimnasio",
    "fireplace": "Chimenea",
}


# ============================================================
# Bedroom / bathroom tiers
# ============================================================

STUDIO_TIER = 0
BEDROOM_MAX_TIER = 4
BATHROOM_MAX_TIER = 2


@dataclass(frozen=True)
class TierSelection:
    """
    Selected "at least N" tiers.

    Selecting tier k also selects every tier above it (upward closure); the
    studio tier is mutually exclusive with all numeric tiers.
    """
    tiers: FrozenSet[int] = frozenset()
    max_tier: int = 4
    allow_studio: bool = True

    @classmethod
    def bedrooms(cls, tiers: Iterable[int] = ()) -> "TierSelection":
        return cls.from_tiers(tiers, max_tier=BEDROOM_MAX_TIER, allow_studio=True)

    @classmethod
    def bathrooms(cls, tiers: Iterable[int] = ()) -> "TierSelection":
        return cls.from_tiers(tiers, max_tier=BATHROOM_MAX_TIER, allow_studio=False)

    @classmethod
    def from_tiers(cls, tiers: Iterable[int], max_tier: int = 4, allow_studio: bool = True) -> "TierSelection":
        """Rebuild a selection from a persisted tier list, applying the closure."""
        selection = cls(frozenset(), max_tier=max_tier, allow_studio=allow_studio)
        tiers = set(tiers)
        if allow_studio and STUDIO_TIER in tiers and not (tiers - {STUDIO_TIER}):
            return selection.toggle(STUDIO_TIER)
        numeric = [t for t in tiers if t != STUDIO_TIER]
        if numeric:
            return selection.toggle(min(numeric))
        return selection

    def _closure(self, tier: int) -> FrozenSet[int]:
        return frozenset(range(tier, self.max_tier + 1))

    def toggle(self, tier: int) -> "TierSelection":
        """Return the selection after clicking ``tier``."""
        if tier == STUDIO_TIER:
            if not self.allow_studio:
                raise ValueError("This selection has no studio tier")
            if STUDIO_TIER in self.tiers:
                return replace(self, tiers=frozenset())
            return replace(self, tiers=frozenset({STUDIO_TIER}))

        if tier < 1 or tier > self.max_tier:
            raise ValueError(f"Tier {tier} out of range 1..{self.max_tier}")

        if tier in self.tiers:
            return replace(self, tiers=self.tiers - self._closure(tier))
        numeric = self.tiers - {STUDIO_TIER}
        return replace(self, tiers=numeric | self._closure(tier))

    @property
    def studio_only(self) -> bool:
        return self.tiers == frozenset({STUDIO_TIER})

    @property
    def at_least(self) -> Optional[int]:
        """Effective filter value: minimum selected numeric tier."""
        numeric = self.tiers - {STUDIO_TIER}
        return min(numeric) if numeric else None

    def as_list(self) -> List[int]:
        return sorted(self.tiers)


# ============================================================
# PropertyFilter
# ============================================================

@dataclass(frozen=True)
class PropertyFilter:
    """Structured property search filter. Replace, never mutate."""
    operation_type: OperationType = OperationType.SALE
    price_min: PriceMin = None
    price_max: PriceMax = None
    bedrooms_at_least: Optional[int] = None
    studio_only: bool = False
    bathrooms_at_least: Optional[int] = None
    features: FrozenSet[str] = field(default_factory=frozenset)
    sort_by: Optional[SortBy] = None

    def __post_init__(self):
        object.__setattr__(self, "operation_type", OperationType(self.operation_type))
        object.__setattr__(self, "features", frozenset(self.features or ()))
        if self.sort_by is not None:
            object.__setattr__(self, "sort_by", SortBy(self.sort_by))

    def with_changes(self, **changes) -> "PropertyFilter":
        return replace(self, **changes)

    def with_operation_type(self, operation_type: OperationType) -> "PropertyFilter":
        """Switch sale/rent. Price vocabularies differ, so bounds are cleared."""
        operation_type = OperationType(operation_type)
        if operation_type == self.operation_type:
            return self
        return replace(self, operation_type=operation_type, price_min=None, price_max=None)

    def with_bedrooms(self, selection: TierSelection) -> "PropertyFilter":
        return replace(self, bedrooms_at_least=selection.at_least, studio_only=selection.studio_only)

    def with_bathrooms(self, selection: TierSelection) -> "PropertyFilter":
        return replace(self, bathrooms_at_least=selection.at_least)

    def with_feature(self, feature_id: str, enabled: bool = True) -> "PropertyFilter":
        features = self.features | {feature_id} if enabled else self.features - {feature_id}
        return replace(self, features=features)

    @property
    def effective_sort(self) -> SortBy:
        return self.sort_by or SortBy.NEWEST

    def bedroom_tiers(self) -> List[int]:
        if self.studio_only:
            return [STUDIO_TIER]
        return _expand_tiers(self.bedrooms_at_least, BEDROOM_MAX_TIER)

    def bathroom_tiers(self) -> List[int]:
        return _expand_tiers(self.bathrooms_at_least, BATHROOM_MAX_TIER)


def _expand_tiers(at_least: Optional[int], max_tier: int) -> List[int]:
    """Tier list persisted in URLs for an "at least" value."""
    if at_least is None:
        return []
    if at_least < 1 or at_least > max_tier:
        return [at_least]
    return list(range(at_least, max_tier + 1))


def filter_signature(property_filter: PropertyFilter) -> str:
    """
    Deterministic serialization used in cache keys.

    Semantically equal filters (same fields, same feature set in any order)
    produce the same signature.
    """
    payload = {
        "bathrooms": property_filter.bathrooms_at_least,
        "bedrooms": property_filter.bedrooms_at_least,
        "features": sorted(property_filter.features),
        "operationType": property_filter.operation_type.value,
        "priceMax": property_filter.price_max,
        "priceMin": property_filter.price_min,
        "sortBy": property_filter.effective_sort.value,
        "studio": property_filter.studio_only,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


# ============================================================
# Query-string codec
# ============================================================

def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise FilterValidationError(f"{name} must be an integer, got {value!r}")


def _parse_price(name: str, value: Optional[str], sentinel: str) -> Union[int, str, None]:
    if value is None or value == "" or value == "any":
        return None
    if value == sentinel:
        return sentinel
    price = _parse_int(name, value)
    if price < 0:
        raise FilterValidationError(f"{name} must not be negative")
    return price


def _parse_tiers(name: str, value: Optional[str]) -> List[int]:
    return [_parse_int(name, v) for v in _split_csv(value)]


def _first(params: Mapping, key: str) -> Optional[str]:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def from_query_params(params: Mapping) -> PropertyFilter:
    """
    Build a PropertyFilter from the URL query-string contract.

    Keys: operationType, priceMin, priceMax, bedrooms, bathrooms, features, sortBy.
    """
    raw_operation = _first(params, "operationType") or OperationType.SALE.value
    try:
        operation_type = OperationType(raw_operation)
    except ValueError:
        raise FilterValidationError(f"operationType must be one of {[o.value for o in OperationType]}")

    raw_sort = _first(params, "sortBy")
    sort_by = None
    if raw_sort and raw_sort != "default":
        try:
            sort_by = SortBy(raw_sort)
        except ValueError:
            raise FilterValidationError(f"sortBy must be one of {[s.value for s in SortBy]}")

    try:
        bedrooms = TierSelection.bedrooms(_parse_tiers("bedrooms", _first(params, "bedrooms")))
        bathrooms = TierSelection.bathrooms(_parse_tiers("bathrooms", _first(params, "bathrooms")))
    except ValueError as e:
        if isinstance(e, FilterValidationError):
            raise
        raise FilterValidationError(str(e))

    return PropertyFilter(
        operation_type=operation_type,
        price_min=_parse_price("priceMin", _first(params, "priceMin"), PRICE_LESS_THAN),
        price_max=_parse_price("priceMax", _first(params, "priceMax"), PRICE_NO_LIMIT),
        bedrooms_at_least=bedrooms.at_least,
        studio_only=bedrooms.studio_only,
        bathrooms_at_least=bathrooms.at_least,
        features=frozenset(_split_csv(_first(params, "features"))),
        sort_by=sort_by,
    )


def to_query_params(tokens: Sequence[str], property_filter: PropertyFilter) -> List[Tuple[str, str]]:
    """Serialize location tokens and filter for a bookmarkable search URL."""
    params: List[Tuple[str, str]] = []
    if tokens:
        params.append(("neighborhoods", ",".join(tokens)))
    params.append(("operationType", property_filter.operation_type.value))
    if property_filter.price_min is not None:
        params.append(("priceMin", str(property_filter.price_min)))
    if property_filter.price_max is not None:
        params.append(("priceMax", str(property_filter.price_max)))
    bedrooms = property_filter.bedroom_tiers()
    if bedrooms:
        params.append(("bedrooms", ",".join(str(t) for t in bedrooms)))
    bathrooms = property_filter.bathroom_tiers()
    if bathrooms:
        params.append(("bathrooms", ",".join(str(t) for t in bathrooms)))
    if property_filter.features:
        params.append(("features", ",".join(sorted(property_filter.features))))
    if property_filter.sort_by is not None:
        params.append(("sortBy", property_filter.sort_by.value))
    return params
