"""
Location Identifier Codec

Encodes a location selection into a single URL-safe, human-readable token and
parses tokens back into (city, district, neighborhood).

Token formats, most specific first:
- "<neighborhood>, <district>, <city>"
- "<district>, <city>"
- "<city>"
- "<city> (Todos los barrios)"  every neighborhood in the city

Decoding is total: legacy 1- and 2-part tokens and unknown names degrade to a
free-text neighborhood or the default city instead of failing.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from app.core.taxonomy import ALL_NEIGHBORHOODS_LABEL, GeoTaxonomy, get_taxonomy
from app.core.config import settings

logger = logging.getLogger(__name__)

SEPARATOR = ", "

_ALL_NEIGHBORHOODS_RE = re.compile(
    r"^\s*(?P<city>.+?)\s*\(\s*" + re.escape(ALL_NEIGHBORHOODS_LABEL) + r"\s*\)\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class DecodedLocation:
    """Structured form of a location token."""
    city: str
    district: Optional[str] = None
    neighborhood: Optional[str] = None
    all_neighborhoods: bool = False
    # False for free-text neighborhoods the taxonomy does not list
    known: bool = True

    @property
    def level(self) -> str:
        if self.neighborhood is not None:
            return "neighborhood"
        if self.district is not None:
            return "district"
        return "city"

    def as_triple(self):
        return (self.city, self.district, self.neighborhood)


class LocationCodec:
    def __init__(self, taxonomy: Optional[GeoTaxonomy] = None, default_city: Optional[str] = None):
        self.taxonomy = taxonomy or get_taxonomy()
        cities = self.taxonomy.cities_available()
        preferred = default_city or settings.DEFAULT_CITY
        if preferred in cities or not cities:
            self.default_city = preferred
        else:
            self.default_city = cities[0]

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode(
        self,
        city: str,
        district: Optional[str] = None,
        neighborhood: Optional[str] = None,
        all_neighborhoods: bool = False,
    ) -> str:
        """Build the most specific token for what is known about the location."""
        if all_neighborhoods and not neighborhood and not district:
            return f"{city} ({ALL_NEIGHBORHOODS_LABEL})"

        if neighborhood:
            if not district:
                district = self.taxonomy.district_of(neighborhood, city)
            if district:
                return SEPARATOR.join([neighborhood, district, city])
            return SEPARATOR.join([neighborhood, city])

        if district:
            return SEPARATOR.join([district, city])

        return city

    def encode_location(self, location: DecodedLocation) -> str:
        return self.encode(
            location.city,
            location.district,
            location.neighborhood,
            all_neighborhoods=location.all_neighborhoods,
        )

    def all_neighborhoods_token(self, city: str) -> str:
        return self.encode(city, all_neighborhoods=True)

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode(self, token: Optional[str]) -> DecodedLocation:
        """Parse a token. Never raises; worst case returns the default city."""
        raw = (token or "").strip() if isinstance(token, str) else ""
        if not raw:
            return DecodedLocation(city=self.default_city)

        taxonomy = self.taxonomy

        sentinel = _ALL_NEIGHBORHOODS_RE.match(raw)
        if sentinel:
            city = taxonomy.canonical_city(sentinel.group("city"))
            if city:
                return DecodedLocation(city=city, all_neighborhoods=True)

        parts = [p.strip() for p in raw.split(",")]
        trailing_city = taxonomy.canonical_city(parts[-1]) if len(parts) > 1 else None

        # 1. neighborhood, district, city (neighborhood names may contain commas)
        if len(parts) >= 3 and trailing_city:
            neighborhood = SEPARATOR.join(parts[:-2])
            district = parts[-2]
            if taxonomy.is_valid_triple(trailing_city, district, neighborhood):
                return DecodedLocation(city=trailing_city, district=district, neighborhood=neighborhood)

        # 2. district, city
        if len(parts) >= 2 and trailing_city:
            district = SEPARATOR.join(parts[:-1])
            if taxonomy.is_district(district, trailing_city):
                return DecodedLocation(city=trailing_city, district=district)

        # 3. exact city
        city = taxonomy.canonical_city(raw)
        if city:
            return DecodedLocation(city=city)

        # Legacy bare district names
        district_cities = taxonomy.cities_of_district(raw)
        if district_cities:
            return DecodedLocation(city=self._prefer_default(district_cities), district=raw)

        # 4. fallback: neighborhood name resolved through the reverse index
        return self._decode_neighborhood(raw, parts, trailing_city)

    def _decode_neighborhood(self, raw: str, parts: List[str], trailing_city: Optional[str]) -> DecodedLocation:
        taxonomy = self.taxonomy

        if trailing_city:
            candidates = [SEPARATOR.join(parts[:-1])]
            if len(parts) >= 3:
                candidates.append(SEPARATOR.join(parts[:-2]))
            for candidate in candidates:
                district = taxonomy.district_of(candidate, trailing_city)
                if district:
                    return DecodedLocation(city=trailing_city, district=district, neighborhood=candidate)
            logger.debug(f"Free-text neighborhood '{candidates[0]}' in {trailing_city}")
            return DecodedLocation(city=trailing_city, neighborhood=candidates[0], known=False)

        parents = taxonomy.parents_of_neighborhood(raw)
        if parents:
            city = self._prefer_default([c for c, _ in parents])
            return DecodedLocation(city=city, district=taxonomy.district_of(raw, city), neighborhood=raw)

        logger.debug(f"Free-text neighborhood '{raw}' in {self.default_city}")
        return DecodedLocation(city=self.default_city, neighborhood=raw, known=False)

    def _prefer_default(self, cities: List[str]) -> str:
        return self.default_city if self.default_city in cities else cities[0]

    # ------------------------------------------------------------------
    # Multi-shape "neighborhoods" parameter
    # ------------------------------------------------------------------

    def is_canonical(self, candidate: str) -> bool:
        """True when candidate is a token this codec would produce for a known location."""
        decoded = self.decode(candidate)
        return decoded.known and self.encode_location(decoded) == candidate

    def is_free_text_token(self, candidate: str) -> bool:
        """True for "<name>, <city>" tokens naming a neighborhood unknown to the catalog."""
        if SEPARATOR not in candidate:
            return False
        decoded = self.decode(candidate)
        if decoded.known or not decoded.neighborhood:
            return False
        # A city inside the name means several tokens were joined together
        if any(self.taxonomy.canonical_city(part.strip()) for part in decoded.neighborhood.split(",")):
            return False
        return self.encode_location(decoded) == candidate

    def _is_recognized(self, candidate: str) -> bool:
        if self.is_canonical(candidate) or self.is_free_text_token(candidate):
            return True
        taxonomy = self.taxonomy
        return bool(
            taxonomy.canonical_city(candidate)
            or taxonomy.cities_of_district(candidate)
            or taxonomy.parents_of_neighborhood(candidate)
        )

    def split_tokens(self, value: str) -> List[str]:
        """
        Split a comma-joined list of tokens.

        Tokens contain commas themselves, so parts are re-assembled greedily into
        the longest span the taxonomy recognizes.
        """
        parts = [p.strip() for p in value.split(",")]
        parts = [p for p in parts if p]
        tokens: List[str] = []
        i = 0
        while i < len(parts):
            chosen = i + 1
            for j in range(len(parts), i + 1, -1):
                if self._is_recognized(SEPARATOR.join(parts[i:j])):
                    chosen = j
                    break
            tokens.append(SEPARATOR.join(parts[i:chosen]))
            i = chosen
        return tokens

    def normalize_neighborhoods_param(self, value: Union[None, str, Iterable[str]]) -> List[str]:
        """
        Normalize the ``neighborhoods`` parameter (single string, list, or
        comma-joined string) into an ordered, de-duplicated list of tokens.
        Always returns at least one token.
        """
        if value is None:
            raw_values: List[str] = []
        elif isinstance(value, str):
            raw_values = [value]
        else:
            raw_values = [v for v in value if isinstance(v, str)]

        tokens: List[str] = []
        for raw in raw_values:
            raw = raw.strip()
            if not raw:
                continue
            if self._is_recognized(raw) or _ALL_NEIGHBORHOODS_RE.match(raw):
                candidates = [raw]
            else:
                candidates = self.split_tokens(raw)
            for token in candidates:
                if token not in tokens:
                    tokens.append(token)

        if not tokens:
            tokens.append(self.default_city)
        return tokens


# Singleton instance
_codec: Optional[LocationCodec] = None


def get_location_codec() -> LocationCodec:
    global _codec
    if _codec is None:
        _codec = LocationCodec(get_taxonomy())
    return _codec
