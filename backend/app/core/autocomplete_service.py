"""
Autocomplete Service

Location suggestions for the search bar. Pure substring containment over the
taxonomy, in fixed tier order:
1. the city's "all neighborhoods" sentinel (if the city name matches)
2. matching districts, taxonomy order
3. matching neighborhoods, taxonomy order

The concatenated list is truncated, so a query matching many districts can
starve neighborhood matches.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from app.core.config import settings
from app.core.location_codec import LocationCodec, get_location_codec
from app.core.taxonomy import ALL_NEIGHBORHOODS_LABEL, GeoTaxonomy

logger = logging.getLogger(__name__)


class AutocompleteRanker:
    def __init__(
        self,
        taxonomy: GeoTaxonomy,
        codec: Optional[LocationCodec] = None,
        min_query_length: Optional[int] = None,
        max_suggestions: Optional[int] = None,
    ):
        self.taxonomy = taxonomy
        self.codec = codec or LocationCodec(taxonomy)
        self.min_query_length = min_query_length or settings.AUTOCOMPLETE_MIN_QUERY_LENGTH
        self.max_suggestions = max_suggestions or settings.AUTOCOMPLETE_MAX_SUGGESTIONS

    def _candidates(self, query: str, city: str) -> List[Tuple[str, str]]:
        """Ranked (label, token) pairs before truncation."""
        q = (query or "").strip().lower()
        if len(q) < self.min_query_length:
            return []
        if not self.taxonomy.is_city(city):
            return []

        ranked: List[Tuple[str, str]] = []

        if q in city.lower():
            ranked.append((f"{city} ({ALL_NEIGHBORHOODS_LABEL})", self.codec.all_neighborhoods_token(city)))

        for district in self.taxonomy.districts_of(city):
            if q in district.lower():
                ranked.append((district, self.codec.encode(city, district)))

        for district in self.taxonomy.districts_of(city):
            for neighborhood in self.taxonomy.neighborhoods_of(district, city):
                if q in neighborhood.lower():
                    ranked.append((neighborhood, self.codec.encode(city, district, neighborhood)))

        seen = set()
        unique = []
        for label, token in ranked:
            if token in seen:
                continue
            seen.add(token)
            unique.append((label, token))
        return unique[:self.max_suggestions]

    def suggest(self, query: str, city: str) -> List[str]:
        """Suggestions as location tokens, ready to be submitted as-is."""
        return [token for _, token in self._candidates(query, city)]

    def suggest_labels(self, query: str, city: str) -> List[str]:
        """Same ranking, bare display names."""
        return [label for label, _ in self._candidates(query, city)]

    def suggest_pairs(self, query: str, city: str) -> List[Tuple[str, str]]:
        return self._candidates(query, city)


class Debouncer:
    """
    Runs a coroutine only after ``delay`` seconds without another call.

    Each call replaces the pending one; the replaced caller receives None.
    """

    def __init__(self, func: Callable[..., Awaitable[Any]], delay: Optional[float] = None):
        self.func = func
        self.delay = settings.AUTOCOMPLETE_DEBOUNCE_SECONDS if delay is None else delay
        self._pending: Optional[asyncio.Task] = None

    async def _run_later(self, args, kwargs):
        await asyncio.sleep(self.delay)
        return await self.func(*args, **kwargs)

    async def __call__(self, *args, **kwargs) -> Any:
        if self._pending and not self._pending.done():
            self._pending.cancel()
        task = asyncio.ensure_future(self._run_later(args, kwargs))
        self._pending = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._pending is not task:
                # Superseded by a newer call
                return None
            raise


# Singleton instance
_ranker: Optional[AutocompleteRanker] = None


def get_autocomplete_ranker() -> AutocompleteRanker:
    global _ranker
    if _ranker is None:
        codec = get_location_codec()
        _ranker = AutocompleteRanker(codec.taxonomy, codec)
    return _ranker
