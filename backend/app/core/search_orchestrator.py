"""
Cross-Entity Search Orchestrator

Runs one location + filter search across three result domains (properties,
agencies, agents) through the result cache.

- The active domain is fetched and awaited; the two others are prefetched in
  the background with their default ordering.
- Each domain keeps its own status in a SearchSession. A failure in one domain
  never touches the others.
- Only the most recently started search of a domain may update its status;
  results of superseded searches are dropped.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from app.core.config import settings
from app.core.filters import PropertyFilter, filter_signature, to_query_params
from app.core.location_codec import LocationCodec, get_location_codec
from app.core.result_cache import CacheKey, Freshness, ResultCache
from app.core.search_store import LocationFilter, SearchDomain, SearchStore, SqlAlchemySearchStore
from app.core.taxonomy import GeoTaxonomy
from app.db.base import SessionLocal

logger = logging.getLogger(__name__)

# Cache signatures for domains whose ordering ignores the property filter
DOMAIN_DEFAULT_SORT: Dict[SearchDomain, str] = {
    SearchDomain.AGENCIES: "agency-name",
    SearchDomain.AGENTS: "experience",
}


class SearchFetchError(Exception):
    """A domain fetch failed after every retry."""

    def __init__(self, domain: SearchDomain, attempts: int, cause: Optional[BaseException] = None):
        self.domain = SearchDomain(domain)
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Fetching {self.domain.value} failed after {attempts} attempts: {cause}")


class DomainState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class RouteKind(str, Enum):
    DETAIL = "detail"
    MULTI = "multi"


@dataclass(frozen=True)
class SearchResultSet:
    domain: SearchDomain
    location: Tuple[str, ...]
    filter_signature: str
    items: Tuple[Dict[str, Any], ...]
    fetched_at: datetime

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class SearchRoute:
    kind: RouteKind
    path: str
    token: Optional[str] = None
    query: Tuple[Tuple[str, str], ...] = ()

    @property
    def url(self) -> str:
        if not self.query:
            return self.path
        return f"{self.path}?{urlencode(self.query)}"


@dataclass(frozen=True)
class DomainStatus:
    state: DomainState = DomainState.IDLE
    result: Optional[SearchResultSet] = None
    error: Optional[SearchFetchError] = None
    generation: int = 0
    # How the cache served the result: stale results are being refreshed
    freshness: Optional[Freshness] = None


class SearchOrchestrator:
    def __init__(
        self,
        store: SearchStore,
        cache: ResultCache,
        taxonomy: Optional[GeoTaxonomy] = None,
        codec: Optional[LocationCodec] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
    ):
        self.store = store
        self.cache = cache
        self.codec = codec or (LocationCodec(taxonomy) if taxonomy else get_location_codec())
        self.taxonomy = taxonomy or self.codec.taxonomy
        self.max_retries = settings.FETCH_MAX_RETRIES if max_retries is None else max_retries
        self.retry_base_delay = settings.FETCH_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        self.retry_max_delay = settings.FETCH_RETRY_MAX_DELAY if retry_max_delay is None else retry_max_delay

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route_for(
        self,
        selections: Sequence[str],
        domain: SearchDomain = SearchDomain.PROPERTIES,
        property_filter: Optional[PropertyFilter] = None,
    ) -> SearchRoute:
        """
        Exactly one selected location opens its detail view; none or several
        go to the flat search page with every token in the query string.
        """
        domain = SearchDomain(domain)
        tokens = [t for t in selections if t]
        if len(tokens) == 1:
            token = tokens[0]
            return SearchRoute(
                kind=RouteKind.DETAIL,
                path=f"/neighborhood/{quote(token, safe='')}/{domain.value}",
                token=token,
            )
        query = to_query_params(tokens, property_filter or PropertyFilter())
        return SearchRoute(kind=RouteKind.MULTI, path="/search", query=tuple(query))

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def signature_for(self, domain: SearchDomain, property_filter: PropertyFilter) -> str:
        domain = SearchDomain(domain)
        if domain == SearchDomain.PROPERTIES:
            return filter_signature(property_filter)
        return DOMAIN_DEFAULT_SORT[domain]

    def cache_key(self, domain: SearchDomain, tokens: Sequence[str], property_filter: PropertyFilter) -> CacheKey:
        domain = SearchDomain(domain)
        return CacheKey(domain.value, "|".join(tokens), self.signature_for(domain, property_filter))

    def _retry_delay(self, attempt: int) -> float:
        return min(self.retry_base_delay * (2 ** attempt), self.retry_max_delay)

    async def _fetch_from_store(
        self,
        domain: SearchDomain,
        tokens: Tuple[str, ...],
        property_filter: PropertyFilter,
    ) -> SearchResultSet:
        location_filter = LocationFilter.from_tokens(tokens, self.codec)
        attempts = self.max_retries + 1
        last_error: Optional[BaseException] = None

        for attempt in range(attempts):
            try:
                items = await self.store.fetch_entities(domain, location_filter, property_filter)
                return SearchResultSet(
                    domain=domain,
                    location=tokens,
                    filter_signature=self.signature_for(domain, property_filter),
                    items=tuple(items),
                    fetched_at=datetime.now(timezone.utc),
                )
            except Exception as e:
                last_error = e
                if attempt + 1 < attempts:
                    delay = self._retry_delay(attempt)
                    logger.warning(
                        f"Fetch {domain.value} for {list(tokens)} failed "
                        f"(attempt {attempt + 1}/{attempts}), retrying in {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

        logger.error(f"Fetch {domain.value} for {list(tokens)} gave up after {attempts} attempts: {last_error}")
        raise SearchFetchError(domain, attempts, last_error)

    async def fetch_with_freshness(
        self,
        domain: SearchDomain,
        tokens: Sequence[str],
        property_filter: Optional[PropertyFilter] = None,
    ) -> Tuple[SearchResultSet, Freshness]:
        domain = SearchDomain(domain)
        property_filter = property_filter or PropertyFilter()
        tokens = tuple(self.codec.normalize_neighborhoods_param(list(tokens)))
        key = self.cache_key(domain, tokens, property_filter)
        return await self.cache.get_or_fetch(
            key, lambda: self._fetch_from_store(domain, tokens, property_filter)
        )

    async def fetch(
        self,
        domain: SearchDomain,
        tokens: Sequence[str],
        property_filter: Optional[PropertyFilter] = None,
    ) -> SearchResultSet:
        """Result set for one domain, served through the cache."""
        result, _ = await self.fetch_with_freshness(domain, tokens, property_filter)
        return result

    def prefetch_siblings(
        self,
        active: SearchDomain,
        tokens: Sequence[str],
        property_filter: Optional[PropertyFilter] = None,
    ) -> List[asyncio.Task]:
        """Warm the cache for the two other domains, with their default ordering."""
        active = SearchDomain(active)
        base_filter = (property_filter or PropertyFilter()).with_changes(sort_by=None)
        tokens = tuple(self.codec.normalize_neighborhoods_param(list(tokens)))

        tasks = []
        for domain in SearchDomain:
            if domain == active:
                continue
            key = self.cache_key(domain, tokens, base_filter)
            task = self.cache.prefetch(
                key, lambda d=domain: self._fetch_from_store(d, tokens, base_filter)
            )
            if task is not None:
                tasks.append(task)
        return tasks

    def session(self) -> "SearchSession":
        return SearchSession(self)


class SearchSession:
    """Per-domain search status for one client."""

    def __init__(self, orchestrator: SearchOrchestrator):
        self.orchestrator = orchestrator
        self._status: Dict[SearchDomain, DomainStatus] = {d: DomainStatus() for d in SearchDomain}
        self._generation: Dict[SearchDomain, int] = {d: 0 for d in SearchDomain}
        self._last_request: Dict[SearchDomain, Tuple[Tuple[str, ...], PropertyFilter]] = {}
        self._background: List[asyncio.Task] = []

    def status(self, domain: SearchDomain) -> DomainStatus:
        return self._status[SearchDomain(domain)]

    def statuses(self) -> Dict[SearchDomain, DomainStatus]:
        return dict(self._status)

    async def _run(self, domain: SearchDomain, tokens: Tuple[str, ...], property_filter: PropertyFilter) -> DomainStatus:
        self._generation[domain] += 1
        generation = self._generation[domain]
        self._last_request[domain] = (tokens, property_filter)

        previous = self._status[domain]
        self._status[domain] = replace(previous, state=DomainState.LOADING, error=None, generation=generation)

        try:
            result, freshness = await self.orchestrator.fetch_with_freshness(domain, tokens, property_filter)
        except SearchFetchError as e:
            if self._generation[domain] != generation:
                logger.debug(f"Dropping superseded {domain.value} failure (generation {generation})")
                return self._status[domain]
            self._status[domain] = DomainStatus(DomainState.ERROR, None, e, generation)
            return self._status[domain]

        if self._generation[domain] != generation:
            logger.debug(f"Dropping superseded {domain.value} result (generation {generation})")
            return self._status[domain]
        self._status[domain] = DomainStatus(DomainState.LOADED, result, None, generation, freshness)
        return self._status[domain]

    async def search(
        self,
        tokens: Sequence[str],
        property_filter: Optional[PropertyFilter] = None,
        active_domain: SearchDomain = SearchDomain.PROPERTIES,
    ) -> DomainStatus:
        """Fetch the active domain, then prefetch the two others."""
        active_domain = SearchDomain(active_domain)
        property_filter = property_filter or PropertyFilter()
        tokens = tuple(tokens)

        status = await self._run(active_domain, tokens, property_filter)
        self._background.extend(
            self.orchestrator.prefetch_siblings(active_domain, tokens, property_filter)
        )
        return status

    async def search_all(
        self,
        tokens: Sequence[str],
        property_filter: Optional[PropertyFilter] = None,
    ) -> Dict[SearchDomain, DomainStatus]:
        """Fetch every domain concurrently; each settles on its own."""
        property_filter = property_filter or PropertyFilter()
        tokens = tuple(tokens)
        domains = list(SearchDomain)
        outcomes = await asyncio.gather(
            *(self._run(domain, tokens, property_filter) for domain in domains),
            return_exceptions=True,
        )
        for domain, outcome in zip(domains, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Unexpected {domain.value} search failure: {outcome}")
        return self.statuses()

    async def retry(self, domain: SearchDomain) -> DomainStatus:
        """Re-run the last request of a domain."""
        domain = SearchDomain(domain)
        if domain not in self._last_request:
            raise ValueError(f"No {domain.value} search to retry")
        tokens, property_filter = self._last_request[domain]
        return await self._run(domain, tokens, property_filter)

    async def wait_background(self) -> None:
        """Wait for sibling prefetches started by ``search``."""
        pending, self._background = self._background, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


# Singleton instance
_orchestrator: Optional[SearchOrchestrator] = None


def get_search_orchestrator() -> SearchOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        cache = ResultCache(
            stale_time=settings.SEARCH_STALE_TIME_SECONDS,
            gc_time=settings.SEARCH_GC_TIME_SECONDS,
            name="search",
        )
        _orchestrator = SearchOrchestrator(SqlAlchemySearchStore(SessionLocal), cache)
    return _orchestrator
