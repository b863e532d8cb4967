"""
Tests for the cross-entity search orchestrator.

Tests:
- Single location opens the detail view, anything else the flat search
- Retries with backoff, then a domain-scoped failure
- One failing domain never changes another domain's state
- Only the latest search of a domain updates its state
- Sibling domains are prefetched into the cache

Run: pytest backend/test_search_orchestrator.py -v
"""

import asyncio
from urllib.parse import unquote

import pytest

from app.core.filters import PropertyFilter, SortBy
from app.core.search_orchestrator import (
    DomainState,
    RouteKind,
    SearchFetchError,
    SearchOrchestrator,
)
from app.core.result_cache import ResultCache
from app.core.search_store import SearchDomain, SearchStore

GRACIA = "Vila de Gràcia, Gràcia, Barcelona"
RAVAL = "El Raval, Ciutat Vella, Barcelona"


class FlakyStore(SearchStore):
    """Wraps a store and fails a given number of times per domain."""

    def __init__(self, inner, failures=None, always_fail=()):
        self.inner = inner
        self.failures = dict(failures or {})
        self.always_fail = set(always_fail)
        self.calls = {d: 0 for d in SearchDomain}

    async def fetch_entities(self, domain, location_filter, property_filter):
        domain = SearchDomain(domain)
        self.calls[domain] += 1
        if domain in self.always_fail:
            raise ConnectionError(f"{domain.value} store unavailable")
        if self.failures.get(domain, 0) > 0:
            self.failures[domain] -= 1
            raise ConnectionError("temporary failure")
        return await self.inner.fetch_entities(domain, location_filter, property_filter)


class GatedStore(SearchStore):
    """Holds each fetch until the test opens the gate for its first neighborhood."""

    def __init__(self, inner, fail=()):
        self.inner = inner
        self.fail = set(fail)
        self.gates = {}

    def gate(self, neighborhood):
        return self.gates.setdefault(neighborhood, asyncio.Event())

    async def fetch_entities(self, domain, location_filter, property_filter):
        neighborhood = location_filter.neighborhoods[0]
        await self.gate(neighborhood).wait()
        if neighborhood in self.fail:
            raise ConnectionError(f"{neighborhood} unavailable")
        return await self.inner.fetch_entities(domain, location_filter, property_filter)


def make_orchestrator(store, codec, clock, max_retries=2):
    cache = ResultCache(stale_time=300, gc_time=1800, clock=clock)
    return SearchOrchestrator(store, cache, codec=codec, max_retries=max_retries,
                              retry_base_delay=0, retry_max_delay=0)


def ids(result):
    return [item["id"] for item in result.items]


class TestRouting:
    def test_single_location_opens_detail_view(self, orchestrator):
        route = orchestrator.route_for([GRACIA])
        assert route.kind == RouteKind.DETAIL
        assert route.token == GRACIA
        prefix, encoded, domain = route.path.rsplit("/", 2)
        assert prefix == "/neighborhood"
        assert unquote(encoded) == GRACIA
        assert domain == "properties"

    def test_detail_view_keeps_domain(self, orchestrator):
        assert orchestrator.route_for([GRACIA], SearchDomain.AGENTS).path.endswith("/agents")

    def test_several_locations_use_flat_search(self, orchestrator):
        route = orchestrator.route_for([GRACIA, RAVAL], property_filter=PropertyFilter(sort_by=SortBy.PRICE_ASC))
        assert route.kind == RouteKind.MULTI
        assert route.path == "/search"
        assert ("neighborhoods", f"{GRACIA},{RAVAL}") in route.query
        assert ("sortBy", "price-asc") in route.query
        assert route.url.startswith("/search?neighborhoods=")

    def test_no_location_uses_flat_search(self, orchestrator):
        assert orchestrator.route_for([]).kind == RouteKind.MULTI


class TestFetch:
    def test_fetch_returns_result_set(self, orchestrator):
        result = asyncio.run(orchestrator.fetch(SearchDomain.PROPERTIES, [GRACIA, RAVAL]))
        assert result.domain == SearchDomain.PROPERTIES
        assert result.location == (GRACIA, RAVAL)
        assert ids(result) == [4, 2, 1]

    def test_results_are_served_from_cache(self, memory_store, codec, clock):
        store = FlakyStore(memory_store)
        orchestrator = make_orchestrator(store, codec, clock)

        async def main():
            first = await orchestrator.fetch(SearchDomain.AGENTS, [GRACIA])
            second = await orchestrator.fetch(SearchDomain.AGENTS, [GRACIA])
            return first, second

        first, second = asyncio.run(main())
        assert first is second
        assert store.calls[SearchDomain.AGENTS] == 1

    def test_filter_changes_miss_the_cache(self, memory_store, codec, clock):
        store = FlakyStore(memory_store)
        orchestrator = make_orchestrator(store, codec, clock)

        async def main():
            await orchestrator.fetch(SearchDomain.PROPERTIES, [GRACIA])
            await orchestrator.fetch(SearchDomain.PROPERTIES, [GRACIA], PropertyFilter(sort_by=SortBy.PRICE_ASC))

        asyncio.run(main())
        assert store.calls[SearchDomain.PROPERTIES] == 2

    def test_transient_failures_are_retried(self, memory_store, codec, clock):
        store = FlakyStore(memory_store, failures={SearchDomain.PROPERTIES: 2})
        orchestrator = make_orchestrator(store, codec, clock)
        result = asyncio.run(orchestrator.fetch(SearchDomain.PROPERTIES, [GRACIA]))
        assert ids(result) == [2, 1]
        assert store.calls[SearchDomain.PROPERTIES] == 3

    def test_gives_up_after_retries(self, memory_store, codec, clock):
        store = FlakyStore(memory_store, always_fail={SearchDomain.PROPERTIES})
        orchestrator = make_orchestrator(store, codec, clock)
        with pytest.raises(SearchFetchError) as excinfo:
            asyncio.run(orchestrator.fetch(SearchDomain.PROPERTIES, [GRACIA]))
        assert excinfo.value.domain == SearchDomain.PROPERTIES
        assert excinfo.value.attempts == 3
        assert store.calls[SearchDomain.PROPERTIES] == 3

    def test_backoff_is_exponential_and_capped(self, memory_store, codec):
        orchestrator = SearchOrchestrator(memory_store, ResultCache(1, 2), codec=codec,
                                          retry_base_delay=0.5, retry_max_delay=1.5)
        assert [orchestrator._retry_delay(a) for a in range(4)] == [0.5, 1.0, 1.5, 1.5]


class TestSession:
    def test_search_prefetches_sibling_domains(self, orchestrator):
        session = orchestrator.session()

        async def main():
            status = await session.search([GRACIA], PropertyFilter(sort_by=SortBy.PRICE_ASC))
            await session.wait_background()
            return status

        status = asyncio.run(main())
        assert status.state == DomainState.LOADED
        assert status.generation == 1
        for domain in (SearchDomain.AGENCIES, SearchDomain.AGENTS):
            assert orchestrator.cache_key(domain, [GRACIA], PropertyFilter()) in orchestrator.cache
            assert session.status(domain).state == DomainState.IDLE

    def test_failure_is_scoped_to_its_domain(self, memory_store, codec, clock):
        store = FlakyStore(memory_store, always_fail={SearchDomain.AGENCIES})
        session = make_orchestrator(store, codec, clock).session()

        statuses = asyncio.run(session.search_all([GRACIA]))

        assert statuses[SearchDomain.AGENCIES].state == DomainState.ERROR
        assert isinstance(statuses[SearchDomain.AGENCIES].error, SearchFetchError)
        assert statuses[SearchDomain.PROPERTIES].state == DomainState.LOADED
        assert statuses[SearchDomain.AGENTS].state == DomainState.LOADED
        assert [a["id"] for a in statuses[SearchDomain.AGENTS].result.items] == [2, 3, 1]

    def test_retry_recovers_failed_domain(self, memory_store, codec, clock):
        store = FlakyStore(memory_store, failures={SearchDomain.AGENTS: 3})
        session = make_orchestrator(store, codec, clock).session()

        async def main():
            failed = await session.search([GRACIA], active_domain=SearchDomain.AGENTS)
            recovered = await session.retry(SearchDomain.AGENTS)
            await session.wait_background()
            return failed, recovered

        failed, recovered = asyncio.run(main())
        assert failed.state == DomainState.ERROR
        assert recovered.state == DomainState.LOADED
        assert recovered.generation == 2
        assert session.status(SearchDomain.PROPERTIES).state == DomainState.IDLE

    def test_retry_without_previous_search(self, orchestrator):
        with pytest.raises(ValueError):
            asyncio.run(orchestrator.session().retry(SearchDomain.AGENTS))

    def test_latest_search_wins(self, memory_store, codec, clock):
        store = GatedStore(memory_store)
        session = make_orchestrator(store, codec, clock).session()

        async def main():
            older = asyncio.ensure_future(session.search([GRACIA]))
            await asyncio.sleep(0)
            newer = asyncio.ensure_future(session.search([RAVAL]))
            await asyncio.sleep(0)

            store.gate("El Raval").set()
            await newer
            store.gate("Vila de Gràcia").set()
            await older
            await session.wait_background()

        asyncio.run(main())
        status = session.status(SearchDomain.PROPERTIES)
        assert status.state == DomainState.LOADED
        assert status.generation == 2
        assert status.result.location == (RAVAL,)
        assert [p["id"] for p in status.result.items] == [4]

    def test_superseded_failure_does_not_overwrite(self, memory_store, codec, clock):
        store = GatedStore(memory_store, fail={"Vila de Gràcia"})
        session = make_orchestrator(store, codec, clock, max_retries=0).session()

        async def main():
            older = asyncio.ensure_future(session.search([GRACIA]))
            await asyncio.sleep(0)
            newer = asyncio.ensure_future(session.search([RAVAL]))
            await asyncio.sleep(0)

            store.gate("El Raval").set()
            await newer
            store.gate("Vila de Gràcia").set()
            await older
            await session.wait_background()

        asyncio.run(main())
        status = session.status(SearchDomain.PROPERTIES)
        assert status.generation == 2
        assert status.state == DomainState.LOADED
        assert status.error is None
