"""
Shared fixtures.

The database URL is pinned to an in-memory SQLite database BEFORE the app
package is imported, so importing app.main never touches a real database.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.core.location_codec import LocationCodec
from app.core.result_cache import ResultCache
from app.core.search_orchestrator import SearchOrchestrator, get_search_orchestrator
from app.core.search_store import InMemorySearchStore
from app.core.taxonomy import GeoTaxonomy


class FakeClock:
    """Manually advanced clock for cache staleness tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _property(id, neighborhood, district, operation_type, price, bedrooms, bathrooms, superficie,
              features, created_at, city="Barcelona", previous_price=None, is_active=True):
    return {
        "id": id,
        "address": f"Calle {id}",
        "city": city,
        "district": district,
        "neighborhood": neighborhood,
        "operation_type": operation_type,
        "price": price,
        "previous_price": previous_price,
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
        "superficie": superficie,
        "features": features,
        "created_at": created_at,
        "is_active": is_active,
    }


@pytest.fixture
def sample_properties():
    return [
        _property(1, "Vila de Gràcia", "Gràcia", "Venta", 350000, 2, 1, 70, ["ascensor", "balcon"],
                  datetime(2024, 3, 1), previous_price=380000),
        _property(2, "Vila de Gràcia", "Gràcia", "Venta", 95000, 0, 1, 30, ["ascensor"],
                  datetime(2024, 3, 5)),
        _property(3, "Camp d'en Grassot i Gràcia Nova", "Gràcia", "Venta", 520000, 3, 2, None,
                  ["ascensor", "terraza"], datetime(2024, 2, 10)),
        _property(4, "El Raval", "Ciutat Vella", "Venta", 250000, 1, 1, 50, ["terraza"],
                  datetime(2024, 3, 10), previous_price=240000),
        _property(5, "Vila de Gràcia", "Gràcia", "Alquiler", 1500, 2, 1, 65, ["ascensor", "terraza"],
                  datetime(2024, 3, 2)),
        _property(6, "Universidad", "Centro", "Venta", 420000, 2, 2, 0, [],
                  datetime(2024, 1, 15), city="Madrid"),
        _property(7, "Vila de Gràcia", "Gràcia", "Venta", 300000, 2, 1, 60, [],
                  datetime(2024, 2, 1), is_active=False),
    ]


@pytest.fixture
def sample_agencies():
    return [
        {"id": 1, "agency_name": "Gràcia Homes", "city": "Barcelona",
         "influence_neighborhoods": ["Vila de Gràcia"], "deleted_at": None},
        {"id": 2, "agency_name": "Alpha Raval", "city": "Barcelona",
         "influence_neighborhoods": ["El Raval"], "deleted_at": None},
        {"id": 3, "agency_name": "Closed Agency", "city": "Barcelona",
         "influence_neighborhoods": ["Vila de Gràcia"], "deleted_at": datetime(2024, 1, 1)},
        {"id": 4, "agency_name": "Centro Madrid", "city": "Madrid",
         "influence_neighborhoods": ["Universidad"], "deleted_at": None},
    ]


@pytest.fixture
def sample_agents():
    return [
        {"id": 1, "email": "laura@example.com", "name": "Laura", "surname": "Puig", "city": "Barcelona",
         "influence_neighborhoods": ["Vila de Gràcia", "El Raval"], "years_of_experience": 8},
        {"id": 2, "email": "marc@example.com", "name": "Marc", "surname": "Vidal", "city": "Barcelona",
         "influence_neighborhoods": ["Vila de Gràcia"], "years_of_experience": 12},
        {"id": 3, "email": "ana@example.com", "name": "Ana", "surname": "Soler", "city": "Barcelona",
         "influence_neighborhoods": ["Vila de Gràcia"], "years_of_experience": 8},
        {"id": 4, "email": "pablo@example.com", "name": "Pablo", "surname": "Ruiz", "city": "Madrid",
         "influence_neighborhoods": ["Universidad"], "years_of_experience": 5},
    ]


@pytest.fixture
def taxonomy():
    return GeoTaxonomy()


@pytest.fixture
def codec(taxonomy):
    return LocationCodec(taxonomy, default_city="Barcelona")


@pytest.fixture
def memory_store(sample_properties, sample_agencies, sample_agents):
    return InMemorySearchStore(sample_properties, sample_agencies, sample_agents)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def orchestrator(memory_store, codec, clock):
    cache = ResultCache(stale_time=300, gc_time=1800, clock=clock, name="test")
    return SearchOrchestrator(memory_store, cache, codec=codec, max_retries=2, retry_base_delay=0, retry_max_delay=0)


@pytest.fixture
def client(orchestrator):
    from app.main import app

    app.dependency_overrides[get_search_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
