"""
Tests for the geographic taxonomy.

Run: pytest backend/test_taxonomy.py -v
"""

import pytest

from app.core.taxonomy import GeoNode, GeoTaxonomy


class TestForwardLookups:
    def test_cities(self, taxonomy):
        assert taxonomy.cities_available() == ["Barcelona", "Madrid"]

    def test_districts_keep_catalog_order(self, taxonomy):
        districts = taxonomy.districts_of("Barcelona")
        assert districts[0] == "Ciutat Vella"
        assert "Gràcia" in districts
        assert len(districts) == 10

    def test_unknown_city_is_empty(self, taxonomy):
        assert taxonomy.districts_of("Valencia") == []
        assert taxonomy.all_neighborhoods_of("Valencia") == []

    def test_neighborhoods_of_district(self, taxonomy):
        assert "Vila de Gràcia" in taxonomy.neighborhoods_of("Gràcia", "Barcelona")
        assert taxonomy.neighborhoods_of("Gràcia", "Madrid") == []


class TestReverseLookups:
    def test_district_of(self, taxonomy):
        assert taxonomy.district_of("Vila de Gràcia", "Barcelona") == "Gràcia"
        assert taxonomy.district_of("Universidad", "Madrid") == "Centro"
        assert taxonomy.district_of("Universidad", "Barcelona") is None

    def test_canonical_city_is_case_insensitive(self, taxonomy):
        assert taxonomy.canonical_city("  madrid ") == "Madrid"
        assert taxonomy.canonical_city("") is None
        assert taxonomy.canonical_city("Paris") is None

    def test_same_name_district_and_neighborhood(self, taxonomy):
        assert taxonomy.is_district("Les Corts", "Barcelona")
        assert taxonomy.is_neighborhood("Les Corts", "Barcelona")
        assert taxonomy.is_valid_triple("Barcelona", "Les Corts", "Les Corts")

    def test_parents_of_neighborhood(self, taxonomy):
        assert taxonomy.parents_of_neighborhood("El Raval") == [("Barcelona", "Ciutat Vella")]
        assert taxonomy.parents_of_neighborhood("Nowhere") == []


class TestExpand:
    def test_city_expands_to_every_neighborhood(self, taxonomy):
        expanded = taxonomy.expand("Barcelona")
        assert "El Raval" in expanded
        assert "Vila de Gràcia" in expanded
        assert len(expanded) == len(set(expanded))

    def test_district_expands_to_its_neighborhoods(self, taxonomy):
        assert taxonomy.expand("Barcelona", "Gràcia") == taxonomy.neighborhoods_of("Gràcia", "Barcelona")

    def test_neighborhood_expands_to_itself(self, taxonomy):
        assert taxonomy.expand("Barcelona", "Gràcia", "Vila de Gràcia") == ["Vila de Gràcia"]
        assert taxonomy.expand("Barcelona", None, "Barrio inventado") == ["Barrio inventado"]


class TestNodes:
    def test_parents_come_before_children(self, taxonomy):
        nodes = list(taxonomy.nodes())
        assert nodes[0] == GeoNode("Barcelona")
        assert nodes[1] == GeoNode("Barcelona", "Ciutat Vella")
        assert nodes[2].level == "neighborhood"

    def test_neighborhood_node_requires_district(self):
        with pytest.raises(ValueError):
            GeoNode("Barcelona", None, "El Raval")

    def test_custom_catalog(self):
        taxonomy = GeoTaxonomy([("Girona", [("Centre", ["Barri Vell"])])])
        assert taxonomy.cities_available() == ["Girona"]
        assert taxonomy.district_of("Barri Vell", "Girona") == "Centre"
