"""
Geographic Taxonomy

Static city -> district -> neighborhood catalog used by location search.

- Loaded once at startup, read-only afterwards
- Reverse index neighborhood -> district built at construction
- Unknown names return empty lists / None, never raise
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


ALL_NEIGHBORHOODS_LABEL = "Todos los barrios"


# Catalog format: (city, [(district, [neighborhood, ...]), ...])
CityCatalog = Tuple[str, List[Tuple[str, List[str]]]]

BARCELONA: CityCatalog = ("Barcelona", [
    ("Ciutat Vella", ["El Raval", "El Gòtic", "La Barceloneta", "Sant Pere, Santa Caterina i la Ribera"]),
    ("Eixample", ["El Fort Pienc", "La Sagrada Família", "La Dreta de l'Eixample", "L'Antiga Esquerra de l'Eixample",
                  "La Nova Esquerra de l'Eixample", "Sant Antoni"]),
    ("Sants-Montjuïc", ["El Poble-sec", "La Marina del Prat Vermell", "La Marina de Port", "La Font de la Guatlla",
                        "Hostafrancs", "La Bordeta", "Sants-Badal", "Sants"]),
    ("Les Corts", ["Les Corts", "La Maternitat i Sant Ramon", "Pedralbes"]),
    ("Sarrià-Sant Gervasi", ["Vallvidrera, el Tibidabo i les Planes", "Sarrià", "Les Tres Torres",
                             "Sant Gervasi - la Bonanova", "Sant Gervasi - Galvany", "El Putxet i el Farró"]),
    ("Gràcia", ["Vallcarca i els Penitents", "El Coll", "La Salut", "Vila de Gràcia", "Camp d'en Grassot i Gràcia Nova"]),
    ("Horta-Guinardó", ["El Baix Guinardó", "Can Baró", "El Guinardó", "La Font d'en Fargues", "El Carmel",
                        "La Teixonera", "Sant Genís dels Agudells", "Montbau", "La Vall d'Hebron", "La Clota", "Horta"]),
    ("Nou Barris", ["Vilapicina i la Torre Llobeta", "Porta", "El Turó de la Peira", "Can Peguera", "La Guineueta",
                    "Canyelles", "Les Roquetes", "Verdun", "La Prosperitat", "La Trinitat Nova", "Torre Baró",
                    "Ciutat Meridiana", "Vallbona"]),
    ("Sant Andreu", ["La Trinitat Vella", "Baró de Viver", "El Bon Pastor", "Sant Andreu del Palomar", "La Sagrera",
                     "El Congrés i els Indians", "Navas"]),
    ("Sant Martí", ["El Clot", "El Camp de l'Arpa del Clot", "La Verneda i la Pau", "Sant Martí de Provençals",
                    "El Besòs i el Maresme", "Provençals del Poblenou", "Diagonal Mar i el Front Marítim del Poblenou",
                    "El Poblenou", "El Parc i la Llacuna del Poblenou", "La Vila Olímpica del Poblenou"]),
])

MADRID: CityCatalog = ("Madrid", [
    ("Centro", ["Palacio", "Embajadores", "Cortes", "Justicia", "Universidad", "Sol"]),
    ("Arganzuela", ["Imperial", "Acacias", "Chopera", "Legazpi", "Delicias", "Palos de la Frontera", "Atocha"]),
    ("Retiro", ["Pacífico", "Adelfas", "Estrella", "Ibiza", "Jerónimos", "Niño Jesús"]),
    ("Salamanca", ["Recoletos", "Goya", "Fuente del Berro", "Guindalera", "Lista", "Castellana"]),
    ("Chamartín", ["El Viso", "Prosperidad", "Ciudad Jardín", "Hispanoamérica", "Nueva España", "Castilla"]),
    ("Tetuán", ["Bellas Vistas", "Cuatro Caminos", "Castillejos", "Almenara", "Valdeacederas", "Berruguete"]),
    ("Chamberí", ["Gaztambide", "Arapiles", "Trafalgar", "Almagro", "Ríos Rosas", "Vallehermoso"]),
    ("Fuencarral-El Pardo", ["El Pardo", "Fuentelarreina", "Peñagrande", "Pilar", "La Paz", "Valverde", "Mirasierra",
                             "El Goloso"]),
    ("Moncloa-Aravaca", ["Casa de Campo", "Argüelles", "Ciudad Universitaria", "Valdezarza", "Valdemarín",
                         "El Plantío", "Aravaca"]),
    ("Latina", ["Los Cármenes", "Puerta del Ángel", "Lucero", "Aluche", "Campamento", "Cuatro Vientos",
                "Las Águilas"]),
    ("Carabanchel", ["Comillas", "Opañel", "San Isidro", "Puerta Bonita", "Buenavista", "Abrantes"]),
    ("Usera", ["Orcasitas", "Orcasur", "San Fermín", "Almendrales", "Moscardó", "Zofío", "Pradolongo"]),
    ("Puente de Vallecas", ["Entrevías", "San Diego", "Palomeras Bajas", "Palomeras Sureste", "Portazgo",
                            "Numancia"]),
    ("Moratalaz", ["Pavones", "Horcajo", "Marroquina", "Media Legua", "Fontarrón", "Vinateros"]),
    ("Ciudad Lineal", ["Ventas", "Pueblo Nuevo", "Quintana", "Concepción", "San Pascual", "San Juan Bautista",
                       "Colina", "Atalaya", "Costillares"]),
    ("Hortaleza", ["Palomas", "Piovera", "Canillas", "Pinar del Rey", "Apóstol Santiago", "Valdefuentes"]),
    ("Villaverde", ["Villaverde Alto", "San Cristóbal", "Butarque", "Los Rosales", "Los Ángeles"]),
    ("Villa de Vallecas", ["Casco histórico de Vallecas", "Santa Eugenia", "Ensanche de Vallecas"]),
    ("Vicálvaro", ["Casco histórico de Vicálvaro", "Valdebernardo", "Valderrivas", "El Cañaveral"]),
    ("San Blas-Canillejas", ["Simancas", "Hellín", "Amposta", "Arcos", "Rosas", "Rejas", "Canillejas", "Salvador"]),
    ("Barajas", ["Alameda de Osuna", "Aeropuerto", "Casco histórico de Barajas", "Timón", "Corralejos"]),
])

DEFAULT_CATALOG: List[CityCatalog] = [BARCELONA, MADRID]


@dataclass(frozen=True)
class GeoNode:
    """Immutable taxonomy entry. The most specific non-null field is the leaf."""
    city: str
    district: Optional[str] = None
    neighborhood: Optional[str] = None

    def __post_init__(self):
        if self.neighborhood is not None and self.district is None:
            raise ValueError("A neighborhood node requires a district")

    @property
    def level(self) -> str:
        if self.neighborhood is not None:
            return "neighborhood"
        if self.district is not None:
            return "district"
        return "city"


class GeoTaxonomy:
    """Read-only hierarchical catalog with O(1) lookups in both directions."""

    def __init__(self, catalog: Sequence[CityCatalog] = DEFAULT_CATALOG):
        self._cities: Dict[str, Dict[str, List[str]]] = {}
        self._city_by_lower: Dict[str, str] = {}
        # (city, neighborhood) -> district
        self._district_by_neighborhood: Dict[Tuple[str, str], str] = {}
        # district -> [city, ...]
        self._cities_by_district: Dict[str, List[str]] = {}
        # neighborhood -> [(city, district), ...]
        self._parents_by_neighborhood: Dict[str, List[Tuple[str, str]]] = {}

        for city, districts in catalog:
            city_districts: Dict[str, List[str]] = {}
            for district, neighborhoods in districts:
                city_districts[district] = list(neighborhoods)
                self._cities_by_district.setdefault(district, []).append(city)
                for neighborhood in neighborhoods:
                    self._district_by_neighborhood.setdefault((city, neighborhood), district)
                    self._parents_by_neighborhood.setdefault(neighborhood, []).append((city, district))
            self._cities[city] = city_districts
            self._city_by_lower[city.lower()] = city

        logger.info(
            f"GeoTaxonomy loaded: {len(self._cities)} cities, "
            f"{len(self._cities_by_district)} districts, {len(self._district_by_neighborhood)} neighborhoods"
        )

    # ------------------------------------------------------------------
    # Forward lookups
    # ------------------------------------------------------------------

    def cities_available(self) -> List[str]:
        return list(self._cities)

    def districts_of(self, city: str) -> List[str]:
        return list(self._cities.get(city, {}))

    def neighborhoods_of(self, district: str, city: str) -> List[str]:
        return list(self._cities.get(city, {}).get(district, []))

    def all_neighborhoods_of(self, city: str) -> List[str]:
        return [n for neighborhoods in self._cities.get(city, {}).values() for n in neighborhoods]

    # ------------------------------------------------------------------
    # Reverse lookups
    # ------------------------------------------------------------------

    def district_of(self, neighborhood: str, city: str) -> Optional[str]:
        """District a neighborhood belongs to, or None when unknown."""
        return self._district_by_neighborhood.get((city, neighborhood))

    def canonical_city(self, name: str) -> Optional[str]:
        """Case-insensitive city match returning the catalog spelling."""
        if not name:
            return None
        return self._city_by_lower.get(name.strip().lower())

    def is_city(self, name: str) -> bool:
        return name in self._cities

    def is_district(self, name: str, city: str) -> bool:
        return name in self._cities.get(city, {})

    def is_neighborhood(self, name: str, city: str) -> bool:
        return (city, name) in self._district_by_neighborhood

    def cities_of_district(self, district: str) -> List[str]:
        return list(self._cities_by_district.get(district, []))

    def parents_of_neighborhood(self, neighborhood: str) -> List[Tuple[str, str]]:
        """Every (city, district) pair that lists this neighborhood."""
        return list(self._parents_by_neighborhood.get(neighborhood, []))

    def is_valid_triple(self, city: str, district: str, neighborhood: str) -> bool:
        return self._district_by_neighborhood.get((city, neighborhood)) == district

    # ------------------------------------------------------------------
    # Hierarchy expansion
    # ------------------------------------------------------------------

    def expand(
        self,
        city: str,
        district: Optional[str] = None,
        neighborhood: Optional[str] = None,
    ) -> List[str]:
        """
        Neighborhoods covered by a location selection.

        City -> every neighborhood, district -> its neighborhoods,
        neighborhood -> itself (also when it is free text unknown to the catalog).
        """
        if neighborhood:
            return [neighborhood]
        if district:
            return self.neighborhoods_of(district, city)
        return self.all_neighborhoods_of(city)

    def nodes(self) -> Iterator[GeoNode]:
        """Every node in catalog order, parents before children."""
        for city, districts in self._cities.items():
            yield GeoNode(city=city)
            for district, neighborhoods in districts.items():
                yield GeoNode(city=city, district=district)
                for neighborhood in neighborhoods:
                    yield GeoNode(city=city, district=district, neighborhood=neighborhood)


# Singleton instance
_taxonomy: Optional[GeoTaxonomy] = None


def get_taxonomy() -> GeoTaxonomy:
    """Get the process-wide taxonomy, created on first use."""
    global _taxonomy
    if _taxonomy is None:
        _taxonomy = GeoTaxonomy()
    return _taxonomy
