import logging
import httpx
from typing import Optional, Dict
from app.core.config import settings, Settings

logger = logging.getLogger(__name__)

Coordinates = Dict[str, float]


class GeocodeCache:
    """Address -> coordinates memo. Misses are cached too."""

    def __init__(self):
        self._entries: Dict[str, Optional[Coordinates]] = {}

    @staticmethod
    def _key(address: str) -> str:
        return " ".join(address.lower().split())

    def get(self, address: str) -> Optional[Coordinates]:
        return self._entries.get(self._key(address))

    def __contains__(self, address: str) -> bool:
        return self._key(address) in self._entries

    def set(self, address: str, coordinates: Optional[Coordinates]) -> None:
        self._entries[self._key(address)] = coordinates

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class GeocodingService:
    GOOGLE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(
        self,
        config: Settings = settings,
        cache: Optional[GeocodeCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = config.GOOGLE_MAPS_KEY
        self.nominatim_url = config.NOMINATIM_URL
        self.user_agent = config.GEOCODING_USER_AGENT
        self.cache = cache if cache is not None else GeocodeCache()
        # Tests swap in httpx.MockTransport
        self.transport = transport

    @property
    def provider(self) -> str:
        return "google" if self.api_key else "nominatim"

    async def geocode(self, address: str) -> Optional[Coordinates]:
        """Coordinates for an address as {"lat", "lng"}, or None."""
        if not address or len(address.strip()) < 3:
            return None

        if address in self.cache:
            return self.cache.get(address)

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                if self.api_key:
                    coordinates = await self._geocode_google(client, address)
                else:
                    coordinates = await self._geocode_nominatim(client, address)
        except Exception as e:
            # Transient failures are not cached
            logger.error(f"Error geocoding address via {self.provider}: {e}")
            return None

        self.cache.set(address, coordinates)
        return coordinates

    async def _geocode_google(self, client: httpx.AsyncClient, address: str) -> Optional[Coordinates]:
        response = await client.get(
            self.GOOGLE_URL,
            params={"address": address, "key": self.api_key, "region": "es"},
        )
        response.raise_for_status()
        data = response.json()

        if data.get("status") != "OK":
            logger.warning(f"Geocoding error: {data.get('status')}")
            return None

        results = data.get("results", [])
        if not results:
            return None

        location = results[0].get("geometry", {}).get("location", {})
        if "lat" not in location or "lng" not in location:
            return None
        return {"lat": float(location["lat"]), "lng": float(location["lng"])}

    async def _geocode_nominatim(self, client: httpx.AsyncClient, address: str) -> Optional[Coordinates]:
        response = await client.get(
            self.nominatim_url,
            params={"q": address, "format": "json", "limit": 1},
            headers={"User-Agent": self.user_agent},
        )
        response.raise_for_status()
        results = response.json()
        if not results:
            logger.info(f"No geocoding match for '{address}'")
            return None
        first = results[0]
        return {"lat": float(first["lat"]), "lng": float(first["lon"])}


geocoding_service = GeocodingService()
