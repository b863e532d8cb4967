from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./realista.db"

    # Geocoding
    GOOGLE_MAPS_KEY: Optional[str] = None
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search"
    GEOCODING_USER_AGENT: str = "RealistaSearch/1.0"

    # Location search
    DEFAULT_CITY: str = "Barcelona"
    AUTOCOMPLETE_MIN_QUERY_LENGTH: int = 3
    AUTOCOMPLETE_MAX_SUGGESTIONS: int = 10
    AUTOCOMPLETE_DEBOUNCE_SECONDS: float = 0.3

    # Result cache (seconds)
    SEARCH_STALE_TIME_SECONDS: float = 300  # 5 minutes
    SEARCH_GC_TIME_SECONDS: float = 1800  # 30 minutes
    RATINGS_STALE_TIME_SECONDS: float = 1800
    RATINGS_GC_TIME_SECONDS: float = 3600

    # Store fetch retries
    FETCH_MAX_RETRIES: int = 2
    FETCH_RETRY_BASE_DELAY: float = 0.5
    FETCH_RETRY_MAX_DELAY: float = 8.0

    # App
    ENVIRONMENT: str = "development"
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
