import os
from dataclasses import dataclass

# Fixed by the record format, not configurable.
MIN_VALIDITY_MINUTES = 1
MAX_VALIDITY_MINUTES = 10080  # 1 week
SHORT_CODE_PATTERN = r"^[A-Za-z0-9]{3,10}$"


@dataclass(frozen=True)
class Settings:
    storage_url: str = os.getenv("STORAGE_URL", "sqlite:///./shortener.db")
    storage_key: str = os.getenv("STORAGE_KEY", "shortened-urls")
    base_url: str = os.getenv("BASE_URL", "http://localhost:8000")
    code_length: int = int(os.getenv("CODE_LENGTH", "6"))
    default_validity_minutes: int = int(os.getenv("DEFAULT_VALIDITY_MINUTES", "30"))
    max_urls: int = int(os.getenv("MAX_URLS", "5"))
    max_code_attempts: int = int(os.getenv("MAX_CODE_ATTEMPTS", "1000"))
    ip_geolocation_url: str = os.getenv("IP_GEOLOCATION_URL", "https://ipapi.co/json/")
    ip_geolocation_client_url: str = os.getenv("IP_GEOLOCATION_CLIENT_URL", "https://ipapi.co/{ip}/json/")
    reverse_geocode_url: str = os.getenv("REVERSE_GEOCODE_URL", "https://nominatim.openstreetmap.org/reverse")
    geolocation_timeout_seconds: float = float(os.getenv("GEOLOCATION_TIMEOUT_SECONDS", "5"))
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    telemetry_url: str = os.getenv("TELEMETRY_URL", "")

settings = Settings()
