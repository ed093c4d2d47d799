from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_REPOSITORY_URL = "https://raw.githubusercontent.com/severo/data_brazil/master"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "pesticide-water-map"
    app_env: str = "local"
    log_level: str = "INFO"
    api_version_prefix: str = "/v1"
    cors_allow_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
    load_on_startup: bool = True

    request_timeout_seconds: int = 30
    http_max_retries: int = 0
    http_backoff_seconds: float = 1.5
    fetch_max_workers: int = 4

    # integrity digests computed with:
    # cat substances.csv | openssl dgst -sha384 -binary | openssl base64 -A
    substances_url: str = f"{DATA_REPOSITORY_URL}/substances.csv"
    substances_integrity: str = (
        "sha384-rynsKDDG/zobjB0as7G93mhvMWkQGM9PNn9HJshc5pDZ6d70ZOvFqpInuvKlwoES"
    )
    tests_url: str = f"{DATA_REPOSITORY_URL}/tests_data.json"
    tests_integrity: str = (
        "sha384-A0apYNqz52d3JYGAxIZ0NAZL62PfXiD0EvxqA79yyqteRm526Thk7HSx4RkbTHmS"
    )
    # Not published in the data repository; point it at a local path or URL.
    topojson_url: str | None = None
    topojson_integrity: str = (
        "sha384-T57m5+BaBiLe7uyAZrKOU/BqCXtK9t0ZIj+YXAUES8EOxrngeVCKflSzZXnB9kVd"
    )
    values_url: str = f"{DATA_REPOSITORY_URL}/data_by_municipality_for_maps.csv"
    values_integrity: str = (
        "sha384-1mMiVJ4KDmhyjlz86hL3dd+AYo/ShdE/2L8iW5nCdsUHlgsMt9ZS/PTVg12LyTZM"
    )

    @property
    def cors_allow_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
