from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "eventboard-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    repository_backend: Literal["postgres", "memory"] = "postgres"
    default_page_limit: int = 20
    max_page_limit: int = 100
    pending_page_limit: int = 10
    search_max_length: int = 100
    cursor_max_length: int = 500
    notification_queue_size: int = 1000
    notification_listener_timeout_seconds: float = 5.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "eventboard-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="EB_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
