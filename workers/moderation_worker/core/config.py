from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    module_id: str = "local-notifier"
    api_key: str = "local-notifier-key"
    poll_interval_seconds: float = 2.0
    max_backoff_seconds: float = 15.0
    outbox_batch_size: int = 50
    rebuild_interval_seconds: float = 900.0
    notification_sink_url: str = "http://localhost:9000/notifications"
    sink_timeout_seconds: float = 10.0
    otel_enabled: bool = True
    otel_service_name: str = "jobboard-moderation-worker"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JBM_WORKER_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
