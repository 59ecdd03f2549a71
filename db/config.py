from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class StreamSource(BaseModel):
    name: str
    url: str


class Settings(BaseSettings):
    # Core Application Settings
    logging_level: str = "INFO"

    # Streaming Provider Toggles
    disabled_providers: list[
        Literal[
            "realdebrid",
            "torbox",
            "premiumize",
            "debridlink",
        ]
    ] = Field(default_factory=list)

    # Database and Cache Settings
    content_store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://redis-service:6379"
    redis_max_connections: int = 100
    redis_retry_attempts: int = 3
    redis_retry_delay: float = 0.1
    merge_lock_timeout: float = 5.0  # seconds to wait for the per-identity lock

    # Torrent Search Sources
    stream_sources: list[StreamSource] = Field(
        default_factory=lambda: [
            StreamSource(name="Torrentio", url="https://torrentio.strem.fun")
        ]
    )
    source_timeout: float = 10.0

    # Debrid Provider Settings
    provider_timeout: int = 15
    poll_interval: float = 2.0
    poll_max_attempts: int = 60
    min_video_file_size: int = 5 * 1024 * 1024  # 5 MB in bytes
    probe_stream_urls: bool = True
    debridlink_cache_check_premiumize_key: str | None = None

    # Stream Response Policy
    cache_validity_hours: int = 12
    short_circuit_threshold: int = 20
    max_streams_to_check: int = 50
    max_streams_in_response: int = 50

    @model_validator(mode="after")
    def validate_stream_limits(self) -> "Settings":
        if self.max_streams_in_response < self.short_circuit_threshold:
            self.short_circuit_threshold = self.max_streams_in_response
        return self

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
