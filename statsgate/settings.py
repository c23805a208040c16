import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # PUBG API Configuration
    pubg_api_key: str = Field(default="", alias="PUBG_API_KEY")
    pubg_api_base_url: str = Field(
        default="https://api.pubg.com", alias="PUBG_API_BASE_URL"
    )
    pubg_offline_mode: bool = Field(default=False, alias="PUBG_OFFLINE_MODE")
    pubg_request_timeout: float = Field(default=10.0, alias="PUBG_REQUEST_TIMEOUT")
    pubg_min_request_interval: float = Field(
        default=1.0, alias="PUBG_MIN_REQUEST_INTERVAL"
    )

    # Circuit Breaker
    breaker_failure_threshold: int = Field(default=5, alias="BREAKER_FAILURE_THRESHOLD")
    breaker_open_timeout: float = Field(default=60.0, alias="BREAKER_OPEN_TIMEOUT")
    breaker_half_open_max_probes: int = Field(
        default=3, alias="BREAKER_HALF_OPEN_MAX_PROBES"
    )

    # Retry
    retry_max_retries: int = Field(default=3, alias="RETRY_MAX_RETRIES")
    retry_base_delay: float = Field(default=1.0, alias="RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=30.0, alias="RETRY_MAX_DELAY")
    retry_jitter_factor: float = Field(default=0.1, alias="RETRY_JITTER_FACTOR")

    # Cache Configuration
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    cache_key_prefix: str = Field(default="statsgate:", alias="CACHE_KEY_PREFIX")
    cache_max_size: int = Field(default=5000, alias="CACHE_MAX_SIZE")
    cache_stale_ttl_multiplier: int = Field(
        default=24, alias="CACHE_STALE_TTL_MULTIPLIER"
    )

    # Inbound Rate Limiting
    rate_limit_window_seconds: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW")
    rate_limit_max_requests: int = Field(default=100, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_block_multiplier: float = Field(
        default=1.5, alias="RATE_LIMIT_BLOCK_MULTIPLIER"
    )
    rate_limit_block_duration_seconds: float = Field(
        default=300.0, alias="RATE_LIMIT_BLOCK_DURATION"
    )
    rate_limit_whitelist: str = Field(default="", alias="RATE_LIMIT_WHITELIST")

    # HTTP surface
    http_host: str = Field(default="127.0.0.1", alias="HTTP_HOST")
    http_port: int = Field(default=8000, alias="HTTP_PORT")

    # Health Monitoring
    health_check_interval_seconds: int = Field(
        default=60, alias="HEALTH_CHECK_INTERVAL"
    )
    health_probe_timeout: float = Field(default=5.0, alias="HEALTH_PROBE_TIMEOUT")

    @property
    def offline(self) -> bool:
        """Upstream calls are disabled only when PUBG_OFFLINE_MODE is set."""
        return self.pubg_offline_mode

    @property
    def whitelisted_identifiers(self) -> set[str]:
        return {
            item.strip() for item in self.rate_limit_whitelist.split(",") if item.strip()
        }


def load_settings() -> Settings:
    """Build settings from the process environment (after .env is loaded)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
