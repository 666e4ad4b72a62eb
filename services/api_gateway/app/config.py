"""API Gateway configuration via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.resilience import CommandConfig


class CommandSettings(BaseModel):
    """Resilience settings for one protected operation (milliseconds)."""

    core_size: int = Field(default=30, ge=1)
    max_queue_size: int = Field(default=10, ge=0)
    timeout_ms: int = Field(default=1000, ge=1)
    request_volume_threshold: int = Field(default=10, ge=1)
    error_threshold_percentage: int = Field(default=75, ge=0, le=100)
    sleep_window_ms: int = Field(default=7000, ge=0)
    rolling_window_ms: int = Field(default=15000, ge=1)
    rolling_window_buckets: int = Field(default=10, ge=1)
    thread_pool_key: str | None = None

    def to_config(self) -> CommandConfig:
        return CommandConfig(**self.model_dump())


class Settings(BaseSettings):
    """API Gateway configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GATEWAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars not defined in this model
    )

    # Service settings
    service_name: str = "api-gateway"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True
    host: str = "0.0.0.0"
    port: int = 5555

    # Service registry
    registry_type: Literal["static", "eureka"] = "static"
    static_instances: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "organizationservice": ["http://localhost:11000"],
            "licensingservice": ["http://localhost:10000"],
        },
        description="Logical service name -> instance addresses",
    )
    eureka_url: str = "http://localhost:8761/eureka"
    registry_refresh_seconds: float = 30.0
    registry_timeout_seconds: float = 5.0
    registry_failure_backoff_seconds: float = 5.0
    registry_max_cached_services: int = Field(default=1024, ge=1)

    # Routing
    routes: dict[str, str] = Field(
        default_factory=lambda: {
            "/api/organization": "organizationservice",
            "/api/licensing": "licensingservice",
        },
        description="Path prefix -> logical service name",
    )
    discovery_routes: bool = True
    strip_prefix: bool = True

    # Downstream HTTP
    downstream_connect_timeout: float = 2.0
    downstream_read_timeout: float = 30.0
    max_connections: int = 100
    max_keepalive_connections: int = 20
    client_errors_trip_breaker: bool = True

    # Resilience
    default_command: CommandSettings = Field(default_factory=CommandSettings)
    commands: dict[str, CommandSettings] = Field(
        default_factory=dict,
        description="Per command key overrides of default_command",
    )

    # Authentication collaborator
    auth_enabled: bool = False
    auth_service_url: str = "http://localhost:8901/auth/user"
    auth_timeout_seconds: float = 2.0

    def command_overrides(self) -> dict[str, CommandConfig]:
        return {key: value.to_config() for key, value in self.commands.items()}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
