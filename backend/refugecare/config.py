"""
RefugeCare Triage - Settings

Every tunable comes from the environment (or a local .env file) through
pydantic-settings. Field names map to upper-case variables, e.g.
ORACLE_BACKEND=http or NEAREST_FACILITY_LIMIT=3.
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deployment settings; environment variables override .env, which overrides defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Runtime ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json_format: bool = False

    # --- HTTP ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000
    allowed_origins: str = "http://localhost:3000"

    # --- Facility Matching ---
    nearest_facility_limit: int = Field(default=5, ge=1, le=5)  # Size of a ticket's nearest-facility list
    nearby_search_radius_km: float = Field(default=50.0, gt=0)  # Default radius for nearby-facility queries

    # --- Ticket Lifecycle ---
    # False = staff may set any status (a warning is logged for off-path moves)
    # True  = off-path transitions are rejected
    enforce_status_transitions: bool = False

    # --- Advisory Oracle ---
    # "none" = deterministic rule path only (default, no network)
    # "http" = OpenAI-compatible chat completions endpoint
    oracle_backend: str = "none"
    oracle_url: str = ""
    oracle_api_key: str = ""
    oracle_model: str = "gpt-4o-mini"
    oracle_timeout_seconds: float = 5.0

    # --- Data ---
    seed_demo_facilities: bool = False

    # --- Privacy ---
    anonymize_logs: bool = True  # Coarsen coordinates in log payloads

    @property
    def allowed_origins_list(self) -> List[str]:
        """CORS origins, one per comma."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def docs_enabled(self) -> bool:
        """Interactive API docs are served in debug builds outside production."""
        return self.app_debug and not self.is_production


@lru_cache
def get_settings() -> Settings:
    """
    Settings read once per process.

    Routes read the settings the app was created with from app.state;
    this is the default for create_app().
    """
    return Settings()


settings = get_settings()
