"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with SUPA_ARTISTRY_ prefix.
No config files — just env vars (12-factor app style).

Learn: pydantic-settings auto-loads from environment, validates types,
provides defaults. The Supabase URL and anon key are public client values
(the same ones a browser bundle ships), not secrets.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via SUPA_ARTISTRY_* env vars."""

    # Supabase (hosted auth)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_jwt_secret: str = ""  # optional; enables signature checks

    # Durable storage (the client's localStorage)
    storage_path: str = "~/.supa_artistry/storage.json"
    guest_storage_key: str = "guestSessionId"
    auth_storage_key: str = "supa-artistry-auth-token"

    # Where confirmation emails send the user back to
    site_url: str = "http://localhost:8080/"

    # HTTP
    http_timeout_seconds: float = 10.0

    # Token refresh
    refresh_margin_seconds: int = 60
    refresh_poll_interval: float = 30.0

    # GenAI demos (all simulated)
    google_api_key: str = ""
    text_delay_seconds: float = 2.0
    image_delay_seconds: float = 3.0
    multimodal_delay_seconds: float = 3.0
    video_delay_seconds: float = 5.0

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"

    model_config = {"env_prefix": "SUPA_ARTISTRY_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure the auth service is configured outside development."""
        if self.environment != "development" and not (
            self.supabase_url and self.supabase_anon_key
        ):
            raise ValueError(
                "SUPA_ARTISTRY_SUPABASE_URL and SUPA_ARTISTRY_SUPABASE_ANON_KEY "
                "must be set in non-development environments."
            )
        return self


# Singleton — import this everywhere
settings = Settings()
