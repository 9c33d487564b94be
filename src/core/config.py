"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="print-relay", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Request limits
    max_request_body_size: int = Field(default=10 * 1024 * 1024, description="Max request body size in bytes")

    # PrintNode
    printnode_api_key: str = Field(default="", description="PrintNode API key")
    printnode_base_url: str = Field(default="https://api.printnode.com", description="PrintNode API base URL")
    printnode_printer_id: int = Field(default=74652384, description="Target PrintNode printer ID")
    printnode_webhook_secret: str = Field(default="", description="Shared secret for PrintNode event webhooks")
    printnode_timeout_seconds: float = Field(default=15.0, description="HTTP timeout for a print submission")
    printnode_max_retries: int = Field(default=3, ge=1, description="Attempts per submission on connection errors")
    print_source: str = Field(default="Shopify Print Client", description="Source label sent with each print job")

    # Inbound order webhooks
    order_webhook_secret: str = Field(
        default="",
        description="Shopify webhook signing secret. HMAC verification is skipped when empty.",
    )
    cron_secret: str = Field(default="", description="Bearer token for the pending-job sweep endpoint")

    # Job storage
    job_store: Literal["supabase", "memory"] = Field(default="supabase", description="Job repository backend")
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_secret_key: str = Field(default="", description="Supabase secret key for backend operations")

    # Dispatch
    print_concurrency: int = Field(default=3, ge=1, description="Maximum print submissions in flight")
    print_pacing_seconds: float = Field(
        default=0.5, ge=0, description="Delay between units of the same line item"
    )
    jobs_list_limit: int = Field(default=100, ge=1, description="Maximum rows returned by the jobs listing")
    stale_pending_seconds: int = Field(
        default=300, ge=0, description="Age after which a pending attempt is considered abandoned"
    )

    # Labels
    label_font_dir: str = Field(default="fonts", description="Directory holding the Roboto label fonts")
    label_width_pt: float = Field(default=164.57, description="Label width in points")
    label_height_pt: float = Field(default=53.86, description="Label height in points")

    @model_validator(mode="after")
    def check_job_store(self) -> "Settings":
        """Require Supabase credentials when the Supabase job store is selected."""
        if self.job_store == "supabase" and not (self.supabase_url and self.supabase_secret_key):
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY are required when JOB_STORE=supabase")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def printnode_configured(self) -> bool:
        """Check if print submissions can be made."""
        return bool(self.printnode_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
