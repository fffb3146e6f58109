"""Configuration settings for the GrameenLink backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings

from grameenlink.marketplace.config import MarketplaceConfig


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase (optional: without both values the API runs on in-memory storage)
    supabase_url: str | None = None
    supabase_secret_key: str | None = None

    # App
    debug: bool = False
    log_level: str = "INFO"
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    # Marketplace
    max_list_limit: int = 100
    reject_others_on_final_selection: bool = False

    # Rate limiting: proxies whose X-Forwarded-For is believed (comma-separated CIDRs)
    trusted_proxy_cidrs: str = "10.0.0.0/8,172.16.0.0/12,192.168.0.0/16,127.0.0.0/8,::1/128"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @property
    def uses_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_secret_key)

    def marketplace_config(self) -> MarketplaceConfig:
        """Engine config: ``GRAMEENLINK_*`` variables, overridden by these settings."""
        base = MarketplaceConfig.from_env()
        return MarketplaceConfig(
            poll_interval_seconds=base.poll_interval_seconds,
            settle_delay_seconds=base.settle_delay_seconds,
            request_timeout_seconds=base.request_timeout_seconds,
            max_list_limit=self.max_list_limit,
            reject_others_on_final_selection=self.reject_others_on_final_selection,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
