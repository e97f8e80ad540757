"""Configuration settings for the application."""
import logging
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Prompt Library"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str
    database_echo: bool = False

    # Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Anthropic (vendor A)
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"

    # OpenAI (vendor B)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"

    # Prompts (per-user cap; superusers are unlimited)
    prompt_limit: int = 10

    # Optimization
    optimization_max_tokens: int = 4096
    optimization_history_limit: int = 50

    # Pricing table (JSON file); bundled table is used when unset
    pricing_file: Optional[str] = None

    # Analytics
    analytics_log_limit: int = 1000

    # Logging
    log_level: str = "INFO"

    class Config:
        import os as _os
        env_file = ".env.local" if _os.path.exists(".env.local") else ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def validate_provider_settings(current_settings: Settings) -> None:
    """Log which LLM vendors are usable; optimization degrades per leg when one is missing."""
    configured = {
        "anthropic": bool(current_settings.anthropic_api_key),
        "openai": bool(current_settings.openai_api_key),
    }

    for provider, present in configured.items():
        if present:
            logger.info(f"LLM provider {provider}: CONFIGURED")
        else:
            logger.warning(f"LLM provider {provider}: API key missing, calls will fail")

    if current_settings.optimization_max_tokens <= 0:
        raise RuntimeError("optimization_max_tokens must be positive")
