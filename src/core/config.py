"""Configuration management using Pydantic settings."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field


# Environment variables checked for the MongoDB connection string, first match wins.
CONNECTION_STRING_ENV_VARS = (
    "MARKETPLACE_MONGODB_URI",
    "MONGODB_URI",
    "MONGODB_URL",
    "MONGODB_CONNECTION_STRING",
    "DATABASE_URL",
)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    # API Settings
    API_PREFIX: str = "/api/marketplace"
    PROJECT_NAME: str = "MCP Marketplace"
    VERSION: str = "1.0.0"
    HOST: str = Field(default="127.0.0.1")
    PORT: int = Field(default=23333)

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )

    # Database
    MONGODB_URI: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(*CONNECTION_STRING_ENV_VARS),
    )
    MARKETPLACE_DB: Optional[str] = Field(default=None)
    DEFAULT_DB_NAME: str = Field(default="mcp_marketplace")
    SERVERS_COLLECTION: str = Field(default="servers")
    REVIEWS_COLLECTION: str = Field(default="reviews")
    MONGO_TIMEOUT_MS: int = Field(default=5000)

    # Listing
    # When the public filter matches nothing but documents exist, return everything.
    # Turn off for deployments where isPublic=false must stay private.
    PUBLIC_LISTING_FALLBACK: bool = Field(
        default=True,
        validation_alias=AliasChoices("MARKETPLACE_PUBLIC_FALLBACK", "PUBLIC_LISTING_FALLBACK"),
    )

    # Client
    MARKETPLACE_API_URL: str = Field(default="http://localhost:23333/api/marketplace")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Environment settings
    ENVIRONMENT: str = Field(default="development")


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()


# Don't create a global instance - use get_settings() instead
# This ensures environment variables are loaded correctly
_settings = None

def get_cached_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings
