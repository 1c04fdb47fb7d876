from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Application
    app_name: str = "LinkLab"
    app_version: str = "1.0.0"

    # Database
    database_url: str = "sqlite:///./linklab.db"

    # Public origin of short links (creation time only)
    base_url: str = "http://127.0.0.1:8000"

    # Dashboard app that hosts the status pages
    frontend_url: str = "http://127.0.0.1:3000"
    not_found_path: str = "/404"
    expired_path: str = "/expired"
    limit_reached_path: str = "/limit-reached"
    error_path: str = "/error"

    # Short code generation
    short_code_length: int = 9  # 62^9 codes, birthday bound stays low past 10M links
    max_retries: int = 5
    custom_alias_max_length: int = 64

    # Cache settings
    cache_backend: str = "redis"  # Options: "redis", "memory", "null"
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl: int = 3600  # Cache TTL in seconds (1 hour)

    # Geo-IP enrichment
    geo_backend: str = "ipapi"  # Options: "ipapi", "null"
    geo_lookup_url: str = "https://ipapi.co/{ip}/json/"
    geo_lookup_timeout: float = 3.0

    # Page metadata scraping (title, description, favicon)
    fetch_page_metadata: bool = True
    metadata_fetch_timeout: float = 5.0
    metadata_user_agent: str = "LinkLab URL Shortener Bot"

    # Anonymous links are written through to the durable store unless disabled
    demo_durable_writes: bool = True

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
