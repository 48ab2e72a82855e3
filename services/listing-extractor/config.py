"""Environment-based configuration for the listing extractor service."""

from pydantic_settings import BaseSettings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """Listing extractor settings, loaded from environment variables."""

    # Server
    PORT: int = 8092
    LOG_LEVEL: str = "INFO"

    # Listing page fetch
    FETCH_TIMEOUT_SECONDS: int = 30
    FETCH_CONNECT_TIMEOUT: int = 10
    FETCH_MAX_REDIRECTS: int = 5
    USER_AGENT: str = DEFAULT_USER_AGENT

    # Headless Chrome fetch for bot-protected marketplaces (falls back to HTTP)
    BROWSER_FETCH_ENABLED: bool = False
    BROWSER_HOSTS: list[str] = ["zillow.com", "realtor.com", "homes.com", "utahrealestate.com"]
    BROWSER_PAGE_LOAD_TIMEOUT: int = 30
    BROWSER_SETTLE_SECONDS: float = 2.0

    # Field extraction fan-out
    EXTRACTOR_WORKERS: int = 4
    EXTRACTOR_TIMEOUT_SECONDS: float = 10.0
    MAX_IMAGES: int = 30

    # Tier overrides, e.g. FIELD_TIERS='{"square_feet": "important"}'
    FIELD_TIERS: dict[str, str] = {}

    # Image relay
    IMAGE_TRUSTED_HOSTS: list[str] = ["zillowstatic.com"]
    IMAGE_REFERER: str = "https://www.zillow.com/"
    IMAGE_TIMEOUT_SECONDS: int = 20
    IMAGE_TRY_VARIANTS: bool = True
    IMAGE_CACHE_CONTROL: str = "public, max-age=31536000, immutable"

    model_config = {"env_prefix": "", "case_sensitive": True}


settings = Settings()
