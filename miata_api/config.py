"""
API configuration and settings management.
"""
import os


class Config:
    """Application configuration."""

    # API settings
    API_TITLE: str = "Miata Marketplace API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Scrape runs, live progress and session listings for Marketplace Miatas"

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    # Progress stream
    SSE_KEEPALIVE_SECONDS: float = float(os.getenv("SSE_KEEPALIVE_SECONDS", "15"))

    # Listing store dedup: "id" or "url"
    STORE_DEDUP: str = os.getenv("STORE_DEDUP", "id")

    # Listings fetched by a scrape-more request
    SCRAPE_MORE_LIMIT: int = 10

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("API_LOG_FILE", "")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration on startup."""
        if cls.STORE_DEDUP not in ("id", "url"):
            raise ValueError(f"STORE_DEDUP must be 'id' or 'url', got {cls.STORE_DEDUP!r}")


# Global config instance
config = Config()
