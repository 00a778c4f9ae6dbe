"""
Scraper configuration and settings management.
"""
import os


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Scraper configuration."""

    # Browser
    HEADLESS: bool = _env_bool("HEADLESS")
    STORAGE_STATE: str = os.getenv("STORAGE_STATE", "storage_state.json")
    DEBUG_DIR: str = os.getenv("DEBUG_DIR", "./debug")
    USER_AGENT: str = os.getenv(
        "USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    )

    # Credentials for the login sequence (only used when not already authenticated)
    FB_EMAIL: str = os.getenv("FB_EMAIL", "")
    FB_PASSWORD: str = os.getenv("FB_PASSWORD", "")

    # Timeouts (milliseconds)
    LOGIN_TIMEOUT_MS: int = int(os.getenv("LOGIN_TIMEOUT_MS", "60000"))
    SEARCH_TIMEOUT_MS: int = int(os.getenv("SEARCH_TIMEOUT_MS", "60000"))
    LISTING_TIMEOUT_MS: int = int(os.getenv("LISTING_TIMEOUT_MS", "60000"))
    SELECTOR_TIMEOUT_MS: int = int(os.getenv("SELECTOR_TIMEOUT_MS", "5000"))
    BODY_TIMEOUT_MS: int = int(os.getenv("BODY_TIMEOUT_MS", "10000"))

    # "fresh" (new id per run) or "url" (id derived from the item URL)
    LISTING_ID_STRATEGY: str = os.getenv("LISTING_ID_STRATEGY", "fresh")

    # Bound on concurrent LLM evaluations
    LLM_MAX_CONCURRENCY: int = int(os.getenv("LLM_MAX_CONCURRENCY", "4"))

    DEBUG_MODE_LIMIT: int = 3


# Global config instance
config = Config()
