from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API Configuration
    debug: bool = False
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"

    # AI provider selection: "openai" or "gemini"
    ai_provider: str = "openai"

    # OpenAI Configuration (secrets come from environment)
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    # Gemini Configuration (optional)
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"

    # Shared generation knobs
    ai_timeout_seconds: float = 30.0
    ai_max_tokens: int = 2000
    ai_temperature: float = 0.6
    # Routine chat turns are answered from templates unless this is enabled
    chat_ai_replies: bool = False

    # Database Configuration
    database_url: str = "sqlite:///./data/testforge.db"

    # Analysis read cache
    analysis_cache_ttl_seconds: float = 30.0
    analysis_cache_max_items: int = 512

    # Test case synthesis bounds
    test_case_min_count: int = 10
    test_case_max_count: int = 18

    # Logging
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Build the process-wide settings once; callers pass the result along."""
    return Settings()
