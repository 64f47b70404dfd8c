"""Configuration and settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # OpenAI API
    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4.1")
    openai_fast_model: str = Field(default="gpt-4.1-mini")
    generation_timeout_seconds: float = Field(default=180.0)

    # Overload/rate-limit retries around each generation call
    service_max_retries: int = Field(default=2)
    service_retry_backoff_seconds: float = Field(default=3.0)

    # Orchestration budgets
    max_pages: int = Field(default=7)
    max_regeneration_attempts: int = Field(default=2)

    # Completeness thresholds (visible text characters)
    min_visible_text_chars: int = Field(default=100)
    rich_visible_text_chars: int = Field(default=500)

    default_site_name: str = Field(default="My App")

    # Frontend
    frontend_url: str = Field(default="http://localhost:5173")

    # Environment
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    # API Configuration
    api_title: str = "SiteForge Generation API"
    api_version: str = "0.1.0"


# Global settings instance
settings = Settings()
