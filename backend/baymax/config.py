"""
Baymax Configuration
====================
All environment variables in one place. Pydantic Settings validates
types at startup so a bad value fails on boot, not mid-session.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

# Value shipped in the sample .env; treated the same as an empty key.
PLACEHOLDER_API_KEY = "your_api_key_here"


class Settings(BaseSettings):
    """Loaded from environment variables or a .env file."""

    # --- Supabase ---
    supabase_url: str = "http://localhost:54321"
    supabase_service_key: str = ""  # service_role key for backend operations

    # --- Gemini API ---
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    # Tried in order; flash first as it is fastest.
    gemini_models: list[str] = ["gemini-1.5-flash", "gemini-1.5-pro"]
    gemini_narrative_model: str = "gemini-1.5-flash"

    # Classification replies are a single word
    classifier_temperature: float = 0.1
    classifier_max_output_tokens: int = 5
    # "strict" accepts only true/false. "substring" reproduces the legacy
    # behaviour where any reply containing "true" counts as typical.
    classifier_response_parsing: Literal["strict", "substring"] = "strict"

    narrative_temperature: float = 0.4
    narrative_max_output_tokens: int = 256
    # Extra attempts after a 429. Zero means go straight to the template.
    narrative_rate_limit_retries: int = 0

    # --- Aggregator webhook ---
    # Shared secret the database webhook sends in X-Webhook-Secret
    webhook_secret: str = ""

    # --- App settings ---
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # --- Feature flags ---
    # Kill switch: if False, never call Gemini and use the threshold table.
    enable_ai_classification: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def gemini_configured(self) -> bool:
        key = self.gemini_api_key.strip()
        return bool(key) and key != PLACEHOLDER_API_KEY


@lru_cache
def get_settings() -> Settings:
    return Settings()
