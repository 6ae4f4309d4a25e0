from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Role vocabulary (None uses the packaged roles.yaml)
    roles_config_path: Optional[str] = None

    # Input limits
    min_text_length: int = 10
    max_text_length: int = 100_000

    # Processing limits
    max_processing_time: float = 30.0  # seconds, whole extraction
    pattern_timeout: float = 15.0  # seconds, pattern-set pass
    max_contacts: int = 500
    max_pattern_contacts: int = 1000
    max_matches_per_pattern: int = 500

    # Strategy decision bands
    high_confidence_threshold: float = 0.8
    medium_confidence_threshold: float = 0.6
    low_confidence_threshold: float = 0.4

    # Output quality
    min_contact_confidence: float = 0.3
    phone_format: str = "e164"  # e164 or display
    preserve_tabs: bool = True

    # AI collaborator
    ai_enabled: bool = True
    anthropic_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("CALLSHEET_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
    )
    ai_base_url: str = "https://api.anthropic.com"
    ai_model: str = "claude-3-5-haiku-latest"
    ai_timeout: float = 30.0  # seconds
    ai_max_retries: int = 2
    ai_max_excerpt_chars: int = 3000
    ai_max_prompt_contacts: int = 20

    # Result cache
    cache_enabled: bool = True
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 256

    model_config = SettingsConfigDict(
        env_prefix="CALLSHEET_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def ai_configured(self) -> bool:
        """Whether an AI collaborator can be built from these settings."""
        return self.ai_enabled and bool(self.anthropic_api_key)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
