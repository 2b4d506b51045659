"""Service configuration."""

import os
from typing import Optional
from pydantic import BaseModel, Field, model_validator


# Upper bound for any per-conversation message array held in memory
MAX_MESSAGES_HARD_LIMIT = 500

CACHE_SWEEP_INTERVAL_MS = 5 * 60 * 1000


class MemoryCacheConfig(BaseModel):
    """Bounds for the conversation memory cache"""
    max_size: int = Field(default=100, gt=0, description="Maximum cached conversations")
    ttl_ms: int = Field(default=30 * 60 * 1000, gt=0, description="Idle time before a sweep drops an entry")
    max_messages_per_context: int = Field(default=50, gt=0)
    summary_threshold: int = Field(default=20, gt=0, description="Messages held before a summary is written")
    sweep_interval_ms: int = Field(default=CACHE_SWEEP_INTERVAL_MS, gt=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_bounds(self) -> "MemoryCacheConfig":
        if self.max_messages_per_context > MAX_MESSAGES_HARD_LIMIT:
            raise ValueError(
                f"max_messages_per_context must be <= {MAX_MESSAGES_HARD_LIMIT}"
            )
        if self.summary_threshold > self.max_messages_per_context:
            raise ValueError("summary_threshold must be <= max_messages_per_context")
        return self


class EnrichmentSettings(BaseModel):
    """Knobs for the context enrichment engine"""
    fetch_timeout_seconds: float = Field(default=5.0, gt=0)
    language: str = "pt-BR"
    ticket_limit: int = Field(default=50, gt=0)
    interaction_limit: int = Field(default=100, gt=0)

    model_config = {"frozen": True}


class Settings(BaseModel):
    """Top level settings"""
    cache: MemoryCacheConfig = Field(default_factory=MemoryCacheConfig)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "support-context"

    @classmethod
    def from_env(cls, prefix: str = "SUPPORT_CONTEXT_") -> "Settings":
        """Build settings from environment variables, falling back to defaults."""

        def env(name: str) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}")

        cache_data = {}
        for field_name in MemoryCacheConfig.model_fields:
            value = env(field_name.upper())
            if value is not None:
                cache_data[field_name] = value

        enrichment_data = {}
        for field_name in EnrichmentSettings.model_fields:
            value = env(field_name.upper())
            if value is not None:
                enrichment_data[field_name] = value

        data = {
            "cache": MemoryCacheConfig(**cache_data),
            "enrichment": EnrichmentSettings(**enrichment_data),
        }
        for key in ("log_level", "log_format", "service_name"):
            value = env(key.upper())
            if value is not None:
                data[key] = value

        return cls(**data)
