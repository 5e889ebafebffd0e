"""
Configuration management for RubricGuard.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HighRiskPolicy(str, Enum):
    """Which partially supported decisions are surfaced for review."""

    NOT_SUPPORTED_ONLY = "not_supported_only"  # Ignore partial support entirely
    ALL_PARTIAL = "all_partial"  # Every partially supported decision
    PARTIAL_ABOVE_DEVIATION = "partial_above_deviation"  # Only outlying partial ones


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Without an API key the
    deterministic local judge is used, so nothing here is required.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Judgment Service Configuration
    # ==========================================================================
    llm_api_key: str | None = Field(
        default=None,
        description="API key for the OpenAI-compatible judgment endpoint",
        min_length=10,
    )

    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the judgment API",
    )

    llm_model: str = Field(
        default="gpt-4o-mini",
        description="Model used to judge justifications",
    )

    llm_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Temperature for LLM generation",
    )

    llm_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for rate limits and connection failures",
    )

    judge_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds before an outstanding judgment is treated as failed",
    )

    # ==========================================================================
    # Validation Dispatch Configuration
    # ==========================================================================
    debounce_delay_seconds: float = Field(
        default=0.7,
        ge=0.0,
        le=30.0,
        description="Quiet period after the last edit before a judgment is requested",
    )

    min_explanation_length: int = Field(
        default=10,
        ge=0,
        description="Explanations must be strictly longer than this (trimmed) to be judged",
    )

    # ==========================================================================
    # Consistency & Analytics Configuration
    # ==========================================================================
    consistency_threshold_step: float = Field(
        default=0.03,
        gt=0.0,
        le=1.0,
        description="Per-sample growth of the consistency alert threshold",
    )

    high_risk_policy: HighRiskPolicy = Field(
        default=HighRiskPolicy.PARTIAL_ABOVE_DEVIATION,
        description="Inclusion rule for partially supported decisions",
    )

    partial_deviation_threshold: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Normalised deviation above which a partial decision is high risk",
    )

    variance_flag_threshold: float = Field(
        default=5.0,
        ge=0.0,
        description="Criterion variance above this is flagged",
    )

    stability_flag_threshold: float = Field(
        default=1.5,
        ge=0.0,
        description="Criterion standard deviation above this is flagged",
    )

    drift_moderate_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Average deviation (percent of max points) for moderate drift",
    )

    drift_high_percent: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Average deviation (percent of max points) for high drift",
    )

    weight_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Allowed distance of a rubric's weight sum from 1",
    )

    # ==========================================================================
    # Output Configuration
    # ==========================================================================
    output_directory: Path = Field(
        default=Path("./output"),
        description="Directory for saved sessions and reports",
    )

    @field_validator("llm_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("output_directory")
    @classmethod
    def validate_output_directory(cls, v: Path) -> Path:
        """Ensure output directory exists or can be created."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def has_live_judge(self) -> bool:
        """Whether a live judgment endpoint is configured."""
        return bool(self.llm_api_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
