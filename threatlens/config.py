"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application Settings
    app_env: str = "development"
    debug: bool = True
    app_name: str = "ThreatLens"
    log_level: str = "INFO"

    # Storage
    database_path: str = "data/threatlens.db"
    upload_dir: str = "data/uploads"
    max_upload_bytes: int = 10 * 1024 * 1024
    allowed_extensions: List[str] = [".txt", ".log", ".csv", ".jsonl"]

    # LLM Configuration (environment-level fallback credentials)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 4096
    llm_timeout_seconds: float = 60.0
    llm_chunk_max_chars: int = 12000
    llm_chunk_overlap_lines: int = 5

    # Detection Thresholds
    brute_force_threshold: int = 10
    password_spray_threshold: int = 5
    directory_enum_threshold: int = 20
    rate_volume_medium: int = 100
    rate_volume_high: int = 500
    rate_volume_critical: int = 1000
    error_ratio_threshold: float = 0.8
    error_ratio_min_requests: int = 10
    burst_threshold: int = 20
    burst_window_seconds: int = 5

    # Recovery
    recovery_interval_seconds: float = 300.0
    stall_threshold_seconds: float = 900.0

    # Admission
    analyze_rate_limit_window_ms: int = 60_000
    analyze_rate_limit_max: int = 10

    # Background analysis
    analysis_workers: int = 2


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
