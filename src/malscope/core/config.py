# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Application configuration via environment variables and .env files."""

from pathlib import Path
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from malscope.core.constants import (
    BAND_CRITICAL,
    BAND_HIGH,
    BAND_MEDIUM,
    DEFAULT_BENIGN_FAMILIES,
    DEFAULT_FAMILY_PRIORITY,
    PACKED_ENTROPY_THRESHOLD,
)


def _split_csv(v: object) -> list[str]:
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return v if isinstance(v, list) else []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MALSCOPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    # Storage
    db_path: Path = Path("malscope.db")
    auto_migrate: bool = True
    store_backend: str = "sqlite"  # "sqlite" or "memory"

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_workers: int = 1
    api_keys: Annotated[list[str], NoDecode] = []
    cors_origins: Annotated[list[str], NoDecode] = ["*"]
    default_owner: str = ""

    @field_validator("cors_origins", "api_keys", mode="before")
    @classmethod
    def _parse_csv_lists(cls, v: object) -> list[str]:
        return _split_csv(v)

    # Phase deadlines (seconds)
    static_timeout: float = 30.0
    dynamic_timeout: float = 120.0
    classify_timeout: float = 15.0
    run_timeout: float = 0.0  # 0 disables the whole-run deadline
    max_concurrent_runs: int = 8

    # Submission limits
    max_file_size: int = 64 * 1024 * 1024

    # Classification policy
    band_critical: float = BAND_CRITICAL
    band_high: float = BAND_HIGH
    band_medium: float = BAND_MEDIUM
    family_priority: Annotated[list[str], NoDecode] = list(DEFAULT_FAMILY_PRIORITY)
    benign_families: Annotated[list[str], NoDecode] = list(DEFAULT_BENIGN_FAMILIES)
    packed_entropy_threshold: float = PACKED_ENTROPY_THRESHOLD
    policy_file: str = ""

    @field_validator("family_priority", "benign_families", mode="before")
    @classmethod
    def _parse_family_lists(cls, v: object) -> list[str]:
        return _split_csv(v)

    # Reference analyzers
    reports_dir: str = "reports"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"


def get_settings() -> Settings:
    return Settings()
