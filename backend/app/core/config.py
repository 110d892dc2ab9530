"""Application configuration and settings management."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central application settings loaded from environment variables."""

    app_name: str = Field(default="Tender Evaluation Service")
    api_v1_prefix: str = Field(default="/api")

    database_url: str = Field(
        default_factory=lambda: f"sqlite:///{Path.cwd() / 'tender_evaluation.db'}"
    )
    database_echo: bool = Field(default=False)

    cors_origins: List[str] = Field(default_factory=list)

    # Project directory collaborators (firm registry, fee structure, tender submissions)
    collaborator_base_url: Optional[str] = Field(default=None)
    collaborator_api_key: Optional[str] = Field(default=None)
    collaborator_timeout_seconds: float = Field(default=15.0)
    collaborator_max_attempts: int = Field(default=3)

    default_table_names: List[str] = Field(default_factory=lambda: ["Original", "Adds and Subs"])
    adds_and_subs_placeholder_count: int = Field(default=3)

    model_config = {
        "env_file": ".env",
        "env_prefix": "SA_",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[arg-type]


settings = get_settings()
"""Eagerly instantiated settings for modules that prefer direct import."""
