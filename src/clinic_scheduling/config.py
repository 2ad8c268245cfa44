"""
Configuration management for the clinic scheduling engine.

This module provides centralized configuration using Pydantic settings
for type-safe environment variable management.
"""

import sys
from functools import lru_cache
from typing import List, Optional

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Scheduling API Configuration
    scheduling_api_url: str = Field(
        default="http://localhost:8080", alias="SCHEDULING_API_URL"
    )
    scheduling_api_timeout: int = Field(default=10, alias="SCHEDULING_API_TIMEOUT")

    # Application Configuration
    clinic_name: str = Field(default="Clinic Operations Portal", alias="CLINIC_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    seed_sample_data: bool = Field(default=True, alias="SEED_SAMPLE_DATA")

    # Scheduling Rules
    slot_granularity_minutes: Optional[int] = Field(
        default=None, ge=1, alias="SLOT_GRANULARITY_MINUTES"
    )
    working_day_lookahead_days: int = Field(
        default=30, ge=1, alias="WORKING_DAY_LOOKAHEAD_DAYS"
    )

    # Concurrency Settings
    connection_pool_size: int = Field(default=50, alias="CONNECTION_POOL_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once,
    improving performance for repeated access.
    """
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stderr sink at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=(level or get_settings().log_level).upper())


# Booking wizard steps - the step count is fixed for every booking flow
BOOKING_STEP_COUNT = 6

BOOKING_STEP_LABELS: List[dict] = [
    {"id": 1, "name": "Choose specialty", "description": "Pick the specialty to consult"},
    {"id": 2, "name": "Choose date or doctor", "description": "Depends on the booking flow"},
    {"id": 3, "name": "Choose doctor or date", "description": "Depends on the booking flow"},
    {"id": 4, "name": "Choose service", "description": "Pick the service to book"},
    {"id": 5, "name": "Choose time", "description": "Pick a free time slot"},
    {"id": 6, "name": "Confirm", "description": "Review and confirm the appointment"},
]
