"""
Configuration Management Module

Provides centralized configuration using pydantic-settings. Every setting
has a default, so the application runs with no environment at all.
"""

from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PinbankConfig(BaseSettings):
    """PIN bank configuration"""

    model_config = SettingsConfigDict(env_prefix="PINBANK_", case_sensitive=False)

    # Storage configuration
    data_file: str = "bank_data.dat"
    atomic_writes: bool = False  # Write to a temp file, then rename

    # Capacity configuration
    max_accounts: int = 100
    max_transactions: int = 100  # Per account; extra entries are dropped

    # Business rules configuration
    unique_account_numbers: bool = False  # Re-roll numbers already in the table

    # Logging configuration
    log_level: str = "WARNING"
    log_format: Literal["text", "json"] = "text"
    log_file: Optional[str] = None  # If None, logs to stderr

    @field_validator("max_accounts", "max_transactions")
    @classmethod
    def _positive_capacity(cls, value: int) -> int:
        if value < 1:
            raise ValueError("capacity must be at least 1")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level


# Global configuration instance
config = PinbankConfig()


def get_config() -> PinbankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PinbankConfig:
    """Reload configuration from environment"""
    global config
    config = PinbankConfig()
    return config
