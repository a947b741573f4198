"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class SaccoConfig(BaseSettings):
    """SACCO ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="SACCO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # memory, json or sqlite
    sqlite_path: str = "sacco.db"
    json_path: str = "sacco-data.json"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    currency_label: str = "UGX"
    member_number_prefix: str = "VFA"
    loan_term_options: List[int] = [6, 12, 18, 24, 36]
    enforce_term_options: bool = False  # UI-only restriction by default
    default_after_days: int = 90  # Days past due before a loan is defaulted

    # Overdue sweep
    sweep_enabled: bool = False
    sweep_interval_seconds: int = 3600

    # Demo data
    seed_demo_data: bool = False


# Global configuration instance
config = SaccoConfig()


def get_config() -> SaccoConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> SaccoConfig:
    """Reload configuration from environment"""
    global config
    config = SaccoConfig()
    return config
