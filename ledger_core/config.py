"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Ledger core configuration"""

    # Currency configuration
    base_currency: str = "INR"  # All balances are kept in this currency

    # Conversion service configuration
    conversion_url: str = "https://api.frankfurter.app"
    conversion_timeout: float = 10.0  # Seconds before a conversion counts as unavailable

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    storage_path: str = "ledger.db"
    storage_key: str = "ledger_state"  # Single key holding the whole snapshot

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    class Config:
        env_prefix = "LEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
