"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Calculators never read this directly; the wiring layer passes values in explicitly.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LendingConfig(BaseSettings):
    """Lending core configuration"""

    # Storage configuration
    database_url: str = "sqlite:///lending.db"  # or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8095

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    charge_places: int = 0        # interest and initial deduction rounding
    installment_places: int = 2   # per-installment amount rounding
    allow_negative_disbursement: bool = False
    auto_complete_loans: bool = True
    upsert_retry_limit: int = 3

    class Config:
        env_prefix = "LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
