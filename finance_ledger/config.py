"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LedgerConfig(BaseSettings):
    """Finance ledger engine configuration"""
    
    # Database configuration
    database_url: str = "sqlite:///finance_ledger.db"  # memory://, sqlite:///path or postgresql://...
    database_timeout_seconds: float = 5.0  # Lock wait before a statement fails
    transaction_timeout_seconds: float = 30.0  # Whole unit of work budget
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_workers: int = 1
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration
    ledger_loan_category: str = "Loan EMI"
    ledger_debt_category: str = "Debt Payment"
    ledger_payment_method: str = "bank_transfer"
    
    # Feature flags
    enable_audit_logging: bool = True
    
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
