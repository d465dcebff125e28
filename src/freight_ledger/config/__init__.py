"""Configuration module for the freight ledger engine."""

from freight_ledger.config.logging import configure_logging, get_logger
from freight_ledger.config.settings import LedgerSettings, get_settings

__all__ = ["LedgerSettings", "get_settings", "configure_logging", "get_logger"]
