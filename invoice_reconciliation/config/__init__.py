"""
Configuration management for the reconciliation engine.

Provides environment driven application configuration, per-tenant
reconciliation settings with insert-or-fetch creation, and validation of
settings updates.
"""

from .app_config import ReconciliationConfig
from .validation import SettingsValidator, ValidationResult
from .settings_provider import SettingsProvider, default_matching_settings

__all__ = [
    "ReconciliationConfig",
    "SettingsValidator",
    "ValidationResult",
    "SettingsProvider",
    "default_matching_settings"
]
