"""Configuration management for global table setup."""

from .models import (
    GlobalTablesConfig,
    ProviderConfig,
    ServiceConfig,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "GlobalTablesConfig",
    "ProviderConfig",
    "ServiceConfig",
    "Config",
    "ConfigValidationError",
]
