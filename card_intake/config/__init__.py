"""Configuration loading and validation."""

from .models import (
    SystemConfig,
    PathsConfig,
    AvatarConfig,
    ContentConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "PathsConfig",
    "AvatarConfig",
    "ContentConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
