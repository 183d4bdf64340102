"""Config module exports."""

from embedlab.config.loader import EmbedLabSettings, load_config
from embedlab.config.models import (
    CacheConfig,
    DatabaseConfig,
    EmbedLabConfig,
    LimitsConfig,
    LoggingConfig,
    ModelConfig,
)

__all__ = [
    "load_config",
    "EmbedLabConfig",
    "EmbedLabSettings",
    "CacheConfig",
    "DatabaseConfig",
    "LimitsConfig",
    "LoggingConfig",
    "ModelConfig",
]
