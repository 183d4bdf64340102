"""Core module exports."""

from embedlab.core.errors import (
    BackingStoreError,
    ConfigError,
    ConflictError,
    EmbedLabError,
    ErrorCode,
    ErrorKind,
    InitializationError,
    InternalError,
    OutputShapeError,
    StillInitializing,
    ValidationError,
)
from embedlab.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Errors
    "BackingStoreError",
    "ConfigError",
    "ConflictError",
    "EmbedLabError",
    "ErrorCode",
    "ErrorKind",
    "InitializationError",
    "InternalError",
    "OutputShapeError",
    "StillInitializing",
    "ValidationError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
