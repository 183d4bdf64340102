"""EmbedLab error types with typed error codes.

Every failure the serving core can surface belongs to one ``ErrorKind``.
Callers branch on ``kind`` (or ``code``), never on message text.

Error code ranges:
- 1xxx: Validation
- 2xxx: Config
- 3xxx: Model pipeline (initialization / cold start)
- 4xxx: Model output shape
- 5xxx: Backing stores (cache, corpus, migrations)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

# Upper bound for any free-form diagnostic carried in ``details``.
MAX_DIAGNOSTIC_CHARS = 512


class ErrorKind(str, Enum):
    """Closed set of error categories."""

    VALIDATION = "validation"
    CONFIG = "config"
    INITIALIZATION = "initialization"
    STILL_INITIALIZING = "still_initializing"
    OUTPUT_SHAPE = "output_shape"
    BACKING_STORE = "backing_store"
    CONFLICT = "conflict"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        """Suggested transport status for callers that speak HTTP."""
        return _HTTP_STATUS[self]


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFIG: 500,
    ErrorKind.INITIALIZATION: 500,
    ErrorKind.STILL_INITIALIZING: 503,
    ErrorKind.OUTPUT_SHAPE: 500,
    ErrorKind.BACKING_STORE: 503,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Validation (1xxx)
    INVALID_REQUEST = 1001
    INVALID_VECTOR = 1002
    DIMENSION_MISMATCH = 1003
    K_OUT_OF_RANGE = 1004
    UNKNOWN_METRIC = 1005
    ZERO_MAGNITUDE = 1006
    UNSUPPORTED_METRIC = 1007
    TARGET_DIMENSION_OUT_OF_RANGE = 1008

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003

    # Model pipeline (3xxx)
    PIPELINE_INIT_FAILED = 3001
    PIPELINE_INITIALIZING = 3002
    PIPELINE_CALL_FAILED = 3003

    # Model output shape (4xxx)
    OUTPUT_EMPTY = 4001
    OUTPUT_BATCH_MISMATCH = 4002
    OUTPUT_INCONSISTENT_DIMENSIONS = 4003
    OUTPUT_DIMENSION_MISMATCH = 4004
    OUTPUT_NON_FINITE = 4005
    OUTPUT_DATA_LENGTH = 4006
    OUTPUT_UNRECOGNIZED = 4007

    # Backing stores (5xxx)
    STORE_NOT_CONFIGURED = 5001
    STORE_UNAVAILABLE = 5002
    STORE_QUERY_FAILED = 5003
    STORE_UNIQUE_VIOLATION = 5004
    MIGRATION_FAILED = 5005

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


def bound_diagnostic(text: str, limit: int = MAX_DIAGNOSTIC_CHARS) -> str:
    """Truncate a diagnostic string so it can be safely echoed to callers."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


@dataclass(eq=False)
class EmbedLabError(Exception):
    """Base error with structured context for responses."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    kind: ErrorKind = field(default=ErrorKind.INTERNAL, init=False)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'OUTPUT_EMPTY')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "kind": self.kind.value,
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


@dataclass(eq=False)
class ValidationError(EmbedLabError):
    """Malformed or out-of-range input. Never retried."""

    kind: ErrorKind = field(default=ErrorKind.VALIDATION, init=False)

    @classmethod
    def invalid_request(cls, message: str, **details: Any) -> "ValidationError":
        return cls(
            code=ErrorCode.INVALID_REQUEST,
            message=f"Invalid request body: {message}",
            details=details,
        )

    @classmethod
    def invalid_vector(cls, name: str, reason: str) -> "ValidationError":
        return cls(
            code=ErrorCode.INVALID_VECTOR,
            message=f"'{name}' {reason}",
            details={"field": name},
        )

    @classmethod
    def dimension_mismatch(cls, name: str, expected: int, actual: int) -> "ValidationError":
        return cls(
            code=ErrorCode.DIMENSION_MISMATCH,
            message=f"'{name}' must have {expected} dimensions, got {actual}",
            details={"field": name, "expected": expected, "actual": actual},
        )

    @classmethod
    def k_out_of_range(cls, k: Any, maximum: int) -> "ValidationError":
        return cls(
            code=ErrorCode.K_OUT_OF_RANGE,
            message=f"'k' must be an integer between 1 and {maximum}",
            details={"k": str(k), "max": maximum},
        )

    @classmethod
    def unknown_metric(cls, metric: Any) -> "ValidationError":
        return cls(
            code=ErrorCode.UNKNOWN_METRIC,
            message="'metric' must be one of 'cosine', 'euclidean', or 'dot'",
            details={"metric": bound_diagnostic(str(metric), 64)},
        )

    @classmethod
    def unsupported_metric(cls, metric: str, supported: list[str]) -> "ValidationError":
        return cls(
            code=ErrorCode.UNSUPPORTED_METRIC,
            message=f"Metric '{metric}' is not supported here; use one of {supported}",
            details={"metric": metric, "supported": supported},
        )

    @classmethod
    def target_dimension_out_of_range(cls, target: Any, input_dimension: int) -> "ValidationError":
        return cls(
            code=ErrorCode.TARGET_DIMENSION_OUT_OF_RANGE,
            message=(
                f"target dimension ({target}) must be a positive integer no greater than "
                f"the input vector dimension ({input_dimension})"
            ),
            details={"target": str(target), "input_dimension": input_dimension},
        )

    @classmethod
    def zero_magnitude(cls, operation: str) -> "ValidationError":
        return cls(
            code=ErrorCode.ZERO_MAGNITUDE,
            message=f"{operation}: cannot operate on a zero-magnitude vector",
            details={"operation": operation},
        )


@dataclass(eq=False)
class ConfigError(EmbedLabError):
    """Configuration-related errors."""

    kind: ErrorKind = field(default=ErrorKind.CONFIG, init=False)

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )


@dataclass(eq=False)
class InitializationError(EmbedLabError):
    """Model pipeline failed to load. Sticky until an explicit restart."""

    kind: ErrorKind = field(default=ErrorKind.INITIALIZATION, init=False)

    @classmethod
    def load_failed(cls, model_id: str, cause: BaseException) -> "InitializationError":
        return cls(
            code=ErrorCode.PIPELINE_INIT_FAILED,
            message="Failed to initialize embeddings model.",
            details={"model": model_id, "reason": bound_diagnostic(str(cause))},
        )

    @classmethod
    def call_failed(cls, model_id: str, cause: BaseException) -> "InitializationError":
        return cls(
            code=ErrorCode.PIPELINE_CALL_FAILED,
            message="Failed to generate embeddings.",
            details={"model": model_id, "reason": bound_diagnostic(str(cause))},
        )


@dataclass(eq=False)
class StillInitializing(EmbedLabError):
    """Model load in progress. Not a failure; retry after ``retry_after_sec``."""

    retryable: bool = True
    kind: ErrorKind = field(default=ErrorKind.STILL_INITIALIZING, init=False)

    @property
    def retry_after_sec(self) -> int:
        return int(self.details.get("retry_after_sec", 5))

    @classmethod
    def loading(cls, model_id: str, retry_after_sec: int = 5) -> "StillInitializing":
        return cls(
            code=ErrorCode.PIPELINE_INITIALIZING,
            message="Embeddings model is still loading. Please try again shortly.",
            details={"model": model_id, "retry_after_sec": retry_after_sec},
        )


@dataclass(eq=False)
class OutputShapeError(EmbedLabError):
    """Model output did not decode into a valid rectangular matrix."""

    kind: ErrorKind = field(default=ErrorKind.OUTPUT_SHAPE, init=False)

    @classmethod
    def empty_output(cls) -> "OutputShapeError":
        return cls(
            code=ErrorCode.OUTPUT_EMPTY,
            message="Embeddings model returned empty output.",
        )

    @classmethod
    def batch_mismatch(cls, expected: int, actual: int) -> "OutputShapeError":
        return cls(
            code=ErrorCode.OUTPUT_BATCH_MISMATCH,
            message=f"Embeddings batch size mismatch: expected {expected}, got {actual}.",
            details={"expected": expected, "actual": actual},
        )

    @classmethod
    def inconsistent_dimensions(cls, row: int, expected: int, actual: int) -> "OutputShapeError":
        return cls(
            code=ErrorCode.OUTPUT_INCONSISTENT_DIMENSIONS,
            message="Embeddings model returned rows with inconsistent dimensions.",
            details={"row": row, "expected": expected, "actual": actual},
        )

    @classmethod
    def dimension_mismatch(cls, expected: int, actual: int) -> "OutputShapeError":
        return cls(
            code=ErrorCode.OUTPUT_DIMENSION_MISMATCH,
            message=f"Embeddings dimension mismatch: expected {expected}, got {actual}.",
            details={"expected": expected, "actual": actual},
        )

    @classmethod
    def non_finite(cls, row: int, column: int) -> "OutputShapeError":
        return cls(
            code=ErrorCode.OUTPUT_NON_FINITE,
            message=(
                f"Embeddings model returned non-finite value at [{row}, {column}] (NaN/Infinity)."
            ),
            details={"row": row, "column": column},
        )

    @classmethod
    def data_length_mismatch(cls, expected: int, actual: int) -> "OutputShapeError":
        return cls(
            code=ErrorCode.OUTPUT_DATA_LENGTH,
            message=(
                "Embeddings model returned data with unexpected length: "
                f"expected {expected}, got {actual}."
            ),
            details={"expected": expected, "actual": actual},
        )

    @classmethod
    def unrecognized(cls, observed: str) -> "OutputShapeError":
        observed = bound_diagnostic(observed)
        return cls(
            code=ErrorCode.OUTPUT_UNRECOGNIZED,
            message=f"Unexpected embeddings output format from model. Observed shape: {observed}.",
            details={"observed": observed},
        )


@dataclass(eq=False)
class BackingStoreError(EmbedLabError):
    """Cache or corpus-store failure."""

    kind: ErrorKind = field(default=ErrorKind.BACKING_STORE, init=False)

    @classmethod
    def not_configured(cls, store: str, hint: str) -> "BackingStoreError":
        return cls(
            code=ErrorCode.STORE_NOT_CONFIGURED,
            message=f"{store} is not configured.",
            details={"store": store, "hint": hint},
        )

    @classmethod
    def unavailable(cls, store: str, cause: BaseException) -> "BackingStoreError":
        return cls(
            code=ErrorCode.STORE_UNAVAILABLE,
            message=f"{store} is unavailable.",
            retryable=True,
            details={"store": store, "reason": bound_diagnostic(str(cause))},
        )

    @classmethod
    def query_failed(cls, store: str, cause: BaseException) -> "BackingStoreError":
        return cls(
            code=ErrorCode.STORE_QUERY_FAILED,
            message=f"Failed to query {store}.",
            details={"store": store, "reason": bound_diagnostic(str(cause))},
        )

    @classmethod
    def migration_failed(cls, migration_id: str, cause: BaseException) -> "BackingStoreError":
        return cls(
            code=ErrorCode.MIGRATION_FAILED,
            message=f"Failed to apply migration {migration_id}.",
            details={"migration": migration_id, "reason": bound_diagnostic(str(cause))},
        )


@dataclass(eq=False)
class ConflictError(EmbedLabError):
    """Uniqueness violation in a backing store."""

    kind: ErrorKind = field(default=ErrorKind.CONFLICT, init=False)

    @classmethod
    def unique_violation(cls, cause: BaseException) -> "ConflictError":
        return cls(
            code=ErrorCode.STORE_UNIQUE_VIOLATION,
            message="Unique constraint violated.",
            details={"reason": bound_diagnostic(str(cause))},
        )


@dataclass(eq=False)
class InternalError(EmbedLabError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
