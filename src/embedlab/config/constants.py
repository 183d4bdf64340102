"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are request-size guards and API stability limits.

For configurable values, see models.py (ModelConfig, LimitsConfig, etc.).
"""

# =============================================================================
# Embedding request limits
# =============================================================================

MAX_INPUTS = 64
"""Maximum strings in one batch embedding request."""

MAX_INPUT_CHARS = 1024
"""Maximum characters per input string (after trimming)."""

# =============================================================================
# Search maximums
# =============================================================================
# Hard caps for API stability. Users can configure defaults below these,
# but cannot exceed them.

SEARCH_MAX_K = 100
"""Maximum neighbors for general nearest-neighbor and concept search."""

TITLE_SEARCH_MAX_K = 25
"""Maximum neighbors for corpus title search."""

MAX_QUERY_CHARS = 1024
"""Maximum characters for a text query (concept search)."""

SLERP_MAX_STEPS = 256
"""Maximum points in a generated slerp path."""

# =============================================================================
# Internal Implementation Constants
# =============================================================================

SLERP_EPSILON = 1e-6
"""Below this |sin(theta)| slerp falls back to normalized linear interpolation."""

DEFAULT_RETRY_AFTER_SEC = 5
"""Suggested client retry delay while the model is still loading."""

CORPUS_TABLE = "wikipedia_title_embeddings"
"""Persisted corpus table (populated by an external ingestion job)."""

MIGRATIONS_TABLE = "embeddings_server_schema_migrations"
"""Ledger of applied SQL migrations."""
