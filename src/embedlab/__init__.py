"""EmbedLab - embedding serving core.

Text to vectors through a cold-start-safe model pipeline, a best-effort cache
and nearest-neighbor search over inline candidates or a pgvector corpus.
"""

__version__ = "0.4.0"
