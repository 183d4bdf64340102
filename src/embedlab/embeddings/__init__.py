"""Embedding pipeline, output decoding, cache and batch flow."""

from embedlab.embeddings.cache import EmbeddingCache, build_cache_key
from embedlab.embeddings.output import FlatBuffer, ModelOutput, NestedRows, decode_embeddings
from embedlab.embeddings.pipeline import PipelineManager, PipelineState, PipelineStatus
from embedlab.embeddings.service import EmbeddingResult, EmbeddingService, parse_inputs

__all__ = [
    "EmbeddingCache",
    "EmbeddingResult",
    "EmbeddingService",
    "FlatBuffer",
    "ModelOutput",
    "NestedRows",
    "PipelineManager",
    "PipelineState",
    "PipelineStatus",
    "build_cache_key",
    "decode_embeddings",
    "parse_inputs",
]
