"""Batch embedding flow.

Per input: cache lookup, then one model call for all distinct misses, then
decode and merge with the hits in input order. New vectors are written back to
the cache in the background.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from embedlab.config.constants import MAX_INPUT_CHARS, MAX_INPUTS
from embedlab.config.models import ModelConfig
from embedlab.core.errors import InitializationError, ValidationError
from embedlab.embeddings.cache import EmbeddingCache
from embedlab.embeddings.output import decode_embeddings
from embedlab.embeddings.pipeline import PipelineManager

log = structlog.get_logger(__name__)


def parse_inputs(payload: Any) -> list[str]:
    """Validate a batch embedding request body and return the cleaned inputs.

    Entries are trimmed and empty entries dropped. Limits apply after cleaning.
    """
    if not isinstance(payload, dict):
        raise ValidationError.invalid_request("expected a JSON object with an 'inputs' array.")

    inputs = payload.get("inputs")
    if not isinstance(inputs, list):
        raise ValidationError.invalid_request("'inputs' must be an array of strings.")
    if not inputs:
        raise ValidationError.invalid_request("'inputs' array must not be empty.")
    if any(not isinstance(item, str) for item in inputs):
        raise ValidationError.invalid_request("all 'inputs' entries must be strings.")

    cleaned = [item.strip() for item in inputs]
    cleaned = [item for item in cleaned if item]
    if not cleaned:
        raise ValidationError.invalid_request("at least one input string must be non-empty.")
    if len(cleaned) > MAX_INPUTS:
        raise ValidationError.invalid_request(
            f"'inputs' must not contain more than {MAX_INPUTS} items.",
            count=len(cleaned),
        )
    if any(len(item) > MAX_INPUT_CHARS for item in cleaned):
        raise ValidationError.invalid_request(
            f"each input string must be at most {MAX_INPUT_CHARS} characters long."
        )
    return cleaned


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    model: str
    embeddings: list[tuple[float, ...]]
    dimensions: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "embeddings": [list(row) for row in self.embeddings],
            "dimensions": self.dimensions,
        }


class EmbeddingService:
    def __init__(
        self,
        pipeline: PipelineManager,
        cache: EmbeddingCache,
        model: ModelConfig,
    ) -> None:
        self._pipeline = pipeline
        self._cache = cache
        self._model = model

    @property
    def model_id(self) -> str:
        return self._model.model_id

    async def embed(self, inputs: list[str]) -> EmbeddingResult:
        """Embed already-validated inputs (see ``parse_inputs``).

        Raises:
            InitializationError: The model failed to load, or the call failed.
            StillInitializing: The model is still loading.
            OutputShapeError: The model returned malformed output.
        """
        model_id = self._model.model_id
        vectors: list[tuple[float, ...] | None] = []
        for text in inputs:
            vectors.append(await self._cache.get(text, model_id, dimension=self._model.dimension))

        # Distinct misses, first-seen order
        misses = list(dict.fromkeys(t for t, v in zip(inputs, vectors, strict=True) if v is None))
        log.debug(
            "embedding.batch",
            model=model_id,
            inputs=len(inputs),
            hits=len(inputs) - sum(v is None for v in vectors),
            misses=len(misses),
        )

        if misses:
            handle = self._pipeline.require_handle()
            try:
                raw = await handle(
                    misses,
                    pooling=self._model.pooling,
                    normalize=self._model.normalize,
                )
            except Exception as e:
                log.error("embedding.call_failed", model=model_id, error=str(e))
                raise InitializationError.call_failed(model_id, e) from e

            rows = decode_embeddings(raw, len(misses), expected_dimension=self._model.dimension)
            computed = dict(zip(misses, rows, strict=True))
            vectors = [v if v is not None else computed[t] for t, v in zip(inputs, vectors, strict=True)]
            for text, row in computed.items():
                self._cache.schedule_set(text, model_id, row)

        embeddings = [v for v in vectors if v is not None]
        return EmbeddingResult(
            model=model_id,
            embeddings=embeddings,
            dimensions=len(embeddings[0]),
        )

    async def embed_one(self, text: str) -> tuple[float, ...]:
        result = await self.embed([text])
        return result.embeddings[0]
