"""Embedding backends.

A backend is created by ``create_pipeline(model_id)`` and then called as
``await handle(inputs, pooling=..., normalize=...)``, returning a tagged
``ModelOutput`` for ``decode_embeddings``.
"""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any, Protocol

import numpy as np
import structlog

from embedlab.embeddings.output import FlatBuffer, ModelOutput

log = structlog.get_logger(__name__)


class EmbeddingPipeline(Protocol):
    async def __call__(
        self,
        inputs: list[str],
        *,
        pooling: str,
        normalize: bool,
    ) -> ModelOutput: ...


def _detect_providers() -> list[str]:
    """Detect available ONNX Runtime execution providers."""
    try:
        import onnxruntime as ort  # type: ignore[import-not-found]
    except ImportError:
        return []

    available = set(ort.get_available_providers())
    providers: list[str] = []
    if "CUDAExecutionProvider" in available:
        providers.append("CUDAExecutionProvider")
    providers.append("CPUExecutionProvider")
    return providers


class FastEmbedPipeline:
    """fastembed ``TextEmbedding`` behind the async pipeline interface.

    fastembed applies the pooling the model was exported with (mean for the
    sentence-transformers MiniLM family), so ``pooling`` is informational here.
    Inference runs in the default executor to keep the event loop free.
    """

    def __init__(self, model: Any, model_id: str) -> None:
        self._model = model
        self._model_id = model_id

    @property
    def model_id(self) -> str:
        return self._model_id

    def _embed_sync(self, inputs: list[str], normalize: bool) -> FlatBuffer:
        matrix = np.asarray(list(self._model.embed(inputs)), dtype=np.float32)
        if normalize:
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms = np.maximum(norms, 1e-10)
            matrix = matrix / norms
        rows, dimension = matrix.shape
        return FlatBuffer(data=matrix.ravel(), dims=(rows, dimension))

    async def __call__(
        self,
        inputs: list[str],
        *,
        pooling: str = "mean",
        normalize: bool = True,
    ) -> ModelOutput:
        loop = asyncio.get_running_loop()
        log.debug("embedding.backend_call", model=self._model_id, batch=len(inputs), pooling=pooling)
        return await loop.run_in_executor(None, self._embed_sync, inputs, normalize)


def _load_text_embedding(model_id: str, threads: int | None) -> Any:
    from fastembed import TextEmbedding

    providers = _detect_providers()
    kwargs: dict[str, Any] = {
        "model_name": model_id,
        "threads": threads or max(1, (os.cpu_count() or 4) // 2),
    }
    if providers:
        kwargs["providers"] = providers

    start = time.monotonic()
    model = TextEmbedding(**kwargs)
    log.info(
        "embedding.model_loaded",
        model=model_id,
        providers=providers or ["CPUExecutionProvider"],
        threads=kwargs["threads"],
        elapsed_s=round(time.monotonic() - start, 2),
    )
    return model


async def create_pipeline(model_id: str, *, threads: int | None = None) -> FastEmbedPipeline:
    """Load ``model_id`` (downloading weights on first use) off the event loop."""
    loop = asyncio.get_running_loop()
    model = await loop.run_in_executor(None, _load_text_embedding, model_id, threads)
    return FastEmbedPipeline(model, model_id)
