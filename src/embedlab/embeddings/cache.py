"""Best-effort embedding cache.

Keys are ``{prefix}:{model_id}:{sha256(text)}``, so distinct models never
share entries and the raw text never leaves the process. Values are the
embedding vectors.

The backend is picked once from configuration: a KV REST store when
``cache.kv_url`` is set, otherwise an in-process LRU table. Backend failures
never reach callers. A failed ``get`` is a miss, and writes run as unawaited
background tasks whose failures are counted on ``embedlab.cache.errors``.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
from collections import OrderedDict
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog

from embedlab.core.telemetry import counter

if TYPE_CHECKING:
    from embedlab.config.models import CacheConfig

log = structlog.get_logger(__name__)

CachedVector = tuple[float, ...]


def build_cache_key(text: str, model_id: str, prefix: str = "embedding") -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{prefix}:{model_id}:{digest}"


class CacheBackend(Protocol):
    name: str

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: list[float], ttl_sec: int | None = None) -> None: ...

    async def aclose(self) -> None: ...


class InMemoryCacheBackend:
    """Process-local table, least recently used entries evicted first."""

    name = "memory"

    def __init__(self, max_entries: int = 10_000) -> None:
        self._entries: OrderedDict[str, list[float]] = OrderedDict()
        self._max_entries = max_entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: list[float], ttl_sec: int | None = None) -> None:  # noqa: ARG002
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def aclose(self) -> None:
        self._entries.clear()


class KvRestCacheBackend:
    """Redis-compatible KV store spoken over its REST command endpoint.

    Each command is POSTed as a JSON array (``["GET", key]``) with a bearer
    token; the reply is ``{"result": ...}`` or ``{"error": ...}``. Values are
    stored as JSON text.
    """

    name = "kv"

    def __init__(
        self,
        url: str,
        token: str | None = None,
        *,
        timeout_sec: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=url, headers=headers, timeout=timeout_sec
        )

    async def _command(self, *args: Any) -> Any:
        response = await self._client.post("/", json=list(args))
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, dict) and payload.get("error"):
            raise RuntimeError(f"KV command {args[0]} failed: {payload['error']}")
        return payload.get("result") if isinstance(payload, dict) else None

    async def get(self, key: str) -> Any:
        raw = await self._command("GET", key)
        if raw is None:
            return None
        return json.loads(raw) if isinstance(raw, str) else raw

    async def set(self, key: str, value: list[float], ttl_sec: int | None = None) -> None:
        args: list[Any] = ["SET", key, json.dumps(value)]
        if ttl_sec:
            args.extend(["EX", ttl_sec])
        await self._command(*args)

    async def aclose(self) -> None:
        await self._client.aclose()


def _coerce_vector(value: Any) -> CachedVector | None:
    """Accept only a non-empty list of finite numbers; anything else is a miss."""
    if not isinstance(value, list) or not value:
        return None
    out: list[float] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            return None
        if not math.isfinite(item):
            return None
        out.append(float(item))
    return tuple(out)


class EmbeddingCache:
    """(text, model) -> vector cache over a single backend."""

    def __init__(
        self,
        backend: CacheBackend,
        *,
        ttl_sec: int | None = None,
        key_prefix: str = "embedding",
    ) -> None:
        self._backend = backend
        self._ttl_sec = ttl_sec
        self._key_prefix = key_prefix
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(cls, config: CacheConfig) -> EmbeddingCache:
        backend: CacheBackend
        if config.kv_url:
            backend = KvRestCacheBackend(
                config.kv_url, config.kv_token, timeout_sec=config.timeout_sec
            )
        else:
            backend = InMemoryCacheBackend(max_entries=config.max_entries)
        log.info("cache.backend_selected", backend=backend.name)
        return cls(backend, ttl_sec=config.ttl_sec, key_prefix=config.key_prefix)

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def remote(self) -> bool:
        """True when backed by the remote KV store."""
        return self._backend.name != InMemoryCacheBackend.name

    def key(self, text: str, model_id: str) -> str:
        return build_cache_key(text, model_id, self._key_prefix)

    async def get(
        self, text: str, model_id: str, *, dimension: int | None = None
    ) -> CachedVector | None:
        """Cached vector, or None on a miss.

        With ``dimension`` set, an entry of any other width counts as a miss.
        """
        key = self.key(text, model_id)
        try:
            value = await self._backend.get(key)
        except Exception as e:
            counter("embedlab.cache.errors").add(1, {"op": "get"})
            log.warning("cache.get_failed", backend=self._backend.name, error=str(e))
            return None

        vector = _coerce_vector(value)
        if vector is None:
            counter("embedlab.cache.misses").add(1)
            return None
        if dimension is not None and len(vector) != dimension:
            counter("embedlab.cache.misses").add(1, {"reason": "dimension"})
            log.warning(
                "cache.dimension_mismatch",
                model=model_id,
                expected=dimension,
                actual=len(vector),
            )
            return None
        counter("embedlab.cache.hits").add(1)
        return vector

    async def set(self, text: str, model_id: str, vector: Sequence[float]) -> bool:
        """Store ``vector``. Returns False if the backend failed."""
        key = self.key(text, model_id)
        try:
            await self._backend.set(key, [float(x) for x in vector], self._ttl_sec)
        except Exception as e:
            counter("embedlab.cache.errors").add(1, {"op": "set"})
            log.debug("cache.set_failed", backend=self._backend.name, error=str(e))
            return False
        return True

    def schedule_set(self, text: str, model_id: str, vector: Sequence[float]) -> None:
        """Write in the background. The caller does not wait for it."""
        task = asyncio.get_running_loop().create_task(self.set(text, model_id, vector))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def aclose(self) -> None:
        await self.drain()
        await self._backend.aclose()
