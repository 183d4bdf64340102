"""Tests for embeddings/cache.py."""

from __future__ import annotations

import hashlib
import json
from typing import Any

import httpx
import pytest

from embedlab.config.models import CacheConfig
from embedlab.embeddings.cache import (
    EmbeddingCache,
    InMemoryCacheBackend,
    KvRestCacheBackend,
    build_cache_key,
)


class FailingBackend:
    name = "kv"

    async def get(self, key: str) -> Any:
        raise ConnectionError("kv down")

    async def set(self, key: str, value: list[float], ttl_sec: int | None = None) -> None:
        raise ConnectionError("kv down")

    async def aclose(self) -> None:
        pass


class FakeKv:
    """Minimal REST command endpoint backed by a dict."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.requests: list[list[Any]] = []
        self.auth: list[str | None] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        command = json.loads(request.content)
        self.requests.append(command)
        self.auth.append(request.headers.get("authorization"))
        op = command[0]
        if op == "GET":
            return httpx.Response(200, json={"result": self.store.get(command[1])})
        if op == "SET":
            self.store[command[1]] = command[2]
            return httpx.Response(200, json={"result": "OK"})
        return httpx.Response(200, json={"error": f"ERR unknown command {op}"})


def kv_backend(fake: FakeKv, token: str | None = "secret") -> KvRestCacheBackend:
    client = httpx.AsyncClient(
        base_url="https://kv.test",
        transport=httpx.MockTransport(fake),
        headers={"Authorization": f"Bearer {token}"} if token else {},
    )
    return KvRestCacheBackend("https://kv.test", token, client=client)


class TestBuildCacheKey:
    def test_key_scoped_by_model_and_hashed(self) -> None:
        digest = hashlib.sha256(b"hello").hexdigest()

        assert build_cache_key("hello", "model-a") == f"embedding:model-a:{digest}"

    def test_distinct_inputs_never_alias(self) -> None:
        keys = {
            build_cache_key("hello", "model-a"),
            build_cache_key("hello", "model-b"),
            build_cache_key("hello ", "model-a"),
            build_cache_key("Hello", "model-a"),
        }

        assert len(keys) == 4


class TestInMemoryCache:
    @pytest.mark.asyncio
    async def test_given_set_when_get_then_returns_vector(self) -> None:
        cache = EmbeddingCache(InMemoryCacheBackend())

        await cache.set("hello", "m", [0.1, 0.2])

        assert await cache.get("hello", "m") == (0.1, 0.2)

    @pytest.mark.asyncio
    async def test_given_unset_key_when_get_then_miss(self) -> None:
        cache = EmbeddingCache(InMemoryCacheBackend())

        assert await cache.get("never stored", "m") is None

    @pytest.mark.asyncio
    async def test_given_other_model_when_get_then_miss(self) -> None:
        cache = EmbeddingCache(InMemoryCacheBackend())
        await cache.set("hello", "model-a", [1.0])

        assert await cache.get("hello", "model-b") is None

    @pytest.mark.asyncio
    async def test_given_full_table_when_set_then_least_recent_evicted(self) -> None:
        backend = InMemoryCacheBackend(max_entries=2)
        cache = EmbeddingCache(backend)
        await cache.set("a", "m", [1.0])
        await cache.set("b", "m", [2.0])
        await cache.get("a", "m")

        await cache.set("c", "m", [3.0])

        assert len(backend) == 2
        assert await cache.get("b", "m") is None
        assert await cache.get("a", "m") == (1.0,)

    @pytest.mark.asyncio
    async def test_given_recomputed_vector_when_set_then_overwritten(self) -> None:
        cache = EmbeddingCache(InMemoryCacheBackend())
        await cache.set("a", "m", [1.0])

        await cache.set("a", "m", [2.0])

        assert await cache.get("a", "m") == (2.0,)


class TestFailureAbsorption:
    @pytest.mark.asyncio
    async def test_given_backend_get_failure_then_miss_not_raise(self) -> None:
        cache = EmbeddingCache(FailingBackend())

        assert await cache.get("hello", "m") is None

    @pytest.mark.asyncio
    async def test_given_backend_set_failure_then_false_not_raise(self) -> None:
        cache = EmbeddingCache(FailingBackend())

        assert await cache.set("hello", "m", [1.0]) is False

    @pytest.mark.asyncio
    async def test_given_scheduled_write_failure_then_drain_completes(self) -> None:
        cache = EmbeddingCache(FailingBackend())

        cache.schedule_set("hello", "m", [1.0])
        assert cache.pending_writes == 1
        await cache.drain()

        assert cache.pending_writes == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored", ["not a list", [], [1.0, "x"], [True], {"v": 1}])
    async def test_given_corrupt_entry_when_get_then_miss(self, stored: Any) -> None:
        backend = InMemoryCacheBackend()
        cache = EmbeddingCache(backend)
        await backend.set(cache.key("hello", "m"), stored)

        assert await cache.get("hello", "m") is None

    @pytest.mark.asyncio
    async def test_given_entry_of_other_width_when_get_with_dimension_then_miss(self) -> None:
        cache = EmbeddingCache(InMemoryCacheBackend())
        await cache.set("hello", "m", [1.0, 2.0, 3.0])

        assert await cache.get("hello", "m", dimension=4) is None
        assert await cache.get("hello", "m", dimension=3) == (1.0, 2.0, 3.0)


class TestKvRestBackend:
    @pytest.mark.asyncio
    async def test_given_set_when_get_then_round_trips_via_commands(self) -> None:
        # Given
        fake = FakeKv()
        cache = EmbeddingCache(kv_backend(fake))

        # When
        await cache.set("hello", "m", [0.5, -0.5])
        result = await cache.get("hello", "m")

        # Then
        key = build_cache_key("hello", "m")
        assert result == (0.5, -0.5)
        assert fake.requests[0] == ["SET", key, "[0.5, -0.5]"]
        assert fake.requests[1] == ["GET", key]
        assert fake.auth == ["Bearer secret", "Bearer secret"]

    @pytest.mark.asyncio
    async def test_given_ttl_when_set_then_expiry_sent(self) -> None:
        fake = FakeKv()
        cache = EmbeddingCache(kv_backend(fake), ttl_sec=3600)

        await cache.set("hello", "m", [1.0])

        assert fake.requests[0][-2:] == ["EX", 3600]

    @pytest.mark.asyncio
    async def test_given_http_error_when_get_then_miss(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        client = httpx.AsyncClient(base_url="https://kv.test", transport=httpx.MockTransport(handler))
        cache = EmbeddingCache(KvRestCacheBackend("https://kv.test", client=client))

        assert await cache.get("hello", "m") is None
        assert await cache.set("hello", "m", [1.0]) is False

    @pytest.mark.asyncio
    async def test_given_error_reply_when_command_then_treated_as_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": "WRONGPASS"})

        client = httpx.AsyncClient(base_url="https://kv.test", transport=httpx.MockTransport(handler))
        cache = EmbeddingCache(KvRestCacheBackend("https://kv.test", client=client))

        assert await cache.set("hello", "m", [1.0]) is False


class TestFromConfig:
    @pytest.mark.asyncio
    async def test_given_no_kv_url_then_in_process_backend(self) -> None:
        cache = EmbeddingCache.from_config(CacheConfig())

        assert cache.backend_name == "memory"
        assert cache.remote is False
        await cache.aclose()

    @pytest.mark.asyncio
    async def test_given_kv_url_then_remote_backend(self) -> None:
        cache = EmbeddingCache.from_config(CacheConfig(kv_url="https://kv.example.com", kv_token="t"))

        assert cache.backend_name == "kv"
        assert cache.remote is True
        await cache.aclose()
