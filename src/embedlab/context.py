"""Application context: the composition root.

One ``AppContext`` per process owns the pipeline manager, the cache, the
corpus store and the services built on them. Request handlers receive it
explicitly instead of reaching for module-level singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

import structlog

from embedlab.config.loader import load_config
from embedlab.config.models import EmbedLabConfig
from embedlab.core.logging import configure_logging
from embedlab.core.telemetry import init_telemetry, shutdown_telemetry
from embedlab.embeddings.cache import CacheBackend, EmbeddingCache
from embedlab.embeddings.pipeline import PipelineFactory, PipelineManager, PipelineStatus
from embedlab.embeddings.service import EmbeddingService
from embedlab.search.corpus import CorpusSearch
from embedlab.search.engine import QueryEngine
from embedlab.store.db import Database
from embedlab.store.migrations import MigrationReport, run_pending_migrations

log = structlog.get_logger(__name__)


@dataclass
class AppContext:
    """Everything a request handler needs."""

    config: EmbedLabConfig
    pipeline: PipelineManager
    cache: EmbeddingCache
    database: Database | None
    embeddings: EmbeddingService
    engine: QueryEngine

    @classmethod
    def from_config(
        cls,
        config_path: Path | None = None,
        *,
        pipeline_factory: PipelineFactory | None = None,
        **overrides: Any,
    ) -> AppContext:
        """Load configuration, install logging and telemetry, then wire components.

        Raises:
            ConfigError: The configuration could not be loaded.
        """
        config = load_config(config_path, **overrides)
        configure_logging(config=config.logging)
        telemetry = init_telemetry(config.telemetry)
        log.info(
            "app.configured",
            model=config.model.model_id,
            telemetry=telemetry,
            corpus=config.database.url is not None,
        )
        return cls.create(config, pipeline_factory=pipeline_factory)

    @classmethod
    def create(
        cls,
        config: EmbedLabConfig,
        *,
        pipeline_factory: PipelineFactory | None = None,
        cache_backend: CacheBackend | None = None,
        database: Database | None = None,
    ) -> AppContext:
        """Wire all components together.

        Args:
            config: Resolved configuration.
            pipeline_factory: ``create_pipeline`` replacement (defaults to fastembed).
            cache_backend: Cache backend override (defaults to config selection).
            database: Corpus store override (defaults to ``database.url``).
        """
        if pipeline_factory is None:
            from embedlab.embeddings.backends import create_pipeline

            pipeline_factory = partial(create_pipeline, threads=config.model.threads)

        pipeline = PipelineManager(
            config.model.model_id,
            pipeline_factory,
            retry_after_sec=config.model.retry_after_sec,
        )

        if cache_backend is not None:
            cache = EmbeddingCache(
                cache_backend,
                ttl_sec=config.cache.ttl_sec,
                key_prefix=config.cache.key_prefix,
            )
        else:
            cache = EmbeddingCache.from_config(config.cache)

        if database is None:
            database = Database.from_config(config.database)

        embeddings = EmbeddingService(pipeline, cache, config.model)
        corpus = CorpusSearch(database, config.model.dimension) if database is not None else None
        engine = QueryEngine(corpus, embeddings, config.limits)

        return cls(
            config=config,
            pipeline=pipeline,
            cache=cache,
            database=database,
            embeddings=embeddings,
            engine=engine,
        )

    async def startup(self) -> MigrationReport:
        """Apply pending migrations, then start loading the model.

        Raises:
            BackingStoreError: A migration failed; the process must not serve.
        """
        directory = (
            Path(self.config.database.migrations_dir)
            if self.config.database.migrations_dir
            else None
        )
        report = await run_pending_migrations(self.database, directory)
        self.pipeline.ensure_initializing()
        log.info(
            "app.started",
            model=self.config.model.model_id,
            cache=self.cache.backend_name,
            corpus=self.database is not None,
            migrations_applied=len(report.applied),
        )
        return report

    async def shutdown(self) -> None:
        await self.cache.aclose()
        if self.database is not None:
            await self.database.dispose()
        shutdown_telemetry()
        log.info("app.stopped")

    def health(self) -> dict[str, Any]:
        model = self.pipeline.status()
        if model["model_loaded"]:
            status = "ok"
        elif model["error"]:
            status = "error"
        else:
            status = "degraded"

        database = (
            self.database.status()
            if self.database is not None
            else {"url_configured": False, "connected": False, "last_error": None}
        )
        return {
            "status": status,
            **model,
            "kv_available": self.cache.remote,
            "database": database,
        }

    async def warm(self) -> dict[str, Any]:
        """Start (if needed) and await the model load."""
        settled = await self.pipeline.warm()
        body: dict[str, Any] = {
            "warmed": settled is PipelineStatus.READY,
            "model_name": self.pipeline.model_id,
        }
        if settled is PipelineStatus.FAILED:
            body["status"] = "error"
            body["error"] = self.pipeline.status()["error"]
        elif settled is PipelineStatus.READY:
            body["status"] = "ready"
        else:
            body["status"] = "initializing"
        return body

    def restart_pipeline(self) -> None:
        self.pipeline.restart()
