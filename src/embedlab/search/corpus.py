"""Corpus-backed nearest-neighbor search over pgvector.

Each search is exactly one parameterized SELECT bound to the query vector,
an optional language and a row limit. The distance expression is repeated in
ORDER BY so the ANN index can serve the ordering.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import Any, Protocol
from urllib.parse import quote

import structlog

from embedlab.config.constants import CORPUS_TABLE
from embedlab.core.errors import ValidationError
from embedlab.search.models import CorpusNeighbor, Metric
from embedlab.vectors.math import as_vector

log = structlog.get_logger(__name__)

# Left unescaped in article slugs, in addition to quote()'s defaults
_URL_COMPONENT_SAFE = "!*'()"

# pgvector operator per metric. Inner product is not offered against the corpus.
DISTANCE_OPERATORS: dict[Metric, str] = {
    Metric.COSINE: "<=>",
    Metric.EUCLIDEAN: "<->",
}


class CorpusStore(Protocol):
    async def fetch_all(self, sql: str, params: Any = None) -> list[dict[str, Any]]: ...


def distance_to_score(distance: float) -> float:
    """Map a distance onto (0, 1]; negative or non-finite distances score 0."""
    if not math.isfinite(distance) or distance < 0:
        return 0.0
    return 1.0 / (1.0 + distance)


def build_article_url(title: str, lang: str | None = None) -> str:
    host_lang = (lang or "en").strip() or "en"
    slug = quote(re.sub(r"\s+", "_", title.strip()), safe=_URL_COMPONENT_SAFE)
    return f"https://{host_lang}.wikipedia.org/wiki/{slug}"


def vector_literal(vector: Sequence[float]) -> str:
    """pgvector text form, e.g. '[0.1,0.2]'."""
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


def build_search_sql(metric: Metric, dimension: int, *, with_lang: bool) -> str:
    try:
        operator = DISTANCE_OPERATORS[metric]
    except KeyError:
        raise ValidationError.unsupported_metric(
            metric.value, [m.value for m in DISTANCE_OPERATORS]
        ) from None

    distance = f"embedding {operator} CAST(:query AS vector({dimension}))"
    where = "WHERE lang = :lang\n" if with_lang else ""
    return (
        f"SELECT id, title, lang, {distance} AS distance\n"
        f"FROM {CORPUS_TABLE}\n"
        f"{where}"
        f"ORDER BY {distance} ASC\n"
        f"LIMIT :limit"
    )


class CorpusSearch:
    def __init__(self, store: CorpusStore, dimension: int) -> None:
        self._store = store
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def search(
        self,
        query: Sequence[float],
        *,
        k: int,
        metric: Metric = Metric.COSINE,
        lang: str | None = None,
    ) -> list[CorpusNeighbor]:
        """Closest ``k`` corpus rows to ``query``, nearest first.

        Raises:
            ValidationError: Bad vector, wrong dimension or unsupported metric.
            BackingStoreError: The store failed.
        """
        vector = as_vector(query, "query")
        if len(vector) != self._dimension:
            raise ValidationError.dimension_mismatch("query", self._dimension, len(vector))
        sql = build_search_sql(metric, self._dimension, with_lang=lang is not None)

        params: dict[str, Any] = {"query": vector_literal(vector), "limit": k}
        if lang is not None:
            params["lang"] = lang

        rows = await self._store.fetch_all(sql, params)
        log.debug("corpus.search", metric=metric.value, k=k, lang=lang, rows=len(rows))

        neighbors: list[CorpusNeighbor] = []
        for row in rows:
            title = row.get("title")
            if not isinstance(title, str):
                continue
            distance = float(row["distance"]) if row.get("distance") is not None else math.nan
            row_lang = row.get("lang") or lang or "en"
            neighbors.append(
                CorpusNeighbor(
                    id=int(row["id"]),
                    title=title,
                    lang=row_lang,
                    distance=distance,
                    score=distance_to_score(distance),
                    url=build_article_url(title, row_lang),
                )
            )
        return neighbors
