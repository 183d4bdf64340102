"""Query engine: one entry point per query kind.

Inline candidates are ranked in memory; requests without candidates go to the
corpus. Every request is validated before any backend is touched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from embedlab.config.constants import SEARCH_MAX_K, TITLE_SEARCH_MAX_K
from embedlab.config.models import LimitsConfig
from embedlab.core.errors import BackingStoreError
from embedlab.search import nearest
from embedlab.search.corpus import CorpusSearch
from embedlab.search.models import (
    ArithmeticRequest,
    ArithmeticResult,
    ConceptSearchRequest,
    CorpusNeighbor,
    Metric,
    NearestRequest,
    NearestResult,
    ReduceRequest,
    ReductionResult,
    SimilarityRequest,
    SimilarityResult,
    SlerpRequest,
    TitleSearchRequest,
    parse_request,
)
from embedlab.vectors import reduction

if TYPE_CHECKING:
    from embedlab.embeddings.service import EmbeddingService

log = structlog.get_logger(__name__)

_NOT_CONFIGURED_HINT = (
    "Set database.url (or PGVECTOR_DATABASE_URL) to a Postgres connection string "
    "to enable corpus search."
)


class QueryEngine:
    def __init__(
        self,
        corpus: CorpusSearch | None,
        embeddings: EmbeddingService,
        limits: LimitsConfig | None = None,
    ) -> None:
        self._corpus = corpus
        self._embeddings = embeddings
        self._limits = limits or LimitsConfig()

    @property
    def corpus_enabled(self) -> bool:
        return self._corpus is not None

    def _require_corpus(self) -> CorpusSearch:
        if self._corpus is None:
            raise BackingStoreError.not_configured("Corpus database", _NOT_CONFIGURED_HINT)
        return self._corpus

    async def nearest(self, payload: Any) -> NearestResult:
        request = parse_request(NearestRequest, payload)
        k = nearest.resolve_k(request.k, self._limits.nearest_default_k, SEARCH_MAX_K)

        if request.candidates is not None:
            neighbors = nearest.rank_candidates(
                request.query, request.candidates, k=k, metric=request.metric
            )
            return NearestResult(metric=request.metric, neighbors=neighbors)

        corpus = self._require_corpus()
        rows = await corpus.search(request.query, k=k, metric=request.metric, lang=request.lang)
        return NearestResult(metric=request.metric, neighbors=rows)

    def arithmetic(self, payload: Any) -> ArithmeticResult:
        request = parse_request(ArithmeticRequest, payload)
        return nearest.arithmetic(request, default_k=self._limits.nearest_default_k)

    def similarity(self, payload: Any) -> SimilarityResult:
        return nearest.pairwise_matrix(parse_request(SimilarityRequest, payload))

    def slerp_path(self, payload: Any) -> list[tuple[float, ...]]:
        return nearest.slerp_path(parse_request(SlerpRequest, payload))

    def reduce(self, payload: Any) -> ReductionResult:
        """Project a set of vectors to 2-D or 3-D with PCA (default) or UMAP."""
        request = parse_request(ReduceRequest, payload)
        points = reduction.reduce(request.vectors, request.dimensions, request.method)
        log.info(
            "search.reduce",
            method=request.method.value,
            points=len(points),
            dimensions=request.dimensions,
        )
        return ReductionResult(method=request.method, points=points)

    async def search_titles(self, payload: Any) -> list[CorpusNeighbor]:
        """Corpus titles closest to a query vector by cosine distance."""
        request = parse_request(TitleSearchRequest, payload)
        k = nearest.resolve_k(request.k, self._limits.title_search_default_k, TITLE_SEARCH_MAX_K)
        lang = request.lang or self._limits.default_lang
        corpus = self._require_corpus()
        return await corpus.search(request.query, k=k, metric=Metric.COSINE, lang=lang)

    async def concept_search(self, payload: Any) -> list[CorpusNeighbor]:
        """Embed a text query, then rank corpus titles by L2 distance."""
        request = parse_request(ConceptSearchRequest, payload)
        k = nearest.resolve_k(request.k, self._limits.concept_search_default_k, SEARCH_MAX_K)
        corpus = self._require_corpus()

        vector = await self._embeddings.embed_one(request.query)
        neighbors = await corpus.search(vector, k=k, metric=Metric.EUCLIDEAN)
        log.info("search.concept", k=k, results=len(neighbors))
        return neighbors
