"""Nearest-neighbor query engine."""

from embedlab.search.corpus import CorpusSearch, build_article_url, distance_to_score
from embedlab.search.engine import QueryEngine
from embedlab.search.models import (
    Candidate,
    CorpusNeighbor,
    Metric,
    Neighbor,
    NearestResult,
    WeightedTerm,
    parse_request,
)
from embedlab.search.nearest import rank_candidates

__all__ = [
    "Candidate",
    "CorpusNeighbor",
    "CorpusSearch",
    "Metric",
    "Neighbor",
    "NearestResult",
    "QueryEngine",
    "WeightedTerm",
    "build_article_url",
    "distance_to_score",
    "parse_request",
    "rank_candidates",
]
