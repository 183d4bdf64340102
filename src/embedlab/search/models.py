"""Request and result models for the query engine.

Requests are pydantic models with ``extra="forbid"``; ``parse_request`` turns a
raw payload into one of them and maps pydantic errors onto ``ValidationError``
with JSON-style field paths such as ``candidates[0].vector[2]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from embedlab.config.constants import MAX_QUERY_CHARS, SLERP_MAX_STEPS
from embedlab.core.errors import ValidationError
from embedlab.vectors.reduction import ReductionMethod


class Metric(str, Enum):
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT = "dot"

    @property
    def ascending(self) -> bool:
        """Lower is closer for distances, higher is closer for similarities."""
        return self is Metric.EUCLIDEAN


FiniteNumber = Annotated[StrictFloat, Field(allow_inf_nan=False)]
VectorField = Annotated[list[FiniteNumber], Field(min_length=1)]
NonEmptyId = Annotated[StrictStr, Field(min_length=1)]


def _clean_lang(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v:
        raise ValueError("'lang' must be a non-empty string when provided")
    return v


# =============================================================================
# Requests
# =============================================================================


class Candidate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: NonEmptyId
    vector: VectorField


class WeightedTerm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: NonEmptyId
    vector: VectorField
    weight: FiniteNumber


class NearestRequest(BaseModel):
    """Rank neighbors of ``query``.

    With ``candidates`` the ranking is in memory; without, the persisted corpus
    is searched (optionally filtered by ``lang``).
    """

    model_config = ConfigDict(extra="forbid")

    query: VectorField
    candidates: Annotated[list[Candidate], Field(min_length=1)] | None = None
    k: StrictInt | None = None
    metric: Metric = Metric.COSINE
    lang: StrictStr | None = None

    @field_validator("lang")
    @classmethod
    def validate_lang(cls, v: str | None) -> str | None:
        return _clean_lang(v)


class ArithmeticRequest(BaseModel):
    """Weighted sum of ``terms``, optionally ranked against ``candidates``."""

    model_config = ConfigDict(extra="forbid")

    terms: Annotated[list[WeightedTerm], Field(min_length=1)]
    candidates: Annotated[list[Candidate], Field(min_length=1)] | None = None
    k: StrictInt | None = None
    metric: Metric = Metric.COSINE

    @model_validator(mode="after")
    def validate_k_needs_candidates(self) -> ArithmeticRequest:
        if self.k is not None and not self.candidates:
            raise ValueError("'k' can only be provided when 'candidates' is present and non-empty")
        return self


class SimilarityRequest(BaseModel):
    """Pairwise metric matrix over ``vectors``."""

    model_config = ConfigDict(extra="forbid")

    vectors: Annotated[list[VectorField], Field(min_length=1)]
    metric: Metric = Metric.COSINE


class SlerpRequest(BaseModel):
    """Evenly spaced slerp points from ``start`` to ``end`` (both included)."""

    model_config = ConfigDict(extra="forbid")

    start: VectorField
    end: VectorField
    steps: Annotated[StrictInt, Field(ge=2, le=SLERP_MAX_STEPS)] = 8


class ReduceRequest(BaseModel):
    """Project ``vectors`` down to 2 or 3 coordinates for plotting."""

    model_config = ConfigDict(extra="forbid")

    vectors: Annotated[list[VectorField], Field(min_length=1)]
    method: ReductionMethod = ReductionMethod.PCA
    dimensions: Annotated[StrictInt, Field(ge=2, le=3)] = 3

    @model_validator(mode="after")
    def validate_matrix(self) -> ReduceRequest:
        width = len(self.vectors[0])
        if any(len(row) != width for row in self.vectors):
            raise ValueError("all vectors must have the same length (input dimension)")
        if self.dimensions > width:
            raise ValueError(
                f"'dimensions' ({self.dimensions}) cannot be greater than the input "
                f"vector dimension ({width})"
            )
        return self


class TitleSearchRequest(BaseModel):
    """Corpus search by vector: cosine distance, filtered by language."""

    model_config = ConfigDict(extra="forbid")

    query: VectorField
    k: StrictInt | None = None
    lang: StrictStr | None = None

    @field_validator("lang")
    @classmethod
    def validate_lang(cls, v: str | None) -> str | None:
        return _clean_lang(v)


class ConceptSearchRequest(BaseModel):
    """Corpus search by text: the query is embedded, then ranked by L2 distance."""

    model_config = ConfigDict(extra="forbid")

    query: StrictStr
    k: StrictInt | None = None

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("'query' must be a non-empty string")
        if len(v) > MAX_QUERY_CHARS:
            raise ValueError(f"'query' must be at most {MAX_QUERY_CHARS} characters long")
        return v


RequestT = TypeVar("RequestT", bound=BaseModel)


def format_loc(loc: tuple[int | str, ...]) -> str:
    """('candidates', 0, 'vector', 2) -> 'candidates[0].vector[2]'."""
    out = ""
    for part in loc:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out


def parse_request(model: type[RequestT], payload: Any) -> RequestT:
    """Validate ``payload`` against ``model``.

    Raises:
        ValidationError: With the first offending field and pydantic's reason.
    """
    if not isinstance(payload, dict):
        raise ValidationError.invalid_request("expected a JSON object.")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        err = e.errors()[0]
        loc = tuple(err["loc"])
        if loc == ("metric",):
            raise ValidationError.unknown_metric(err.get("input")) from e
        reason = str(err["msg"]).removeprefix("Value error, ")
        field = format_loc(loc)
        message = f"'{field}': {reason}" if field else reason
        raise ValidationError.invalid_request(message, field=field or None) from e


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class Neighbor:
    """A ranked candidate. ``score`` is the raw metric value."""

    id: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "score": self.score}


@dataclass(frozen=True, slots=True)
class CorpusNeighbor:
    """A corpus row. ``score`` is 1/(1+distance); ``distance`` is the store's raw value."""

    id: int
    title: str
    lang: str
    distance: float
    score: float
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "lang": self.lang,
            "distance": self.distance,
            "score": self.score,
            "url": self.url,
        }


@dataclass(frozen=True, slots=True)
class NearestResult:
    metric: Metric
    neighbors: list[Neighbor] | list[CorpusNeighbor]

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric.value,
            "neighbors": [n.to_dict() for n in self.neighbors],
        }


@dataclass(frozen=True, slots=True)
class ArithmeticResult:
    result: tuple[float, ...]
    metric: Metric
    neighbors: list[Neighbor] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"result": list(self.result), "metric": self.metric.value}
        if self.neighbors:
            body["neighbors"] = [n.to_dict() for n in self.neighbors]
        return body


@dataclass(frozen=True, slots=True)
class SimilarityResult:
    metric: Metric
    matrix: list[list[float]]

    def to_dict(self) -> dict[str, Any]:
        return {"metric": self.metric.value, "matrix": self.matrix}


@dataclass(frozen=True, slots=True)
class ReductionResult:
    method: ReductionMethod
    points: list[tuple[float, ...]]

    def to_dict(self) -> dict[str, Any]:
        return {"points": [list(p) for p in self.points], "method": self.method.value}
