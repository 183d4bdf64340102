"""Decode raw model output into a validated embedding matrix.

Embedding backends do not agree on one output format, so every backend tags
its output with one of two encodings:

- ``NestedRows``: a batch of rows, or a single flat row when the batch is 1.
- ``FlatBuffer``: a contiguous buffer plus a ``(batch_size, dimension)`` descriptor.

Anything else is rejected with a bounded description of what was observed.
Validation is fail-fast and each failure maps to its own error code:
empty output, batch size, row widths, configured dimension, finite values.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
import numpy.typing as npt

from embedlab.core.errors import OutputShapeError

Matrix = list[tuple[float, ...]]


@dataclass(frozen=True, slots=True)
class NestedRows:
    """Output as nested rows, e.g. the result of ``tensor.tolist()``."""

    rows: Sequence[Any]


@dataclass(frozen=True, slots=True)
class FlatBuffer:
    """Output as one contiguous buffer sliced by a 2-D descriptor."""

    data: Sequence[float] | npt.NDArray[np.floating]
    dims: tuple[int, ...]


ModelOutput = NestedRows | FlatBuffer


def _is_row(value: Any) -> bool:
    return isinstance(value, (Sequence, np.ndarray)) and not isinstance(value, (str, bytes))


def _describe(output: Any) -> str:
    """Bounded summary of an unrecognized output for diagnostics."""
    dims = getattr(output, "dims", None)
    data = getattr(output, "data", None)
    summary = {
        "type": type(output).__name__,
        "dims": list(dims)[:8] if _is_row(dims) else None,
        "data_length": len(data) if _is_row(data) else None,
    }
    return json.dumps(summary, default=str)


def _rows_from_nested(output: NestedRows) -> list[Any]:
    rows = list(output.rows) if _is_row(output.rows) else []
    if not rows:
        raise OutputShapeError.empty_output()
    if _is_row(rows[0]):
        return rows
    # Flat sequence: a single row
    return [rows]


def _rows_from_flat(output: FlatBuffer) -> list[Any]:
    if len(output.dims) != 2:
        raise OutputShapeError.unrecognized(_describe(output))
    batch_size, dimension = (int(d) for d in output.dims)
    expected_length = batch_size * dimension
    if len(output.data) != expected_length:
        raise OutputShapeError.data_length_mismatch(expected_length, len(output.data))
    flat = list(output.data)
    return [flat[i * dimension : (i + 1) * dimension] for i in range(batch_size)]


def decode_embeddings(
    output: object,
    expected_rows: int,
    *,
    expected_dimension: int | None = None,
) -> Matrix:
    """Decode ``output`` into ``expected_rows`` equal-length rows of finite floats.

    Args:
        output: A ``NestedRows`` or ``FlatBuffer`` produced by a backend.
        expected_rows: Number of inputs sent to the model.
        expected_dimension: When set, every row must have exactly this width.

    Raises:
        OutputShapeError: On any unrecognized or inconsistent output.
    """
    if isinstance(output, NestedRows):
        rows = _rows_from_nested(output)
    elif isinstance(output, FlatBuffer):
        rows = _rows_from_flat(output)
    else:
        raise OutputShapeError.unrecognized(_describe(output))

    if not rows or not _is_row(rows[0]) or len(rows[0]) == 0:
        raise OutputShapeError.empty_output()

    if len(rows) != expected_rows:
        raise OutputShapeError.batch_mismatch(expected_rows, len(rows))

    dimension = len(rows[0])
    for index, row in enumerate(rows):
        if not _is_row(row) or len(row) != dimension:
            actual = len(row) if _is_row(row) else 0
            raise OutputShapeError.inconsistent_dimensions(index, dimension, actual)

    if expected_dimension is not None and dimension != expected_dimension:
        raise OutputShapeError.dimension_mismatch(expected_dimension, dimension)

    try:
        matrix = np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise OutputShapeError.unrecognized(f"non-numeric values: {e}") from e
    if matrix.ndim != 2:
        # Token-level (unpooled) output nests one level deeper than rows.
        raise OutputShapeError.unrecognized(
            f"expected 2-D rows, got shape {list(matrix.shape)[:8]}"
        )

    finite = np.isfinite(matrix)
    if not finite.all():
        row, column = (int(i) for i in np.argwhere(~finite)[0])
        raise OutputShapeError.non_finite(row, column)

    return [tuple(float(x) for x in row) for row in matrix]
