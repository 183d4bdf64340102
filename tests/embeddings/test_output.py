"""Tests for embeddings/output.py."""

import math

import numpy as np
import pytest

from embedlab.core.errors import ErrorCode, OutputShapeError
from embedlab.embeddings.output import FlatBuffer, NestedRows, decode_embeddings


class TestNestedRows:
    def test_given_batch_of_rows_when_decoded_then_rows_returned(self) -> None:
        output = NestedRows(rows=[[0.1, 0.2], [0.3, 0.4]])

        assert decode_embeddings(output, 2) == [(0.1, 0.2), (0.3, 0.4)]

    def test_given_flat_row_with_batch_of_one_when_decoded_then_single_row(self) -> None:
        output = NestedRows(rows=[0.5, 0.25, -1.0])

        assert decode_embeddings(output, 1) == [(0.5, 0.25, -1.0)]

    def test_given_numpy_rows_when_decoded_then_plain_floats(self) -> None:
        output = NestedRows(rows=np.array([[1, 2], [3, 4]], dtype=np.float32))

        result = decode_embeddings(output, 2)

        assert result == [(1.0, 2.0), (3.0, 4.0)]
        assert all(type(x) is float for x in result[0])

    def test_given_empty_rows_when_decoded_then_empty_output_error(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(NestedRows(rows=[]), 1)

        assert exc_info.value.code is ErrorCode.OUTPUT_EMPTY

    def test_given_empty_first_row_when_decoded_then_empty_output_error(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(NestedRows(rows=[[]]), 1)

        assert exc_info.value.code is ErrorCode.OUTPUT_EMPTY


class TestFlatBuffer:
    def test_given_known_rows_when_encoded_flat_then_decodes_to_same_rows(self) -> None:
        rows = [(0.0, 1.0, 2.0), (3.0, 4.0, 5.0), (6.0, 7.0, 8.0), (9.0, 10.0, 11.0)]
        flat = [x for row in rows for x in row]

        result = decode_embeddings(FlatBuffer(data=flat, dims=(4, 3)), 4)

        assert result == rows

    def test_given_numpy_buffer_when_decoded_then_sliced(self) -> None:
        data = np.arange(6, dtype=np.float32)

        assert decode_embeddings(FlatBuffer(data=data, dims=(2, 3)), 2) == [
            (0.0, 1.0, 2.0),
            (3.0, 4.0, 5.0),
        ]

    def test_given_wrong_length_when_decoded_then_data_length_error(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(FlatBuffer(data=[1.0, 2.0, 3.0], dims=(2, 2)), 2)

        assert exc_info.value.code is ErrorCode.OUTPUT_DATA_LENGTH
        assert exc_info.value.details == {"expected": 4, "actual": 3}

    def test_given_three_dim_descriptor_when_decoded_then_unrecognized(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(FlatBuffer(data=[1.0] * 8, dims=(2, 2, 2)), 2)

        assert exc_info.value.code is ErrorCode.OUTPUT_UNRECOGNIZED


class TestValidation:
    def test_given_row_count_mismatch_when_decoded_then_batch_error(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(NestedRows(rows=[[1.0, 2.0]]), 2)

        assert exc_info.value.code is ErrorCode.OUTPUT_BATCH_MISMATCH
        assert exc_info.value.details == {"expected": 2, "actual": 1}

    def test_given_ragged_rows_when_decoded_then_inconsistent_dimensions(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(NestedRows(rows=[[1.0, 2.0], [1.0]]), 2)

        assert exc_info.value.code is ErrorCode.OUTPUT_INCONSISTENT_DIMENSIONS
        assert exc_info.value.details["row"] == 1

    def test_given_unexpected_width_when_decoded_then_dimension_mismatch(self) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(NestedRows(rows=[[1.0, 2.0]]), 1, expected_dimension=384)

        assert exc_info.value.code is ErrorCode.OUTPUT_DIMENSION_MISMATCH

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_given_non_finite_value_when_decoded_then_position_reported(self, bad: float) -> None:
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(NestedRows(rows=[[1.0, 2.0], [3.0, bad]]), 2)

        assert exc_info.value.code is ErrorCode.OUTPUT_NON_FINITE
        assert exc_info.value.details == {"row": 1, "column": 1}

    def test_given_untagged_output_when_decoded_then_unrecognized_with_bounded_diagnostic(
        self,
    ) -> None:
        class Tensor:
            dims = list(range(50))
            data = [0.0] * 10

        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(Tensor(), 1)

        observed = exc_info.value.details["observed"]
        assert exc_info.value.code is ErrorCode.OUTPUT_UNRECOGNIZED
        assert '"type": "Tensor"' in observed
        assert '"data_length": 10' in observed
        assert "[0, 1, 2, 3, 4, 5, 6, 7]" in observed

    def test_given_plain_list_when_decoded_then_unrecognized(self) -> None:
        with pytest.raises(OutputShapeError):
            decode_embeddings([[1.0, 2.0]], 1)

    def test_given_token_level_output_when_decoded_then_unrecognized_not_type_error(self) -> None:
        # Given one input whose output was not pooled: tokens x dimension
        output = NestedRows(rows=[[[0.1, 0.2], [0.3, 0.4]]])

        # When / Then
        with pytest.raises(OutputShapeError) as exc_info:
            decode_embeddings(output, 1)

        assert exc_info.value.code is ErrorCode.OUTPUT_UNRECOGNIZED
        assert "[1, 2, 2]" in exc_info.value.details["observed"]
