from __future__ import annotations

import numpy as np
import pytest

from ratingsvd.data import RatingRecords, RatingTriple
from ratingsvd.errors import DimensionError
from ratingsvd.matrix import build_dense_matrix


def test_scenario_three_triples_two_by_two() -> None:
    triples = [RatingTriple(0, 0, 5.0), RatingTriple(0, 1, 3.0), RatingTriple(1, 0, 4.0)]

    m = build_dense_matrix(triples, num_users=2, num_items=2)

    np.testing.assert_array_equal(m.data, np.array([[5.0, 3.0], [4.0, 0.0]]))
    assert m.skipped == 0


def test_row_major_layout() -> None:
    m = build_dense_matrix([(1, 2, 7.0), (2, 0, 1.5)], num_users=3, num_items=4)

    assert m.data.flags["C_CONTIGUOUS"]
    assert m.data.dtype == np.float64
    flat = m.flat()
    assert flat[1 * 4 + 2] == 7.0
    assert flat[2 * 4 + 0] == 1.5
    assert m.nnz() == 2


def test_duplicates_last_write_wins() -> None:
    triples = [(0, 0, 1.0), (1, 1, 2.0), (0, 0, 3.0), (1, 1, 4.0), (0, 0, 5.0)]

    m = build_dense_matrix(triples, 2, 2)

    assert m.data[0, 0] == 5.0
    assert m.data[1, 1] == 4.0


def test_out_of_range_triples_do_not_change_result() -> None:
    base = [(0, 0, 5.0), (1, 1, 2.0)]
    noise = [(-1, 0, 9.0), (0, -1, 9.0), (2, 0, 9.0), (0, 2, 9.0), (100, 100, 9.0)]

    clean = build_dense_matrix(base, 2, 2)
    noisy = build_dense_matrix(noise[:2] + base + noise[2:], 2, 2)

    np.testing.assert_array_equal(clean.data, noisy.data)
    assert noisy.skipped == len(noise)


def test_empty_input_gives_zero_matrix() -> None:
    m = build_dense_matrix(RatingRecords.empty(), 3, 2)

    assert m.shape == (3, 2)
    assert not m.data.any()


@pytest.mark.parametrize("num_users,num_items", [(0, 2), (2, 0), (-1, 3)])
def test_non_positive_dimensions_rejected(num_users: int, num_items: int) -> None:
    with pytest.raises(DimensionError):
        build_dense_matrix([], num_users, num_items)
