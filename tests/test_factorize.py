from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pytest

from ratingsvd.errors import FactorizationError
from ratingsvd.factorize import (
    ArpackFactorizer,
    RandomizedFactorizer,
    TorchFactorizer,
    factorize,
    make_factorizer,
    validate_rank,
)
from ratingsvd.matrix import DenseMatrix, FactorMatrix, FactorTriple, build_dense_matrix
from ratingsvd.reconstruct import predict_all


@dataclass
class RecordingFactorizer:
    """Deterministic stand-in: returns fixed factors and counts calls."""

    name: str = "stub"
    calls: list[int] = field(default_factory=list)

    def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
        self.calls.append(rank)
        return FactorTriple(
            U=FactorMatrix(np.ones((matrix.rows, rank))),
            S=FactorMatrix(np.arange(rank, 0, -1, dtype=np.float64)),
            V=FactorMatrix(np.ones((matrix.cols, rank))),
        )


@dataclass
class FailingFactorizer:
    name: str = "failing"

    def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
        raise np.linalg.LinAlgError("SVD did not converge")


def _matrix() -> DenseMatrix:
    return DenseMatrix(
        np.array(
            [
                [5.0, 3.0, 0.0, 1.0],
                [4.0, 0.0, 0.0, 1.0],
                [1.0, 1.0, 0.0, 5.0],
            ]
        )
    )


@pytest.mark.parametrize("rank", [0, -1, 4, 10])
def test_invalid_rank_rejected_before_backend_call(rank: int) -> None:
    stub = RecordingFactorizer()
    with pytest.raises(FactorizationError):
        factorize(_matrix(), rank, stub)
    assert stub.calls == []


def test_rank_equal_to_min_dimension_is_accepted() -> None:
    stub = RecordingFactorizer()
    factors = factorize(_matrix(), 3, stub)

    assert stub.calls == [3]
    assert factors.rank == 3
    assert validate_rank(_matrix(), 3) == 3


def test_backend_exception_becomes_factorization_error() -> None:
    with pytest.raises(FactorizationError):
        factorize(_matrix(), 2, FailingFactorizer())


def test_wrong_output_shapes_rejected() -> None:
    @dataclass
    class BadShapes:
        name: str = "bad"

        def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
            return FactorTriple(U=FactorMatrix(np.ones((1, rank))), S=FactorMatrix(np.ones(rank)), V=None)

    with pytest.raises(FactorizationError):
        factorize(_matrix(), 2, BadShapes())


def test_arpack_truncated_factors_have_expected_shapes() -> None:
    factors = factorize(_matrix(), 2, ArpackFactorizer())
    U, S, V = factors.require_complete()

    assert U.shape == (3, 2)
    assert S.shape == (2, 1)
    assert V.shape == (4, 2)
    assert (S.data >= 0).all()
    # Descending singular values, matching LAPACK.
    expected = np.linalg.svd(_matrix().data, compute_uv=False)[:2]
    np.testing.assert_allclose(S.data[:, 0], expected, rtol=1e-8)


def test_arpack_full_rank_reconstructs_input() -> None:
    m = _matrix()
    U, S, V = factorize(m, 3, ArpackFactorizer()).require_complete()

    np.testing.assert_allclose(predict_all(U, S, V), m.data, atol=1e-10)


def test_factorize_does_not_mutate_input() -> None:
    m = _matrix()
    before = m.data.copy()
    factorize(m, 2, ArpackFactorizer())

    np.testing.assert_array_equal(m.data, before)


def test_randomized_backend_matches_singular_values() -> None:
    U, S, V = factorize(_matrix(), 2, RandomizedFactorizer(n_iter=10)).require_complete()

    expected = np.linalg.svd(_matrix().data, compute_uv=False)[:2]
    np.testing.assert_allclose(S.data[:, 0], expected, rtol=1e-6)


def test_torch_backend_full_rank_reconstructs_input() -> None:
    m = _matrix()
    U, S, V = factorize(m, 3, TorchFactorizer(device="cpu", num_threads=1)).require_complete()

    np.testing.assert_allclose(predict_all(U, S, V), m.data, atol=1e-8)


def test_make_factorizer() -> None:
    assert isinstance(make_factorizer("arpack", random_state=0), ArpackFactorizer)
    assert isinstance(make_factorizer("Randomized"), RandomizedFactorizer)
    with pytest.raises(ValueError):
        make_factorizer("power-iteration")


def test_arpack_handles_matrix_without_ratings() -> None:
    matrix = build_dense_matrix([], 4, 3)

    U, S, V = factorize(matrix, 2, ArpackFactorizer()).require_complete()

    assert U.shape == (4, 2)
    assert S.shape == (2, 1)
    assert V.shape == (3, 2)
    np.testing.assert_array_equal(S.data, np.zeros((2, 1)))
    np.testing.assert_allclose(predict_all(U, S, V), np.zeros((4, 3)), atol=1e-12)
