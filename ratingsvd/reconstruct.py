"""Predicted ratings from low-rank factors: r(u, i) = sum_r U[u, r] * S[r] * V[i, r].

Values are plain linear reconstructions in float64: no clamping to the rating
scale, no rounding. A full grid costs O(num_users * num_items * k) time and
num_users * num_items * 8 bytes; prefer `predict_rows` / `predict_cells` when
only some users are needed.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from .matrix import FactorMatrix, FactorTriple, check_factor_shapes


IndexLike = Union[int, Sequence[int], np.ndarray]


def _indices(values: IndexLike, upper: int, what: str) -> np.ndarray:
    idx = np.atleast_1d(np.asarray(values, dtype=np.int64))
    if idx.ndim != 1:
        raise IndexError(f"{what} indices must be 1D, got shape={idx.shape}")
    bad = (idx < 0) | (idx >= upper)
    if bad.any():
        raise IndexError(f"{what} index {int(idx[bad][0])} out of range [0, {upper})")
    return idx


def _weighted_users(U: FactorMatrix, S: FactorMatrix, users: np.ndarray) -> np.ndarray:
    # U[u, r] * S[r], broadcast over the selected rows.
    return U.data[users] * S.data.reshape(1, -1)


def predict(U: FactorMatrix, S: FactorMatrix, V: FactorMatrix, user_index: int, item_index: int) -> float:
    """Predicted rating for one (user, item) cell."""
    check_factor_shapes(U, S, V)
    u = int(_indices(user_index, U.rows, "user")[0])
    i = int(_indices(item_index, V.rows, "item")[0])
    return float(np.dot(U.data[u] * S.data[:, 0], V.data[i]))


def predict_cells(
    U: FactorMatrix,
    S: FactorMatrix,
    V: FactorMatrix,
    user_indices: IndexLike,
    item_indices: IndexLike,
) -> np.ndarray:
    """Predictions for paired (user_indices[j], item_indices[j]) positions."""
    check_factor_shapes(U, S, V)
    users = _indices(user_indices, U.rows, "user")
    items = _indices(item_indices, V.rows, "item")
    if len(users) != len(items):
        raise ValueError(f"user/item index length mismatch: {len(users)} vs {len(items)}")
    return np.einsum("nk,nk->n", _weighted_users(U, S, users), V.data[items])


def predict_rows(U: FactorMatrix, S: FactorMatrix, V: FactorMatrix, user_indices: IndexLike) -> np.ndarray:
    """Full prediction rows (len(user_indices) x num_items) for selected users."""
    check_factor_shapes(U, S, V)
    users = _indices(user_indices, U.rows, "user")
    return np.ascontiguousarray(_weighted_users(U, S, users) @ V.data.T)


def predict_all(U: FactorMatrix, S: FactorMatrix, V: FactorMatrix) -> np.ndarray:
    """Dense num_users x num_items reconstruction, row-major."""
    check_factor_shapes(U, S, V)
    return np.ascontiguousarray((U.data * S.data.reshape(1, -1)) @ V.data.T)


class Reconstructor:
    """Read-only prediction view over a complete factor triple."""

    def __init__(self, factors: FactorTriple) -> None:
        self.U, self.S, self.V = factors.require_complete()

    @property
    def num_users(self) -> int:
        return self.U.rows

    @property
    def num_items(self) -> int:
        return self.V.rows

    @property
    def rank(self) -> int:
        return self.S.rows

    def predict(self, user_index: int, item_index: int) -> float:
        return predict(self.U, self.S, self.V, user_index, item_index)

    def predict_cells(self, user_indices: IndexLike, item_indices: IndexLike) -> np.ndarray:
        return predict_cells(self.U, self.S, self.V, user_indices, item_indices)

    def predict_row(self, user_index: int) -> np.ndarray:
        return predict_rows(self.U, self.S, self.V, [int(user_index)])[0]

    def predict_rows(self, user_indices: IndexLike) -> np.ndarray:
        return predict_rows(self.U, self.S, self.V, user_indices)

    def predict_all(self) -> np.ndarray:
        return predict_all(self.U, self.S, self.V)
