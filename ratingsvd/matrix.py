"""Dense row-major rating matrix and low-rank factor containers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

import numpy as np

from .data import RatingRecords, RatingTriple
from .errors import DimensionError


logger = logging.getLogger(__name__)

TripleSource = Union[RatingRecords, Iterable[Union[RatingTriple, Tuple[int, int, float]]]]


def _as_row_major(data: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(data, dtype=np.float64)


@dataclass(frozen=True, eq=False)
class DenseMatrix:
    """User x item ratings; absent ratings are stored as 0.0.

    `data[u, i]` lives at flat offset `u * cols + i`. `skipped` counts the
    out-of-range triples dropped while building (diagnostic only).
    """

    data: np.ndarray
    skipped: int = 0

    def __post_init__(self) -> None:
        data = np.asarray(self.data)
        if data.ndim != 2:
            raise DimensionError(f"Expected a 2D matrix, got shape={data.shape}")
        object.__setattr__(self, "data", _as_row_major(data))

    @property
    def rows(self) -> int:
        return int(self.data.shape[0])

    @property
    def cols(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        return self.rows, self.cols

    def flat(self) -> np.ndarray:
        """Row-major 1D view over the buffer (no copy)."""
        return self.data.reshape(-1)

    def nnz(self) -> int:
        return int(np.count_nonzero(self.data))


@dataclass(frozen=True, eq=False)
class FactorMatrix:
    """One of U (users x k), S (k x 1, singular values) or V (items x k)."""

    data: np.ndarray

    def __post_init__(self) -> None:
        data = np.asarray(self.data, dtype=np.float64)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        if data.ndim != 2:
            raise DimensionError(f"Factor matrices are 2D, got shape={data.shape}")
        object.__setattr__(self, "data", _as_row_major(data))

    @classmethod
    def empty(cls) -> "FactorMatrix":
        return cls(np.zeros((0, 0), dtype=np.float64))

    @property
    def rows(self) -> int:
        return int(self.data.shape[0])

    @property
    def cols(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        return self.rows, self.cols

    def is_empty(self) -> bool:
        return self.data.size == 0

    def equals(self, other: "FactorMatrix") -> bool:
        return self.shape == other.shape and bool(np.array_equal(self.data, other.data))


@dataclass(frozen=True, eq=False)
class FactorTriple:
    """(U, S, V) handed out by a factorizer; any member may be absent."""

    U: Optional[FactorMatrix]
    S: Optional[FactorMatrix]
    V: Optional[FactorMatrix]

    @property
    def rank(self) -> int:
        if self.S is None:
            return 0
        return self.S.rows

    def is_complete(self) -> bool:
        return all(m is not None and not m.is_empty() for m in (self.U, self.S, self.V))

    def require_complete(self) -> tuple[FactorMatrix, FactorMatrix, FactorMatrix]:
        """Return (U, S, V) after checking that every factor is present and shapes agree."""
        if not self.is_complete():
            raise DimensionError("Factor triple is incomplete: U, S and V must all be populated")
        assert self.U is not None and self.S is not None and self.V is not None
        check_factor_shapes(self.U, self.S, self.V)
        return self.U, self.S, self.V


def check_factor_shapes(U: FactorMatrix, S: FactorMatrix, V: FactorMatrix) -> int:
    """Validate U (m x k), S (k x 1) and V (n x k); return k."""
    k = S.rows
    if S.cols != 1:
        raise DimensionError(f"S must be k x 1, got {S.shape}")
    if U.cols != k:
        raise DimensionError(f"U has {U.cols} columns but S holds {k} singular values")
    if V.cols != k:
        raise DimensionError(f"V has {V.cols} columns but S holds {k} singular values")
    return k


def _check_dims(num_users: int, num_items: int) -> None:
    if int(num_users) <= 0 or int(num_items) <= 0:
        raise DimensionError(f"Matrix dimensions must be positive, got {num_users}x{num_items}")


def build_dense_matrix(triples: TripleSource, num_users: int, num_items: int) -> DenseMatrix:
    """Scatter rating triples into a zero-initialised `num_users x num_items` matrix.

    - Triples outside `[0, num_users) x [0, num_items)` are skipped silently.
    - Repeated (user, item) pairs keep the rating that comes last in input order.
    """
    _check_dims(num_users, num_items)
    num_users = int(num_users)
    num_items = int(num_items)

    records = triples if isinstance(triples, RatingRecords) else RatingRecords.from_triples(triples)

    try:
        data = np.zeros((num_users, num_items), dtype=np.float64)
    except MemoryError as exc:
        raise DimensionError(
            f"Cannot allocate a {num_users}x{num_items} float64 matrix "
            f"({num_users * num_items * 8} bytes)"
        ) from exc

    users = records.user_index
    items = records.item_index
    in_range = (users >= 0) & (users < num_users) & (items >= 0) & (items < num_items)
    skipped = int(len(records) - int(in_range.sum()))

    flat_idx = users[in_range] * num_items + items[in_range]
    values = records.rating[in_range]

    if len(flat_idx):
        # Fancy assignment does not define which duplicate wins; keep the last
        # occurrence of every flat index explicitly.
        _, first_in_reversed = np.unique(flat_idx[::-1], return_index=True)
        last = len(flat_idx) - 1 - first_in_reversed
        data.reshape(-1)[flat_idx[last]] = values[last]

    if skipped:
        logger.debug("Dropped %d out-of-range triple(s) for a %dx%d matrix", skipped, num_users, num_items)

    return DenseMatrix(data=data, skipped=skipped)
