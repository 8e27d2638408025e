"""Truncated SVD backends behind a single `factorize(matrix, rank)` seam.

Every backend allocates fresh output arrays and hands them to the caller; the
input matrix is never written to. The SVD itself always comes from a library:

- ``arpack``: scipy ARPACK (`svds`), falling back to LAPACK when k == min(m, n)
- ``randomized``: scikit-learn randomized SVD
- ``torch``: `torch.linalg.svd` on cpu/cuda, using all configured threads
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import numpy as np
import scipy.linalg
from scipy.sparse.linalg import svds
from sklearn.utils.extmath import randomized_svd
import torch

from .errors import FactorizationError
from .matrix import DenseMatrix, FactorMatrix, FactorTriple


logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (np.linalg.LinAlgError, MemoryError, ValueError, RuntimeError)


class Factorizer(Protocol):
    """Anything that turns a dense matrix and a rank into (U, S, V)."""

    name: str

    def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
        ...


def validate_rank(matrix: DenseMatrix, rank: int) -> int:
    """Check 0 < rank <= min(rows, cols) before any backend is called."""
    k = int(rank)
    limit = min(matrix.rows, matrix.cols)
    if k <= 0 or k > limit:
        raise FactorizationError(f"rank must satisfy 0 < k <= {limit} for a {matrix.rows}x{matrix.cols} matrix, got {k}")
    return k


def _package(u: np.ndarray, s: np.ndarray, vt: np.ndarray, *, rows: int, cols: int, k: int) -> FactorTriple:
    """Order latent factors by descending singular value and wrap them."""
    u = np.asarray(u, dtype=np.float64)
    s = np.asarray(s, dtype=np.float64).reshape(-1)
    vt = np.asarray(vt, dtype=np.float64)

    if u.shape != (rows, k) or s.shape != (k,) or vt.shape != (k, cols):
        raise FactorizationError(
            f"backend returned U{u.shape} S{s.shape} Vt{vt.shape}, expected U({rows}, {k}) S({k},) Vt({k}, {cols})"
        )

    order = np.argsort(-s, kind="mergesort")
    return FactorTriple(
        U=FactorMatrix(u[:, order]),
        S=FactorMatrix(s[order].reshape(-1, 1)),
        V=FactorMatrix(vt[order].T),
    )


def _call_backend(name: str, fn: Callable[[], Tuple[np.ndarray, np.ndarray, np.ndarray]]):
    try:
        return fn()
    except _BACKEND_ERRORS as exc:
        raise FactorizationError(f"{name} SVD failed: {exc}") from exc


@dataclass
class ArpackFactorizer:
    """scipy ARPACK truncated SVD (the default backend)."""

    tol: float = 0.0
    maxiter: Optional[int] = None
    random_state: Optional[int] = 42
    name: str = "arpack"

    def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
        k = validate_rank(matrix, rank)
        a = matrix.data

        def _run() -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
            if k < min(matrix.shape) and matrix.nnz():
                return svds(a, k=k, tol=self.tol, maxiter=self.maxiter, random_state=self.random_state)
            # ARPACK needs k < min(m, n) and a nonzero start vector; the full-rank
            # and all-zero cases go through LAPACK.
            u, s, vt = scipy.linalg.svd(a, full_matrices=False, check_finite=True)
            return u[:, :k], s[:k], vt[:k]

        u, s, vt = _call_backend(self.name, _run)
        return _package(u, s, vt, rows=matrix.rows, cols=matrix.cols, k=k)


@dataclass
class RandomizedFactorizer:
    """scikit-learn randomized SVD (Halko et al.)."""

    n_oversamples: int = 10
    n_iter: Any = "auto"
    random_state: Optional[int] = 42
    name: str = "randomized"

    def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
        k = validate_rank(matrix, rank)

        def _run() -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
            return randomized_svd(
                matrix.data,
                n_components=k,
                n_oversamples=int(self.n_oversamples),
                n_iter=self.n_iter,
                random_state=self.random_state,
            )

        u, s, vt = _call_backend(self.name, _run)
        return _package(u, s, vt, rows=matrix.rows, cols=matrix.cols, k=k)


def _device_from_str(device: str | None) -> torch.device:
    if device is None:
        if torch.cuda.is_available():
            return torch.device("cuda")
        return torch.device("cpu")
    return torch.device(str(device))


@dataclass
class TorchFactorizer:
    """Dense SVD through `torch.linalg.svd`, truncated to k.

    `num_threads` bounds the intra-op thread pool used inside the call.
    """

    device: Optional[str] = None
    num_threads: Optional[int] = None
    name: str = "torch"

    def factorize(self, matrix: DenseMatrix, rank: int) -> FactorTriple:
        k = validate_rank(matrix, rank)
        torch_device = _device_from_str(self.device)
        if self.num_threads is not None:
            torch.set_num_threads(int(self.num_threads))
        logger.info("torch SVD on device=%s threads=%d", torch_device, torch.get_num_threads())

        def _run() -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
            with torch.no_grad():
                t = torch.from_numpy(matrix.data.copy()).to(torch_device)
                u, s, vh = torch.linalg.svd(t, full_matrices=False)
                return (
                    u[:, :k].cpu().numpy(),
                    s[:k].cpu().numpy(),
                    vh[:k].cpu().numpy(),
                )

        u, s, vt = _call_backend(self.name, _run)
        return _package(u, s, vt, rows=matrix.rows, cols=matrix.cols, k=k)


BACKENDS: Dict[str, Callable[..., Factorizer]] = {
    "arpack": ArpackFactorizer,
    "randomized": RandomizedFactorizer,
    "torch": TorchFactorizer,
}


def make_factorizer(name: str = "arpack", **options: Any) -> Factorizer:
    """Instantiate a backend by name; `options` go to its constructor."""
    key = str(name).strip().lower()
    if key not in BACKENDS:
        raise ValueError(f"Unknown SVD backend {name!r}; expected one of {sorted(BACKENDS)}")
    try:
        return BACKENDS[key](**options)
    except TypeError as exc:
        raise ValueError(f"Invalid options for SVD backend {name!r}: {exc}") from exc


def check_factor_guarantees(factors: FactorTriple, *, rows: int, cols: int, k: int) -> FactorTriple:
    """Shapes U(rows, k), S(k, 1), V(cols, k) and non-negative, finite singular values."""
    if not factors.is_complete():
        raise FactorizationError("factorizer did not populate U, S and V")
    U, S, V = factors.U, factors.S, factors.V
    assert U is not None and S is not None and V is not None
    if U.shape != (rows, k) or S.shape != (k, 1) or V.shape != (cols, k):
        raise FactorizationError(
            f"factor shapes U{U.shape} S{S.shape} V{V.shape} do not match a rank-{k} SVD of {rows}x{cols}"
        )
    if not (np.isfinite(U.data).all() and np.isfinite(S.data).all() and np.isfinite(V.data).all()):
        raise FactorizationError("factorizer returned non-finite values")
    if (S.data < 0).any():
        raise FactorizationError("factorizer returned negative singular values")
    return factors


def factorize(matrix: DenseMatrix, rank: int, factorizer: Optional[Factorizer] = None) -> FactorTriple:
    """Run one blocking factorization call and verify what comes back.

    The rank is checked before the backend sees the matrix; any backend
    failure surfaces as `FactorizationError`.
    """
    k = validate_rank(matrix, rank)
    factorizer = factorizer if factorizer is not None else ArpackFactorizer()
    logger.info(
        "Factorizing %dx%d matrix (nnz=%d) with backend=%s k=%d",
        matrix.rows,
        matrix.cols,
        matrix.nnz(),
        getattr(factorizer, "name", type(factorizer).__name__),
        k,
    )
    try:
        factors = factorizer.factorize(matrix, k)
    except FactorizationError:
        raise
    except _BACKEND_ERRORS as exc:
        raise FactorizationError(f"factorization failed: {exc}") from exc
    return check_factor_guarantees(factors, rows=matrix.rows, cols=matrix.cols, k=k)
