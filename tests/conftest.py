from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import ratingsvd...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from ratingsvd.matrix import FactorMatrix, FactorTriple  # noqa: E402


@pytest.fixture()
def identity_factors() -> FactorTriple:
    """U = I, S = [2, 1], V = I on a 2 x 2 grid."""
    eye = [[1.0, 0.0], [0.0, 1.0]]
    return FactorTriple(U=FactorMatrix(eye), S=FactorMatrix([2.0, 1.0]), V=FactorMatrix(eye))
