"""Binary persistence of (U, S, V).

Layout, in order U, S, V, one block per matrix::

    [rows: int32][cols: int32][rows * cols float64, row-major]

All values are little-endian. An absent matrix is written as rows=0, cols=0
with no data and loads back as an empty FactorMatrix. There is no checksum.

Files may optionally start with the tag ``b"RSVD"`` and a uint32 schema
version; `load_factors` accepts both forms.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .errors import DimensionError, FormatError, ModelIOError
from .matrix import FactorMatrix, FactorTriple


logger = logging.getLogger(__name__)

MAGIC = b"RSVD"
SCHEMA_VERSION = 1

_DIM_DTYPE = np.dtype("<i4")
_VALUE_DTYPE = np.dtype("<f8")
_DIMS_NBYTES = 2 * _DIM_DTYPE.itemsize
_DIM_MAX = int(np.iinfo(_DIM_DTYPE).max)
_BLOCK_NAMES = ("U", "S", "V")


def encode_dims(rows: int, cols: int) -> bytes:
    """Block header: rows and cols as little-endian int32."""
    if not (0 <= rows <= _DIM_MAX and 0 <= cols <= _DIM_MAX):
        raise DimensionError(f"Block dimensions {rows}x{cols} do not fit the int32 header")
    return np.asarray([rows, cols], dtype=_DIM_DTYPE).tobytes()


def encode_block(matrix: Optional[FactorMatrix]) -> bytes:
    if matrix is None or matrix.is_empty():
        return encode_dims(0, 0)
    dims = encode_dims(matrix.rows, matrix.cols)
    return dims + np.ascontiguousarray(matrix.data, dtype=_VALUE_DTYPE).tobytes()


def encode_factors(factors: FactorTriple, *, header: bool = False) -> bytes:
    parts = []
    if header:
        parts.append(MAGIC + np.asarray([SCHEMA_VERSION], dtype="<u4").tobytes())
    for m in (factors.U, factors.S, factors.V):
        parts.append(encode_block(m))
    return b"".join(parts)


def _decode_block(buf: memoryview, offset: int, name: str) -> tuple[FactorMatrix, int]:
    if offset + _DIMS_NBYTES > len(buf):
        raise FormatError(f"Truncated model: block {name} header needs {_DIMS_NBYTES} bytes at offset {offset}")
    rows, cols = (int(x) for x in np.frombuffer(buf, dtype=_DIM_DTYPE, count=2, offset=offset))
    offset += _DIMS_NBYTES
    if rows < 0 or cols < 0:
        raise FormatError(f"Corrupt model: block {name} declares negative dimensions {rows}x{cols}")

    count = rows * cols
    if count == 0:
        return FactorMatrix.empty(), offset

    nbytes = count * _VALUE_DTYPE.itemsize
    available = len(buf) - offset
    if nbytes > available:
        raise FormatError(
            f"Truncated model: block {name} declares {rows}x{cols} values ({nbytes} bytes) "
            f"but only {available} bytes remain"
        )
    values = np.frombuffer(buf, dtype=_VALUE_DTYPE, count=count, offset=offset)
    matrix = FactorMatrix(values.astype(np.float64).reshape(rows, cols))
    return matrix, offset + nbytes


def decode_factors(payload: bytes) -> FactorTriple:
    buf = memoryview(payload)
    offset = 0
    if bytes(buf[: len(MAGIC)]) == MAGIC:
        if len(buf) < len(MAGIC) + 4:
            raise FormatError("Truncated model: header tag without a schema version")
        version = int(np.frombuffer(buf, dtype="<u4", count=1, offset=len(MAGIC))[0])
        if version != SCHEMA_VERSION:
            raise FormatError(f"Unsupported model schema version {version} (expected {SCHEMA_VERSION})")
        offset = len(MAGIC) + 4

    blocks = []
    for name in _BLOCK_NAMES:
        matrix, offset = _decode_block(buf, offset, name)
        blocks.append(matrix)

    if offset != len(buf):
        raise FormatError(f"Corrupt model: {len(buf) - offset} unexpected trailing byte(s) after block V")

    U, S, V = blocks
    return FactorTriple(U=U, S=S, V=V)


def save_factors(factors: FactorTriple, destination: Path, *, header: bool = False) -> Path:
    """Write U, S, V to `destination`; absent factors become 0x0 blocks."""
    destination = Path(destination)
    payload = encode_factors(factors, header=header)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("wb") as f:
            f.write(payload)
    except OSError as exc:
        raise ModelIOError(f"Could not write model to {destination}: {exc}") from exc

    logger.info("Wrote U, S, V (%d bytes) to %s", len(payload), destination)
    return destination


def load_factors(source: Path) -> FactorTriple:
    """Read a model written by `save_factors` (with or without header)."""
    source = Path(source)
    try:
        with source.open("rb") as f:
            payload = f.read()
    except OSError as exc:
        raise ModelIOError(f"Could not read model from {source}: {exc}") from exc

    factors = decode_factors(payload)
    logger.info(
        "Loaded model %s: U=%s S=%s V=%s",
        source,
        factors.U.shape if factors.U is not None else None,
        factors.S.shape if factors.S is not None else None,
        factors.V.shape if factors.V is not None else None,
    )
    return factors


def meta_path_for(model_path: Path) -> Path:
    model_path = Path(model_path)
    return model_path.with_name(model_path.name + ".meta.json")


def write_model_meta(model_path: Path, meta: dict[str, Any]) -> Path:
    path = meta_path_for(model_path)
    try:
        path.write_text(json.dumps(meta, indent=2, sort_keys=True) + "\n")
    except OSError as exc:
        raise ModelIOError(f"Could not write model metadata to {path}: {exc}") from exc
    return path


def read_model_meta(model_path: Path) -> Optional[dict[str, Any]]:
    """Return the JSON sidecar for `model_path`, or None if there is none."""
    path = meta_path_for(model_path)
    if not path.exists():
        return None
    try:
        obj = json.loads(path.read_text())
    except (OSError, ValueError) as exc:
        raise ModelIOError(f"Could not read model metadata from {path}: {exc}") from exc
    if not isinstance(obj, dict):
        raise FormatError(f"Expected JSON object at {path}, got {type(obj)}")
    return obj
