from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InputError


logger = logging.getLogger(__name__)

COLUMNS: Tuple[str, str, str] = ("user_index", "item_index", "rating")
SUPPORTED_DELIMITERS: Tuple[str, ...] = (",", "\t")


@dataclass(frozen=True)
class RatingTriple:
    user_index: int
    item_index: int
    rating: float


@dataclass(frozen=True, eq=False)
class RatingRecords:
    """Parsed rating observations kept as parallel arrays in input order."""

    user_index: np.ndarray
    item_index: np.ndarray
    rating: np.ndarray

    def __post_init__(self) -> None:
        n = len(self.user_index)
        if len(self.item_index) != n or len(self.rating) != n:
            raise ValueError(
                f"column length mismatch: users={n} items={len(self.item_index)} ratings={len(self.rating)}"
            )

    def __len__(self) -> int:
        return int(len(self.user_index))

    def __iter__(self) -> Iterator[RatingTriple]:
        for u, i, r in zip(self.user_index.tolist(), self.item_index.tolist(), self.rating.tolist()):
            yield RatingTriple(user_index=int(u), item_index=int(i), rating=float(r))

    @classmethod
    def empty(cls) -> "RatingRecords":
        return cls(
            user_index=np.empty(0, dtype=np.int64),
            item_index=np.empty(0, dtype=np.int64),
            rating=np.empty(0, dtype=np.float64),
        )

    @classmethod
    def from_triples(cls, triples: Iterable[Union[RatingTriple, Tuple[int, int, float]]]) -> "RatingRecords":
        users: list[int] = []
        items: list[int] = []
        ratings: list[float] = []
        for t in triples:
            if isinstance(t, RatingTriple):
                u, i, r = t.user_index, t.item_index, t.rating
            else:
                u, i, r = t
            users.append(int(u))
            items.append(int(i))
            ratings.append(float(r))
        return cls(
            user_index=np.asarray(users, dtype=np.int64),
            item_index=np.asarray(items, dtype=np.int64),
            rating=np.asarray(ratings, dtype=np.float64),
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "RatingRecords":
        missing = [c for c in COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"ratings frame missing columns: {missing}")
        return cls(
            user_index=df["user_index"].to_numpy(dtype=np.int64),
            item_index=df["item_index"].to_numpy(dtype=np.int64),
            rating=df["rating"].to_numpy(dtype=np.float64),
        )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"user_index": self.user_index, "item_index": self.item_index, "rating": self.rating}
        )


def detect_delimiter(first_line: str) -> str:
    """Tab when the line contains one, comma otherwise."""
    return "\t" if "\t" in first_line else ","


def parse_rating_lines(lines: list[str], *, delimiter: str, index_base: int = 0) -> tuple[RatingRecords, int]:
    """Parse delimited lines into records.

    Returns (records, skipped) where `skipped` counts lines that did not carry
    two integral indices and a numeric rating. Columns past the third are ignored.
    """
    if delimiter not in SUPPORTED_DELIMITERS:
        raise ValueError(f"Unsupported delimiter: {delimiter!r}")

    lines = [ln for ln in lines if ln.strip() != ""]
    if not lines:
        return RatingRecords.empty(), 0

    fields = pd.Series(lines, dtype="string").str.split(delimiter, n=3, expand=True)
    # Lines with fewer than three fields show up as missing cells.
    fields = fields.reindex(columns=range(3)).astype("string")
    fields.columns = list(COLUMNS)

    df = pd.DataFrame(
        {
            c: pd.to_numeric(fields[c].str.strip(), errors="coerce").to_numpy(dtype="float64", na_value=np.nan)
            for c in COLUMNS
        }
    )
    valid = np.isfinite(df).all(axis=1)
    valid &= (df["user_index"] % 1 == 0) & (df["item_index"] % 1 == 0)

    skipped = int((~valid).sum())
    df = df[valid]

    records = RatingRecords(
        user_index=df["user_index"].to_numpy(dtype=np.int64) - int(index_base),
        item_index=df["item_index"].to_numpy(dtype=np.int64) - int(index_base),
        rating=df["rating"].to_numpy(dtype=np.float64),
    )
    return records, skipped


def load_ratings(
    path: Path,
    *,
    delimiter: Optional[str] = None,
    has_header: bool = True,
    index_base: int = 0,
) -> RatingRecords:
    """Load `user_index, item_index, rating[, ...]` rows from a delimited file.

    Notes
    -----
    - The first line is a header and is always skipped when `has_header`.
    - Malformed lines are dropped (and counted in the log), never fatal.
    - `index_base=1` converts 1-indexed ids to the zero-based indices the
      matrix builder expects.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as exc:
        raise InputError(f"Ratings file not found: {path}") from exc
    except OSError as exc:
        raise InputError(f"Cannot read ratings file {path}: {exc}") from exc

    lines = text.splitlines()
    if has_header and lines:
        lines = lines[1:]

    if delimiter is None:
        first = next((ln for ln in lines if ln.strip()), "")
        delimiter = detect_delimiter(first)

    records, skipped = parse_rating_lines(lines, delimiter=delimiter, index_base=index_base)
    if skipped:
        logger.info("Skipped %d malformed line(s) in %s", skipped, path)
    logger.info("Loaded %d rating triples from %s", len(records), path)
    return records


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    try:
        with Path(path).open("rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                h.update(chunk)
    except OSError as exc:
        raise InputError(f"Cannot hash ratings file {path}: {exc}") from exc
    return h.hexdigest()
