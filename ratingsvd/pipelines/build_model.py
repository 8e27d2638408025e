"""One pipeline run: load triples -> dense matrix -> SVD -> persist (U, S, V)."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from ..data import file_sha256, load_ratings
from ..errors import RatingPipelineError
from ..factorize import Factorizer, factorize, make_factorizer
from ..matrix import FactorTriple, build_dense_matrix
from ..persistence import save_factors, write_model_meta


logger = logging.getLogger(__name__)


class PipelineReporter(Protocol):
    """Receives a callback at every pipeline checkpoint."""

    def stage_finished(self, stage: str, seconds: float, **details: Any) -> None:
        ...

    def stage_failed(self, stage: str, error: BaseException) -> None:
        ...


class LoggingReporter:
    """Logs stage durations and keeps them for the model metadata."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log if log is not None else logger
        self.timings: dict[str, float] = {}

    def stage_finished(self, stage: str, seconds: float, **details: Any) -> None:
        self.timings[stage] = float(seconds)
        extra = " ".join(f"{k}={v}" for k, v in details.items())
        self.log.info("%s took %.6f sec %s", stage, seconds, extra)

    def stage_failed(self, stage: str, error: BaseException) -> None:
        self.log.error("%s stage failed: %s", stage, error)


@contextmanager
def _stage(reporter: PipelineReporter, name: str) -> Iterator[dict[str, Any]]:
    details: dict[str, Any] = {}
    start = time.perf_counter()
    try:
        yield details
    except RatingPipelineError as exc:
        reporter.stage_failed(name, exc)
        raise
    reporter.stage_finished(name, time.perf_counter() - start, **details)


@dataclass(frozen=True)
class BuildResult:
    factors: FactorTriple
    num_records: int
    skipped_out_of_range: int
    model_path: Optional[Path] = None
    meta_path: Optional[Path] = None
    timings: dict[str, float] = field(default_factory=dict)


def run_build(
    source_path: Path,
    num_users: int,
    num_items: int,
    rank: int,
    *,
    out_path: Optional[Path] = None,
    factorizer: Optional[Factorizer] = None,
    reporter: Optional[PipelineReporter] = None,
    delimiter: Optional[str] = None,
    has_header: bool = True,
    index_base: int = 0,
    write_header: bool = False,
) -> BuildResult:
    """Run the pipeline once; any stage failure aborts the run.

    When `out_path` is None the factors are returned without being persisted.
    """
    reporter = reporter if reporter is not None else LoggingReporter()
    factorizer = factorizer if factorizer is not None else make_factorizer("arpack")
    source_path = Path(source_path)
    total_start = time.perf_counter()

    logger.info(
        "Reading %s, building %dx%d matrix, k=%d", source_path, int(num_users), int(num_items), int(rank)
    )

    with _stage(reporter, "load") as details:
        records = load_ratings(source_path, delimiter=delimiter, has_header=has_header, index_base=index_base)
        source_sha256 = file_sha256(source_path) if out_path is not None else None
        details["records"] = len(records)

    with _stage(reporter, "build") as details:
        matrix = build_dense_matrix(records, num_users, num_items)
        details["shape"] = f"{matrix.rows}x{matrix.cols}"
        details["skipped"] = matrix.skipped

    with _stage(reporter, "factorize") as details:
        factors = factorize(matrix, rank, factorizer)
        details["backend"] = getattr(factorizer, "name", type(factorizer).__name__)
        details["k"] = factors.rank

    skipped = matrix.skipped
    shape = matrix.shape
    # The dense matrix is not needed past factorization.
    del matrix

    model_path: Optional[Path] = None
    meta_path: Optional[Path] = None
    if out_path is not None:
        with _stage(reporter, "persist") as details:
            model_path = save_factors(factors, Path(out_path), header=write_header)
            details["path"] = model_path

    timings = dict(getattr(reporter, "timings", {}))
    timings["total"] = time.perf_counter() - total_start

    if model_path is not None:
        meta = {
            "built_at_utc": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "source": {"path": str(source_path), "sha256": source_sha256},
            "num_users": int(shape[0]),
            "num_items": int(shape[1]),
            "rank": int(factors.rank),
            "backend": getattr(factorizer, "name", type(factorizer).__name__),
            "num_records": len(records),
            "skipped_out_of_range": int(skipped),
            "format": {"header": bool(write_header)},
            "timings_sec": timings,
        }
        meta_path = write_model_meta(model_path, meta)

    logger.info("Total program time: %.6f sec.", timings["total"])
    return BuildResult(
        factors=factors,
        num_records=len(records),
        skipped_out_of_range=int(skipped),
        model_path=model_path,
        meta_path=meta_path,
        timings=timings,
    )
