"""Command-line entry point.

- ``build``: ratings file + dimensions + rank -> persisted (U, S, V), and
  optionally sample predictions for one user
- ``predict``: persisted model -> predictions for one user
"""
from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .config import PipelineConfig, load_config, parse_delimiter
from .errors import ConfigError, RatingPipelineError
from .factorize import Factorizer, make_factorizer
from .matrix import FactorTriple
from .paths import get_repo_root, resolve_path
from .persistence import load_factors, read_model_meta
from .pipelines.build_model import run_build
from .reconstruct import Reconstructor
from .utils import ReproducibilityConfig, is_leader, set_global_seed, setup_logging, worker_rank


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Low-rank SVD rating reconstruction")
    p.add_argument("--config", type=Path, default=None, help="Path to config YAML (default: <repo>/config.yaml)")
    p.add_argument("--log-level", type=str, default=None, help="DEBUG/INFO/WARNING")
    sub = p.add_subparsers(dest="command", required=True)

    b = sub.add_parser("build", help="Factorize a ratings file and write the model")
    b.add_argument("source", type=Path, help="Ratings file: user_index,item_index,rating[,...] with a header line")
    b.add_argument("num_users", type=int, help="Number of matrix rows")
    b.add_argument("num_items", type=int, help="Number of matrix columns")
    b.add_argument("rank", type=int, help="Number of latent factors k")
    b.add_argument("--out", type=Path, default=None, help="Model output path (default from config)")
    b.add_argument("--no-save", action="store_true", help="Do not persist the factors")
    b.add_argument("--backend", type=str, default=None, help="arpack / randomized / torch")
    b.add_argument("--delimiter", type=str, default=None, help="',' / 'tab' / 'auto' (default from config)")
    b.add_argument("--index-base", type=int, default=None, help="1 if the file uses 1-indexed ids")
    b.add_argument("--no-header", action="store_true", help="The file has no header line")
    b.add_argument("--write-header", action="store_true", help="Prefix the model with a tag + schema version")
    b.add_argument("--seed", type=int, default=None, help="Global random seed")
    b.add_argument("--predict-user", type=int, default=None, help="Print sample predictions for this user")
    b.add_argument("--top", type=int, default=10, help="How many items to print")

    q = sub.add_parser("predict", help="Print predictions from a saved model")
    q.add_argument("model", type=Path, help="Model file written by `build`")
    q.add_argument("--user", type=int, required=True, help="Zero-based user index")
    q.add_argument("--items", type=int, nargs="*", default=None, help="Item indices (default: first --top items)")
    q.add_argument("--top", type=int, default=10, help="How many items to print when --items is not given")
    return p


def _print_predictions(factors: FactorTriple, user: int, items: Optional[Sequence[int]], top: int) -> None:
    rec = Reconstructor(factors)
    if items:
        item_idx = np.asarray(list(items), dtype=np.int64)
        scores = rec.predict_cells(np.full(len(item_idx), int(user)), item_idx)
    else:
        item_idx = np.arange(min(int(top), rec.num_items), dtype=np.int64)
        scores = rec.predict_row(int(user))[item_idx]

    print(f"\n=== Predictions for user {int(user)} ===")
    df = pd.DataFrame({"item_index": item_idx, "predicted_rating": scores})
    print(df.to_string(index=False, float_format=lambda x: f"{x:.2f}"))


def _cmd_build(args: argparse.Namespace, cfg: PipelineConfig, factorizer: Factorizer, repo_root: Path) -> None:
    set_global_seed(ReproducibilityConfig(seed=cfg.seed, deterministic=True))

    out_path: Optional[Path] = None
    if not args.no_save:
        out_path = resolve_path(repo_root, args.out if args.out is not None else cfg.model_path)

    result = run_build(
        args.source,
        args.num_users,
        args.num_items,
        args.rank,
        out_path=out_path,
        factorizer=factorizer,
        delimiter=cfg.delimiter,
        has_header=cfg.has_header,
        index_base=cfg.index_base,
        write_header=cfg.write_header,
    )
    if result.model_path is not None:
        print(f"Wrote U, S, V to '{result.model_path}'.")
    if args.predict_user is not None:
        _print_predictions(result.factors, args.predict_user, None, args.top)


def _cmd_predict(args: argparse.Namespace) -> None:
    factors = load_factors(args.model)
    meta = read_model_meta(args.model)
    if meta:
        logger.info(
            "Model built %s from %s (k=%s backend=%s)",
            meta.get("built_at_utc"),
            meta.get("source", {}).get("path"),
            meta.get("rank"),
            meta.get("backend"),
        )
    _print_predictions(factors, args.user, args.items, args.top)


def _resolve_config(args: argparse.Namespace, repo_root: Path) -> tuple[PipelineConfig, Optional[Factorizer]]:
    """YAML config with command-line overrides, plus the factorizer for `build`."""
    config_path = args.config if args.config is not None else repo_root / "config.yaml"
    if args.config is not None and not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")

    cfg = load_config(config_path)
    if args.command != "build":
        return cfg, None

    if args.delimiter is not None:
        # 'auto' clears a delimiter set in the config.
        cfg = dataclasses.replace(cfg, delimiter=parse_delimiter(args.delimiter))
    if args.backend is not None and args.backend != cfg.backend:
        # Options in the config belong to the configured backend.
        cfg = cfg.with_overrides(backend_options={})
    cfg = cfg.with_overrides(
        backend=args.backend,
        index_base=args.index_base,
        seed=args.seed,
        has_header=(False if args.no_header else None),
        write_header=(True if args.write_header else None),
    )
    return cfg, make_factorizer(cfg.backend, **cfg.backend_options)


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    repo_root = get_repo_root()

    try:
        cfg, factorizer = _resolve_config(args, repo_root)
    except ValueError as exc:
        setup_logging(args.log_level or "INFO")
        logger.error("config stage failed: %s", exc)
        return 1
    setup_logging(args.log_level or cfg.log_level)

    # Under a multi-process launcher only the leader runs the pipeline.
    if not is_leader():
        logger.info("Worker rank=%d is idle; rank 0 runs the pipeline", worker_rank())
        return 0

    if args.command == "build":
        assert factorizer is not None
        try:
            _cmd_build(args, cfg, factorizer, repo_root)
        except RatingPipelineError as exc:
            logger.error("%s stage failed: %s", exc.stage, exc)
            return 1
        except IndexError as exc:
            logger.error("predict stage failed: %s", exc)
            return 1
        return 0

    try:
        _cmd_predict(args)
    except (RatingPipelineError, IndexError) as exc:
        logger.error("predict stage failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
