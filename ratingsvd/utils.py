from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass

import numpy as np
import torch


@dataclass(frozen=True)
class ReproducibilityConfig:
    seed: int = 42
    deterministic: bool = True


def setup_logging(level: int | str = "INFO") -> None:
    """Configure stdlib logging with a consistent, project-wide format."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        # Avoid duplicate handlers if called multiple times (e.g., tests + CLI).
        root_logger.setLevel(level)
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def set_global_seed(cfg: ReproducibilityConfig) -> None:
    """Seed python, numpy and torch RNGs.

    ARPACK start vectors and randomized SVD take their own `random_state`;
    this covers everything else (torch kernels, ad-hoc sampling).
    """
    random.seed(cfg.seed)
    np.random.seed(cfg.seed)

    torch.manual_seed(cfg.seed)
    if cfg.deterministic:
        torch.use_deterministic_algorithms(True, warn_only=True)

    os.environ["PYTHONHASHSEED"] = str(cfg.seed)


_RANK_ENV_VARS = ("RANK", "OMPI_COMM_WORLD_RANK", "PMI_RANK", "SLURM_PROCID")


def worker_rank() -> int:
    """Rank of this process under mpirun/torchrun/srun; 0 when launched alone."""
    for name in _RANK_ENV_VARS:
        raw = os.getenv(name)
        if raw is not None and str(raw).strip() != "":
            return int(raw)
    return 0


def is_leader() -> bool:
    return worker_rank() == 0
