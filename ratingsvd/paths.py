from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ProjectPaths:
    artifacts_dir: Path
    model_dir: Path

    @classmethod
    def from_repo_root(cls, repo_root: Path, *, artifacts_dir: Path | str = "artifacts") -> "ProjectPaths":
        artifacts_dir_p = resolve_path(repo_root, artifacts_dir)
        return cls(artifacts_dir=artifacts_dir_p, model_dir=artifacts_dir_p / "svd")

    @property
    def default_model_path(self) -> Path:
        return self.model_dir / "svd_results.dat"


def get_repo_root() -> Path:
    """Return repo root by searching upwards for `config.yaml` or `.git`.

    Falls back to the current directory when neither marker is found, so the
    CLI also works from an arbitrary data directory.
    """
    start = Path.cwd().resolve()
    for candidate in (start, *start.parents):
        if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
            return candidate
    return start


def resolve_path(repo_root: Path, path: Path | str) -> Path:
    p = Path(path)
    if p.is_absolute():
        return p
    return (repo_root / p).resolve()
