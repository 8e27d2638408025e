from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ConfigError


@dataclass(frozen=True)
class PipelineConfig:
    delimiter: Optional[str] = None
    has_header: bool = True
    index_base: int = 0
    backend: str = "arpack"
    backend_options: dict[str, Any] = field(default_factory=dict)
    model_path: str = "artifacts/svd/svd_results.dat"
    write_header: bool = False
    seed: int = 42
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        """Copy with every non-None override applied (CLI flags win over YAML)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)


_DELIMITER_ALIASES = {"tab": "\t", "\\t": "\t", "comma": ",", "auto": None}


def parse_delimiter(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    if text.lower() in _DELIMITER_ALIASES:
        return _DELIMITER_ALIASES[text.lower()]
    if text not in (",", "\t"):
        raise ConfigError(f"delimiter must be ',', 'tab' or 'auto', got {raw!r}")
    return text


def load_config(path: Optional[Path]) -> PipelineConfig:
    """Read the `svd:` section of a YAML config; a missing file yields defaults."""
    if path is None or not Path(path).exists():
        return PipelineConfig()

    obj = yaml.safe_load(Path(path).read_text())
    if obj is None:
        return PipelineConfig()
    if not isinstance(obj, dict):
        raise ConfigError(f"Expected config YAML to be a mapping, got: {type(obj)}")

    raw = obj.get("svd", {}) if isinstance(obj.get("svd"), dict) else {}
    defaults = PipelineConfig()
    backend_options = raw.get("backend_options", {}) or {}
    if not isinstance(backend_options, dict):
        raise ConfigError("svd.backend_options must be a mapping")

    return PipelineConfig(
        delimiter=parse_delimiter(raw.get("delimiter", defaults.delimiter)),
        has_header=bool(raw.get("has_header", defaults.has_header)),
        index_base=int(raw.get("index_base", defaults.index_base)),
        backend=str(raw.get("backend", defaults.backend)),
        backend_options=dict(backend_options),
        model_path=str(raw.get("model_path", defaults.model_path)),
        write_header=bool(raw.get("write_header", defaults.write_header)),
        seed=int(raw.get("seed", defaults.seed)),
        log_level=str(raw.get("log_level", defaults.log_level)),
    )
