from __future__ import annotations

import pytest

from ratingsvd.config import PipelineConfig, load_config


def test_missing_config_gives_defaults(tmp_path) -> None:
    cfg = load_config(tmp_path / "config.yaml")

    assert cfg == PipelineConfig()
    assert cfg.backend == "arpack"
    assert cfg.delimiter is None


def test_yaml_section_and_overrides(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "svd:\n"
        "  delimiter: tab\n"
        "  index_base: 1\n"
        "  backend: randomized\n"
        "  backend_options:\n"
        "    n_iter: 7\n"
        "  write_header: true\n"
    )

    cfg = load_config(path)
    assert cfg.delimiter == "\t"
    assert cfg.index_base == 1
    assert cfg.backend_options == {"n_iter": 7}
    assert cfg.write_header is True

    overridden = cfg.with_overrides(backend="torch", seed=None)
    assert overridden.backend == "torch"
    assert overridden.seed == cfg.seed


def test_invalid_delimiter_rejected(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("svd:\n  delimiter: ';'\n")

    with pytest.raises(ValueError):
        load_config(path)
