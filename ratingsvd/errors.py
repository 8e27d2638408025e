"""Exception hierarchy shared by every pipeline stage."""

from __future__ import annotations


class RatingPipelineError(Exception):
    """Base class; `stage` names the pipeline step that failed."""

    stage = "pipeline"


class InputError(RatingPipelineError):
    """The ratings source is missing or unreadable."""

    stage = "load"


class DimensionError(RatingPipelineError, ValueError):
    """Matrix dimensions are non-positive or disagree with existing factors."""

    stage = "build"


class FactorizationError(RatingPipelineError):
    """The external SVD routine rejected its input or failed to produce factors."""

    stage = "factorize"


class ModelIOError(RatingPipelineError, OSError):
    """Reading or writing a persisted model failed at the filesystem level."""

    stage = "persist"


class FormatError(RatingPipelineError, ValueError):
    """A persisted model is corrupt, truncated or of an unknown schema version."""

    stage = "persist"


class ConfigError(RatingPipelineError, ValueError):
    """A config value or command-line option is invalid."""

    stage = "config"
