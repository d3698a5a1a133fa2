from __future__ import annotations


class ConfigError(ValueError):
    """Invalid or missing input to the sampling pipeline. Always fatal."""


class DegeneracyWarning(UserWarning):
    """Importance weights are too concentrated to trust the ensemble as-is."""


class SamplerError(RuntimeError):
    """Raised by partition samplers. Propagated unmodified by the pipeline."""
