from __future__ import annotations

import numpy as np
from scipy.stats import norm

from .errors import ConfigError


def is_ci(x, wgt, conf: float = 0.99) -> np.ndarray:
    """
    Normal-approximation confidence interval for an importance sampling estimate.

    Weights are normalized automatically. The spread uses squared weights,
    sig = sqrt(sum((x - mu)^2 * w^2)); with uniform weights this is the
    standard error of the sample mean up to the N vs N-1 denominator.

    Returns [lower, upper].
    """
    x = np.asarray(x, dtype=float)
    wgt = np.asarray(wgt, dtype=float)
    if not 0 < conf < 1:
        raise ConfigError(f"conf must lie in (0, 1), got {conf}")
    if x.shape != wgt.shape or x.ndim != 1:
        raise ConfigError(f"x and wgt must be vectors of equal length, got {x.shape} and {wgt.shape}")
    if (wgt < 0).any() or wgt.sum() <= 0:
        raise ConfigError("Weights must be non-negative with a positive sum.")

    wgt = wgt / wgt.sum()
    mu = np.sum(x * wgt)
    # TODO: confirm squared weights against the SMC variance estimator before switching to w
    sig = np.sqrt(np.sum((x - mu) ** 2 * wgt**2))
    return mu + norm.ppf([(1 - conf) / 2, 1 - (1 - conf) / 2]) * sig
