from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from loguru import logger
from scipy.special import logsumexp

from .config import DEFAULT_TRUNC_POWER, DEFAULT_TRUNC_SCALE, EFFICIENCY_WARN_RATIO
from .errors import ConfigError, DegeneracyWarning

ConstraintFn = Callable[[np.ndarray], np.ndarray]
TruncFn = Callable[[np.ndarray], np.ndarray]


@dataclass(frozen=True, eq=False)
class ImportanceWeights:
    lr: np.ndarray  # log ratio, -lp + constraint_fn(plans)
    orig_wgt: np.ndarray  # mean 1, before truncation
    wgt: np.ndarray  # sums to 1
    n_eff: float  # on the final (truncated) weights
    n_eff_orig: float  # on orig_wgt

    @property
    def efficiency(self) -> float:
        return self.n_eff / self.wgt.size


def no_constraint(plans: np.ndarray) -> np.ndarray:
    """Default scoring hook: no extra log-weight for any plan."""
    return np.zeros(plans.shape[1], dtype=float)


def truncate_weights(wgt: np.ndarray) -> np.ndarray:
    """Default truncation hook: clip every weight at 0.01 * N^0.4."""
    wgt = np.asarray(wgt, dtype=float)
    return np.minimum(wgt, DEFAULT_TRUNC_SCALE * wgt.size ** DEFAULT_TRUNC_POWER)


def effective_sample_size(wgt: np.ndarray) -> float:
    """N * mean(w)^2 / mean(w^2); invariant to rescaling of w."""
    wgt = np.asarray(wgt, dtype=float)
    return float(wgt.size * np.mean(wgt) ** 2 / np.mean(wgt**2))


def _log_ratio(lp: np.ndarray, plans: np.ndarray, constraint_fn: ConstraintFn) -> np.ndarray:
    score = np.asarray(constraint_fn(plans), dtype=float)
    if score.shape != lp.shape:
        raise ConfigError(f"constraint_fn returned shape {score.shape}; expected {lp.shape}.")
    if np.isnan(score).any() or np.isposinf(score).any():
        raise ConfigError("constraint_fn returned NaN or +inf log-weights.")

    lr = -lp + score
    if np.isnan(lr).any() or np.isposinf(lr).any():
        raise ConfigError("Log-ratios are NaN or +inf; check the sampler log-probabilities.")
    if not np.isfinite(lr).any():
        raise ConfigError("Every plan has zero weight (all log-weights are -inf).")
    return lr


def _mean_one_weights(lr: np.ndarray) -> np.ndarray:
    """exp(lr) rescaled to mean 1, computed in log space."""
    log_mean = logsumexp(lr) - np.log(lr.size)
    # exp(-inf) == 0, so excluded plans drop out without any division
    return np.exp(lr - log_mean)


def compute_weights(
    lp: np.ndarray,
    plans: np.ndarray,
    constraint_fn: Optional[ConstraintFn] = None,
    truncate: bool = False,
    trunc_fn: Optional[TruncFn] = None,
) -> ImportanceWeights:
    """
    Turn sampler log-probabilities into normalized importance weights.

    Computes lr = -lp + constraint_fn(plans), rescales exp(lr) to mean 1 in
    log space (kept as `orig_wgt`), optionally applies `trunc_fn`, and
    normalizes to sum 1. Emits a DegeneracyWarning when the
    effective sample size is at most 5% of the ensemble.
    """
    lp = np.asarray(lp, dtype=float)
    plans = np.asarray(plans)
    if lp.ndim != 1 or lp.size < 1:
        raise ConfigError("Log-probabilities must be a non-empty vector.")
    if plans.ndim != 2 or plans.shape[1] != lp.size:
        raise ConfigError(f"Plan matrix has shape {plans.shape}; expected {lp.size} columns.")

    nsims = lp.size
    constraint_fn = constraint_fn or no_constraint
    trunc_fn = trunc_fn or truncate_weights

    lr = _log_ratio(lp, plans, constraint_fn)
    orig_wgt = _mean_one_weights(lr)
    wgt = orig_wgt

    if truncate:
        wgt = np.asarray(trunc_fn(orig_wgt.copy()), dtype=float)
        if wgt.shape != orig_wgt.shape:
            raise ConfigError(f"trunc_fn returned shape {wgt.shape}; expected {orig_wgt.shape}.")
        if not np.all(np.isfinite(wgt)) or (wgt < 0).any() or wgt.sum() <= 0:
            raise ConfigError("trunc_fn must return finite, non-negative weights with a positive sum.")

    n_eff = effective_sample_size(wgt)
    n_eff_orig = effective_sample_size(orig_wgt)
    wgt = wgt / wgt.sum()

    logger.debug(f"[weights] n_eff={n_eff:.1f} of {nsims} (before truncation: {n_eff_orig:.1f})")
    if n_eff / nsims <= EFFICIENCY_WARN_RATIO:
        msg = (
            f"Less than {EFFICIENCY_WARN_RATIO:.0%} efficiency (n_eff={n_eff:.1f} of {nsims}). "
            "Consider weakening constraints, truncating weights and/or adjusting `seq_alpha`."
        )
        logger.warning(msg)
        warnings.warn(msg, DegeneracyWarning, stacklevel=2)

    return ImportanceWeights(lr=lr, orig_wgt=orig_wgt, wgt=wgt, n_eff=n_eff, n_eff_orig=n_eff_orig)
