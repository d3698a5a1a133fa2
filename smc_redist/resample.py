from __future__ import annotations

import numpy as np


def resample_plans(
    plans: np.ndarray,
    wgt: np.ndarray,
    resample: bool,
    rng: np.random.Generator,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Multinomial resampling of plan columns.

    Draws N column indices with replacement, with probabilities `wgt`, and
    returns the selected columns with uniform 1/N weights. When `resample` is
    False the plans and weights are returned unchanged.
    """
    if not resample:
        return plans, wgt

    nsims = wgt.size
    idx = rng.choice(nsims, size=nsims, replace=True, p=wgt)
    return plans[:, idx], np.full(nsims, 1.0 / nsims)
