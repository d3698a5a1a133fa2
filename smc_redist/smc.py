from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import networkx as nx
import numpy as np
from loguru import logger

from .config import DEFAULT_ADAPT_K_THRESH, DEFAULT_COMPACTNESS, DEFAULT_POPCONS
from .constraints import ConstraintBundle, ConstraintsLike, normalize_constraints, validate_counties
from .errors import ConfigError
from .metrics import adjacency_list, max_dev
from .resample import resample_plans
from .sampler import PartitionSampler, SamplerConfig, TreeSplitSampler, Verbosity
from .weights import ConstraintFn, TruncFn, compute_weights


@dataclass(frozen=True, eq=False)
class RedistResult:
    adj_list: tuple[tuple[int, ...], ...]
    plans: np.ndarray  # (V, N)
    wgt: np.ndarray
    orig_wgt: np.ndarray
    nsims: int
    n_eff: float
    pct_dist_parity: float
    compactness: float
    constraints: ConstraintBundle
    maxdev: np.ndarray
    popvec: np.ndarray
    counties: Optional[np.ndarray]
    adapt_k_thresh: float
    seq_alpha: float
    algorithm: str = "smc"

    def __post_init__(self):
        object.__setattr__(self, "adj_list", tuple(tuple(nbrs) for nbrs in self.adj_list))
        for name in ("plans", "wgt", "orig_wgt", "maxdev", "popvec", "counties"):
            arr = getattr(self, name)
            if arr is not None:
                arr = np.array(arr)
                arr.setflags(write=False)
                object.__setattr__(self, name, arr)


def _check_params(nsims, ndists, n_units, popcons, compactness, adapt_k_thresh, seq_alpha) -> None:
    if popcons <= 0:
        raise ConfigError("Population constraint must be positive")
    if compactness < 0:
        raise ConfigError("Compactness parameter must be non-negative")
    if adapt_k_thresh < 0 or adapt_k_thresh > 1:
        raise ConfigError("`adapt_k_thresh` parameter must lie in [0, 1].")
    if seq_alpha <= 0 or seq_alpha > 1:
        raise ConfigError("`seq_alpha` parameter must lie in (0, 1].")
    if nsims < 1:
        raise ConfigError("`nsims` must be positive.")
    if ndists < 1 or ndists > n_units:
        raise ConfigError(f"`ndists` must lie in [1, {n_units}], got {ndists}.")


def run_smc(
    graph: nx.Graph,
    popvec: Sequence[float],
    nsims: int,
    ndists: int,
    counties: Optional[Sequence[int]] = None,
    popcons: float = DEFAULT_POPCONS,
    compactness: float = DEFAULT_COMPACTNESS,
    constraints: ConstraintsLike = None,
    resample: bool = True,
    constraint_fn: Optional[ConstraintFn] = None,
    adapt_k_thresh: float = DEFAULT_ADAPT_K_THRESH,
    seq_alpha: Optional[float] = None,
    truncate: Optional[bool] = None,
    trunc_fn: Optional[TruncFn] = None,
    verbose: bool = True,
    silent: bool = False,
    sampler: Optional[PartitionSampler] = None,
    seed: Optional[int] = None,
) -> RedistResult:
    """
    Sample an ensemble of redistricting plans and calibrate its weights.

    The partition sampler draws `nsims` plans together with their
    log-selection-probabilities; these are turned into importance weights
    (optionally truncated), and unless `resample` is False the ensemble is
    resampled so that every returned plan carries weight 1/nsims.

    Defaults follow the SMC sampler: `seq_alpha = 0.1 + 0.2 * compactness` and
    weights are truncated whenever `compactness != 1`. `counties` must be
    integer labels running from 1 to the number of counties. Units are graph
    nodes in iteration order; `popvec` must follow the same order.
    """
    if graph is None:
        raise ConfigError("Please supply an adjacency graph")
    if popvec is None:
        raise ConfigError("Please supply vector of geographic unit populations")
    if nsims is None:
        raise ConfigError("Please supply number of simulations to run algorithm")
    if ndists is None:
        raise ConfigError("Please supply the number of districts")

    popvec = np.asarray(popvec, dtype=float)
    n_units = popvec.size
    if graph.number_of_nodes() != n_units:
        raise ConfigError(
            f"Graph has {graph.number_of_nodes()} nodes but the population vector has {n_units} entries."
        )

    if seq_alpha is None:
        seq_alpha = 0.1 + 0.2 * compactness
    if truncate is None:
        truncate = compactness != 1
    _check_params(nsims, ndists, n_units, popcons, compactness, adapt_k_thresh, seq_alpha)

    counties = validate_counties(counties, n_units)
    bundle = normalize_constraints(constraints, n_units)
    verbosity = Verbosity.from_flags(verbose, silent)

    rng = np.random.default_rng(seed)
    sampler = sampler or TreeSplitSampler()
    config = SamplerConfig(
        graph=graph,
        popvec=popvec,
        counties=counties,
        ndists=int(ndists),
        popcons=float(popcons),
        compactness=float(compactness),
        constraints=bundle,
        nsims=int(nsims),
        adapt_k_thresh=float(adapt_k_thresh),
        seq_alpha=float(seq_alpha),
        verbosity=verbosity,
        seed=int(rng.integers(2**32)),
    )
    out = sampler.sample(config)
    plans = np.asarray(out.plans, dtype=int)

    weights = compute_weights(out.lp, plans, constraint_fn=constraint_fn, truncate=truncate, trunc_fn=trunc_fn)
    if verbosity >= Verbosity.MINIMAL:
        logger.info(f"[smc] n_eff={weights.n_eff:.1f} ({weights.efficiency:.1%} efficiency)")

    plans, wgt = resample_plans(plans, weights.wgt, resample, rng)

    return RedistResult(
        adj_list=adjacency_list(graph),
        plans=plans,
        wgt=wgt,
        orig_wgt=weights.orig_wgt,
        nsims=int(nsims),
        n_eff=weights.n_eff,
        pct_dist_parity=float(popcons),
        compactness=float(compactness),
        constraints=bundle,
        maxdev=max_dev(plans, popvec, ndists),
        popvec=popvec,
        counties=None if counties.max() == 1 else counties,
        adapt_k_thresh=float(adapt_k_thresh),
        seq_alpha=float(seq_alpha),
    )
