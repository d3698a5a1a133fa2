from __future__ import annotations

import random
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Protocol

import networkx as nx
import numpy as np
from loguru import logger
from tqdm import tqdm

from gerrychain import Graph
from gerrychain.tree import recursive_tree_part

from .config import DEFAULT_POP_COL
from .constraints import ConstraintBundle
from .errors import SamplerError
from .metrics import county_splits, log_spanning_trees


class Verbosity(IntEnum):
    SILENT = 0
    MINIMAL = 1
    VERBOSE = 3

    @classmethod
    def from_flags(cls, verbose: bool, silent: bool) -> "Verbosity":
        if silent:
            return cls.SILENT
        return cls.VERBOSE if verbose else cls.MINIMAL


@dataclass(frozen=True, eq=False)
class SamplerConfig:
    graph: nx.Graph
    popvec: np.ndarray
    counties: np.ndarray
    ndists: int
    popcons: float
    compactness: float
    constraints: ConstraintBundle
    nsims: int
    adapt_k_thresh: float
    seq_alpha: float
    verbosity: Verbosity = Verbosity.MINIMAL
    seed: Optional[int] = None

    @property
    def n_units(self) -> int:
        return int(self.popvec.shape[0])


@dataclass(frozen=True, eq=False)
class SamplerOutput:
    plans: np.ndarray  # (V, N), labels 1..ndists
    lp: np.ndarray  # (N,)


class PartitionSampler(Protocol):
    """
    Generates a full ensemble in one blocking call.

    Every returned plan must be contiguous, within `popcons` of the target
    district population, and split at most ndists - 1 counties when county
    labels are given. lp[i] is the log-probability the sampler assigned to
    plans[:, i] relative to its target measure; the weight engine uses -lp.
    """

    def sample(self, config: SamplerConfig) -> SamplerOutput:
        ...


class TreeSplitSampler:
    """
    Independent plans from recursive spanning-tree splitting (gerrychain).

    Each plan is drawn with `recursive_tree_part`, whose proposal is roughly
    proportional to the product of the districts' spanning-tree counts. The
    reported log-probability is therefore (1 - compactness) * sum_d log tau(d),
    so that -lp reweights towards a target proportional to tau^compactness.
    With compactness == 1 every lp is 0.

    Soft constraints are not scored here; pass them as a constraint_fn instead.
    """

    def __init__(self, pop_col: str = DEFAULT_POP_COL, node_repeats: int = 1, max_county_attempts: int = 100):
        self.pop_col = pop_col
        self.node_repeats = node_repeats
        self.max_county_attempts = max_county_attempts

    def _prepare_graph(self, config: SamplerConfig) -> Graph:
        graph = Graph.from_networkx(config.graph)
        for n, pop in zip(graph.nodes, config.popvec):
            graph.nodes[n][self.pop_col] = float(pop)
        return graph

    def _draw(self, graph: Graph, config: SamplerConfig, pop_target: float, check_counties: bool) -> dict:
        attempts = self.max_county_attempts if check_counties else 1
        for _ in range(attempts):
            assignment = recursive_tree_part(
                graph,
                range(1, config.ndists + 1),
                pop_target,
                self.pop_col,
                config.popcons,
                self.node_repeats,
            )
            if not check_counties:
                return assignment
            plan = np.array([assignment[n] for n in graph.nodes], dtype=int)
            if county_splits(plan, config.counties) <= config.ndists - 1:
                return assignment
        raise SamplerError(
            f"No plan splitting at most {config.ndists - 1} counties after {attempts} attempts."
        )

    def _log_prob(self, graph: Graph, plan: np.ndarray, config: SamplerConfig, nodes: list) -> float:
        if config.compactness == 1:
            return 0.0
        log_tau = 0.0
        for d in range(1, config.ndists + 1):
            members = [nodes[i] for i in np.flatnonzero(plan == d)]
            log_tau += log_spanning_trees(graph.subgraph(members))
        return (1.0 - config.compactness) * log_tau

    def sample(self, config: SamplerConfig) -> SamplerOutput:
        active = {k: s for k, s in config.constraints.strengths().items() if s > 0}
        if active:
            raise SamplerError(
                f"TreeSplitSampler does not score soft constraints (got strengths {active}); "
                "express them through constraint_fn instead."
            )

        # recursive_tree_part draws from the global random module
        if config.seed is not None:
            random.seed(config.seed)

        graph = self._prepare_graph(config)
        nodes = list(graph.nodes)
        pop_target = float(config.popvec.sum()) / config.ndists
        check_counties = int(config.counties.max()) > 1

        if config.verbosity >= Verbosity.MINIMAL:
            logger.info(
                f"[smc] sampling {config.nsims} plans: {config.n_units} units, {config.ndists} districts, "
                f"popcons={config.popcons}, compactness={config.compactness}"
            )

        plans = np.zeros((config.n_units, config.nsims), dtype=int)
        lp = np.zeros(config.nsims, dtype=float)
        for i in tqdm(range(config.nsims), desc="plans", disable=config.verbosity < Verbosity.VERBOSE):
            assignment = self._draw(graph, config, pop_target, check_counties)
            plans[:, i] = [assignment[n] for n in nodes]
            lp[i] = self._log_prob(graph, plans[:, i], config, nodes)

        if config.verbosity >= Verbosity.MINIMAL:
            logger.info(f"[smc] sampled {config.nsims} plans")
        return SamplerOutput(plans=plans, lp=lp)
