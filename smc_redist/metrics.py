from __future__ import annotations

import networkx as nx
import numpy as np


def max_dev(plans: np.ndarray, popvec: np.ndarray, ndists: int) -> np.ndarray:
    """
    Maximum population deviation of each plan.

    For every plan column, the largest |pop_d / target - 1| over districts d,
    where target = total population / ndists.
    """
    plans = np.asarray(plans, dtype=int)
    popvec = np.asarray(popvec, dtype=float)
    target = popvec.sum() / ndists

    n_plans = plans.shape[1]
    dist_pop = np.zeros((ndists, n_plans), dtype=float)
    cols = np.broadcast_to(np.arange(n_plans), plans.shape)
    np.add.at(dist_pop, (plans - 1, cols), popvec[:, None])

    return np.abs(dist_pop / target - 1.0).max(axis=0)


def adjacency_list(graph: nx.Graph) -> list[list[int]]:
    """Neighbours of each node, as positions in graph node order."""
    nodes = list(graph.nodes)
    pos = {n: i for i, n in enumerate(nodes)}
    return [sorted(pos[m] for m in graph.neighbors(n)) for n in nodes]


def log_spanning_trees(graph: nx.Graph) -> float:
    """log of the number of spanning trees (Kirchhoff's matrix-tree theorem)."""
    n = graph.number_of_nodes()
    if n <= 1:
        return 0.0
    lap = nx.laplacian_matrix(graph, nodelist=list(graph.nodes)).toarray().astype(float)
    sign, logdet = np.linalg.slogdet(lap[1:, 1:])
    if sign <= 0:
        return -np.inf  # disconnected
    return float(logdet)


def county_splits(plan: np.ndarray, counties: np.ndarray) -> int:
    """Number of counties whose units are assigned to more than one district."""
    pairs = np.unique(np.stack([counties, plan]), axis=1)
    _, n_dists_per_county = np.unique(pairs[0], return_counts=True)
    return int((n_dists_per_county > 1).sum())
