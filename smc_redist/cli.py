from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from loguru import logger

from .config import (
    DEFAULT_ADAPT_K_THRESH,
    DEFAULT_COMPACTNESS,
    DEFAULT_POP_COL,
    DEFAULT_POPCONS,
    DEFAULT_SEED,
    ENSEMBLES_DIR,
    GRAPHS_DIR,
)
from .intervals import is_ci
from .io_export import export_result, load_graph, read_table
from .sampler import TreeSplitSampler
from .smc import run_smc


@dataclass
class RunConfig:
    graph: Path
    out_dir: Path
    ensemble_id: str

    pop_col: str
    county_col: Optional[str]
    ndists: int
    nsims: int
    popcons: float
    compactness: float
    resample: bool
    truncate: Optional[bool]
    adapt_k_thresh: float
    seq_alpha: Optional[float]
    seed: int

    verbose: bool
    silent: bool


def _county_labels(graph, county_col: str) -> np.ndarray:
    missing = [n for n in graph.nodes if county_col not in graph.nodes[n]]
    if missing:
        raise ValueError(f"{len(missing)} nodes lack county attribute {county_col!r}. Example: {missing[:10]}")
    codes, _ = pd.factorize(pd.Series([graph.nodes[n][county_col] for n in graph.nodes]), sort=True)
    return codes + 1


def _resolve_graph(graph: str) -> Path:
    """Paths that do not exist are looked up under GRAPHS_DIR."""
    path = Path(graph)
    if not path.exists() and (GRAPHS_DIR / path).exists():
        return GRAPHS_DIR / path
    return path


def sample_ensemble(cfg: RunConfig):
    graph = load_graph(cfg.graph)

    missing = [n for n in graph.nodes if cfg.pop_col not in graph.nodes[n]]
    if missing:
        raise ValueError(f"{len(missing)} nodes lack population attribute {cfg.pop_col!r}. Example: {missing[:10]}")
    popvec = np.array([graph.nodes[n][cfg.pop_col] for n in graph.nodes], dtype=float)
    counties = _county_labels(graph, cfg.county_col) if cfg.county_col else None

    result = run_smc(
        graph,
        popvec,
        nsims=cfg.nsims,
        ndists=cfg.ndists,
        counties=counties,
        popcons=cfg.popcons,
        compactness=cfg.compactness,
        resample=cfg.resample,
        adapt_k_thresh=cfg.adapt_k_thresh,
        seq_alpha=cfg.seq_alpha,
        truncate=cfg.truncate,
        verbose=cfg.verbose,
        silent=cfg.silent,
        sampler=TreeSplitSampler(pop_col=cfg.pop_col),
        seed=cfg.seed,
    )
    outs = export_result(result, cfg.out_dir, cfg.ensemble_id, seed=cfg.seed)
    logger.info(f"[ensemble] done. nsims={result.nsims} n_eff={result.n_eff:.1f}")
    return result, outs


def interval_from_table(table: Path, value_col: str, weight_col: Optional[str], conf: float) -> dict:
    df = read_table(table)
    for c in [value_col] + ([weight_col] if weight_col else []):
        if c not in df.columns:
            raise ValueError(f"{table} missing column {c!r}. Columns: {df.columns.tolist()}")

    x = pd.to_numeric(df[value_col], errors="raise").to_numpy(dtype=float)
    wgt = pd.to_numeric(df[weight_col], errors="raise").to_numpy(dtype=float) if weight_col else np.ones_like(x)
    lo, hi = is_ci(x, wgt, conf=conf)
    return {
        "value_col": value_col,
        "n": int(x.size),
        "conf": conf,
        "estimate": float(np.sum(x * wgt) / np.sum(wgt)),
        "lower": float(lo),
        "upper": float(hi),
    }


def _cmd_sample(args: argparse.Namespace) -> None:
    cfg = RunConfig(
        graph=_resolve_graph(args.graph),
        out_dir=Path(args.out_dir) if args.out_dir else ENSEMBLES_DIR / args.ensemble_id,
        ensemble_id=args.ensemble_id,
        pop_col=args.pop_col,
        county_col=args.county_col,
        ndists=args.ndists,
        nsims=args.nsims,
        popcons=args.popcons,
        compactness=args.compactness,
        resample=not args.no_resample,
        truncate=args.truncate,
        adapt_k_thresh=args.adapt_k_thresh,
        seq_alpha=args.seq_alpha,
        seed=args.seed,
        verbose=not args.quiet,
        silent=args.silent,
    )
    sample_ensemble(cfg)


def _cmd_ci(args: argparse.Namespace) -> None:
    out = interval_from_table(Path(args.table), args.value_col, args.weight_col, args.conf)
    print(json.dumps(out, indent=2))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="smc-redist", description="Weighted redistricting ensembles")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("sample", help="Sample an ensemble and write plan map, weights and run info.")
    p.add_argument(
        "--graph",
        required=True,
        help="gerrychain Graph JSON with population node attribute; also looked up under <data>/graphs",
    )
    p.add_argument("--ndists", type=int, required=True)
    p.add_argument("--nsims", type=int, required=True)
    p.add_argument("--ensemble-id", required=True)
    p.add_argument("--out-dir", default=None, help="Default: <data>/ensembles/<ensemble-id>")

    p.add_argument("--pop-col", default=DEFAULT_POP_COL)
    p.add_argument("--county-col", default=None, help="Node attribute holding county labels")
    p.add_argument("--popcons", type=float, default=DEFAULT_POPCONS)
    p.add_argument("--compactness", type=float, default=DEFAULT_COMPACTNESS)
    p.add_argument("--adapt-k-thresh", type=float, default=DEFAULT_ADAPT_K_THRESH)
    p.add_argument("--seq-alpha", type=float, default=None, help="Default: 0.1 + 0.2 * compactness")
    p.add_argument("--seed", type=int, default=DEFAULT_SEED)
    p.add_argument("--no-resample", action="store_true", help="Keep importance weights instead of resampling")
    p.add_argument(
        "--truncate",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Truncate importance weights (default: only when compactness != 1)",
    )
    p.add_argument("--quiet", action="store_true", help="Minimal progress output")
    p.add_argument("--silent", action="store_true", help="No sampler diagnostics")
    p.set_defaults(func=_cmd_sample)

    p_ci = sub.add_parser("ci", help="Importance sampling confidence interval for a per-plan quantity.")
    p_ci.add_argument("--table", required=True, help="parquet/csv with one row per plan")
    p_ci.add_argument("--value-col", required=True)
    p_ci.add_argument("--weight-col", default=None, help="Default: equal weights")
    p_ci.add_argument("--conf", type=float, default=0.99)
    p_ci.set_defaults(func=_cmd_ci)

    return ap


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
