from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
from loguru import logger

from gerrychain import Graph

from .config import FLUSH_EVERY_PLANS
from .smc import RedistResult


def load_graph(path: Path) -> Graph:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    return Graph.from_json(str(path))


def read_table(path: Path) -> pd.DataFrame:
    path = Path(path)
    ext = path.suffix.lower()
    if ext in (".parquet", ".pq"):
        return pd.read_parquet(path)
    if ext == ".csv":
        return pd.read_csv(path)
    raise ValueError(f"Unsupported file type: {ext}")


def plan_ids(ensemble_id: str, nsims: int) -> List[str]:
    return [f"{ensemble_id}_{i + 1:06d}" for i in range(nsims)]


def _make_planmap_writer(out_path: Path) -> pq.ParquetWriter:
    schema = pa.schema(
        [
            ("plan_id", pa.string()),
            ("unit", pa.int64()),
            ("district_id", pa.int64()),
        ]
    )
    return pq.ParquetWriter(str(out_path), schema=schema, compression="zstd")


def _write_planmap_rows(writer: pq.ParquetWriter, rows: List[Tuple[str, np.ndarray, np.ndarray]]) -> None:
    if not rows:
        return
    ids, units, dists = zip(*rows)
    writer.write_table(
        pa.table(
            {
                "plan_id": pa.array([pid for pid, u in zip(ids, units) for _ in range(len(u))], type=pa.string()),
                "unit": pa.array(np.concatenate(units), type=pa.int64()),
                "district_id": pa.array(np.concatenate(dists), type=pa.int64()),
            }
        )
    )


def write_plan_map(result: RedistResult, out_path: Path, ensemble_id: str) -> Path:
    """Long-format assignments: one (plan_id, unit, district_id) row per unit per plan."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.exists():
        out_path.unlink()

    units = np.arange(result.plans.shape[0])
    writer = _make_planmap_writer(out_path)
    buffer: List[Tuple[str, np.ndarray, np.ndarray]] = []
    for k, plan_id in enumerate(plan_ids(ensemble_id, result.nsims)):
        buffer.append((plan_id, units, result.plans[:, k]))
        if len(buffer) == FLUSH_EVERY_PLANS:
            _write_planmap_rows(writer, buffer)
            buffer = []
    _write_planmap_rows(writer, buffer)
    writer.close()
    return out_path


def write_weights(result: RedistResult, out_path: Path, ensemble_id: str) -> Path:
    """
    Per-plan weights and diagnostics.

    `orig_wgt` refers to the ensemble as drawn by the sampler; after
    resampling it is not aligned with `plan_id`, so it is written on its own
    `draw` index.
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(
        {
            "plan_id": plan_ids(ensemble_id, result.nsims),
            "draw": np.arange(result.nsims),
            "wgt": result.wgt,
            "orig_wgt": result.orig_wgt,
            "maxdev": result.maxdev,
        }
    )
    df.to_parquet(out_path, index=False)
    return out_path


def run_info(result: RedistResult, ensemble_id: str, seed: Optional[int] = None) -> Dict[str, Any]:
    c = result.constraints
    return {
        "ensemble_id": ensemble_id,
        "algorithm": result.algorithm,
        "seed": seed,
        "nsims": result.nsims,
        "n_units": int(result.plans.shape[0]),
        "n_eff": float(result.n_eff),
        "pct_dist_parity": result.pct_dist_parity,
        "compactness": result.compactness,
        "adapt_k_thresh": result.adapt_k_thresh,
        "seq_alpha": result.seq_alpha,
        "n_counties": None if result.counties is None else int(result.counties.max()),
        "max_maxdev": float(np.max(result.maxdev)),
        "constraints": {
            "status_quo": {"strength": c.status_quo.strength, "n_current": c.status_quo.n_current},
            "vra": {
                "strength": c.vra.strength,
                "tgt_vra_min": c.vra.tgt_vra_min,
                "tgt_vra_other": c.vra.tgt_vra_other,
                "pow_vra": c.vra.pow_vra,
            },
            "incumbency": {"strength": c.incumbency.strength, "incumbents": c.incumbency.incumbents.tolist()},
        },
    }


def write_json(obj: Dict[str, Any], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2)
    return path


def write_run_info(result: RedistResult, path: Path, ensemble_id: str, seed: Optional[int] = None) -> Path:
    return write_json(run_info(result, ensemble_id, seed), path)


def export_result(result: RedistResult, out_dir: Path, ensemble_id: str, seed: Optional[int] = None) -> Dict[str, Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    outs = {
        "plan_map": write_plan_map(result, out_dir / "plan_map.parquet", ensemble_id),
        "weights": write_weights(result, out_dir / "weights.parquet", ensemble_id),
        "run_info": write_run_info(result, out_dir / "run_info.json", ensemble_id, seed),
    }
    for name, fp in outs.items():
        logger.info(f"[export] {name} -> {fp}")
    return outs
