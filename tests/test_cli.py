"""Tests for the smc-redist command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import networkx as nx
import numpy as np
import pandas as pd
import pytest

from gerrychain import Graph

from smc_redist import cli
from smc_redist.cli import build_parser, interval_from_table, main
from smc_redist.intervals import is_ci


def _write_grid_graph(path: Path, with_counties: bool = False) -> Path:
    nxg = nx.convert_node_labels_to_integers(nx.grid_2d_graph(4, 4))
    for n in nxg.nodes:
        nxg.nodes[n]["pop"] = 100
        if with_counties:
            nxg.nodes[n]["county"] = "north" if n < 8 else "south"
    Graph.from_networkx(nxg).to_json(str(path))
    return path


def test_sample_command_writes_ensemble(tmp_path: Path) -> None:
    graph_path = _write_grid_graph(tmp_path / "grid.json", with_counties=True)
    out_dir = tmp_path / "out"

    main(
        [
            "sample",
            "--graph", str(graph_path),
            "--pop-col", "pop",
            "--county-col", "county",
            "--ndists", "2",
            "--nsims", "4",
            "--popcons", "0.1",
            "--ensemble-id", "ENS_CLI",
            "--out-dir", str(out_dir),
            "--seed", "3",
            "--silent",
        ]
    )

    plan_map = pd.read_parquet(out_dir / "plan_map.parquet")
    assert len(plan_map) == 16 * 4
    assert set(plan_map["district_id"]) == {1, 2}

    weights = pd.read_parquet(out_dir / "weights.parquet")
    np.testing.assert_allclose(weights["wgt"].to_numpy(), np.full(4, 0.25))

    info = json.loads((out_dir / "run_info.json").read_text(encoding="utf-8"))
    assert info["seed"] == 3
    assert info["n_counties"] == 2
    assert info["seq_alpha"] == pytest.approx(0.3)


def test_sample_command_finds_graph_under_graphs_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    graphs_dir = tmp_path / "graphs"
    graphs_dir.mkdir()
    _write_grid_graph(graphs_dir / "grid.json")
    monkeypatch.setattr(cli, "GRAPHS_DIR", graphs_dir)
    monkeypatch.chdir(tmp_path)
    out_dir = tmp_path / "out"

    main(
        [
            "sample",
            "--graph", "grid.json",
            "--pop-col", "pop",
            "--ndists", "2",
            "--nsims", "2",
            "--popcons", "0.1",
            "--ensemble-id", "ENS_LOOKUP",
            "--out-dir", str(out_dir),
            "--seed", "5",
            "--silent",
        ]
    )

    assert (out_dir / "plan_map.parquet").exists()
    assert cli._resolve_graph("missing.json") == Path("missing.json")


def test_sample_parser_defaults() -> None:
    args = build_parser().parse_args(
        ["sample", "--graph", "g.json", "--ndists", "3", "--nsims", "10", "--ensemble-id", "E"]
    )

    assert args.popcons == pytest.approx(0.01)
    assert args.compactness == pytest.approx(1.0)
    assert args.adapt_k_thresh == pytest.approx(0.95)
    assert args.seq_alpha is None
    assert args.truncate is None
    assert not args.no_resample

    args = build_parser().parse_args(
        ["sample", "--graph", "g.json", "--ndists", "3", "--nsims", "10", "--ensemble-id", "E", "--no-truncate"]
    )
    assert args.truncate is False


def test_sample_command_requires_population_attribute(tmp_path: Path) -> None:
    graph_path = _write_grid_graph(tmp_path / "grid.json")
    with pytest.raises(ValueError, match="population attribute"):
        main(
            [
                "sample",
                "--graph", str(graph_path),
                "--ndists", "2",
                "--nsims", "2",
                "--ensemble-id", "E",
                "--out-dir", str(tmp_path / "out"),
                "--silent",
            ]
        )


def test_ci_command_prints_interval(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    df = pd.DataFrame({"n_opp": [1.0, 2.0, 2.0, 3.0, 5.0], "wgt": [0.1, 0.3, 0.2, 0.2, 0.2]})
    table = tmp_path / "metrics.csv"
    df.to_csv(table, index=False)

    main(["ci", "--table", str(table), "--value-col", "n_opp", "--weight-col", "wgt", "--conf", "0.95"])

    out = json.loads(capsys.readouterr().out)
    lo, hi = is_ci(df["n_opp"], df["wgt"], conf=0.95)
    assert out["lower"] == pytest.approx(lo)
    assert out["upper"] == pytest.approx(hi)
    assert out["estimate"] == pytest.approx(float((df["n_opp"] * df["wgt"]).sum()))
    assert out["n"] == 5


def test_interval_from_table_defaults_to_equal_weights(tmp_path: Path) -> None:
    table = tmp_path / "metrics.parquet"
    pd.DataFrame({"seats": [4.0, 5.0, 6.0, 5.0]}).to_parquet(table, index=False)

    out = interval_from_table(table, "seats", None, 0.99)

    assert out["estimate"] == pytest.approx(5.0)
    assert out["lower"] < 5.0 < out["upper"]
    assert out["lower"] + out["upper"] == pytest.approx(10.0)


def test_interval_from_table_missing_column(tmp_path: Path) -> None:
    table = tmp_path / "metrics.csv"
    pd.DataFrame({"seats": [1.0]}).to_csv(table, index=False)
    with pytest.raises(ValueError, match="missing column"):
        interval_from_table(table, "n_opp", None, 0.9)
