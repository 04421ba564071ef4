from __future__ import annotations

import numpy as np
import pandas as pd

from esg_panel.analysis.baseline_models import run_baseline_models
from esg_panel.analysis.common import stars
from esg_panel.analysis.reporting import collect_results, format_coef, regression_table, run_reporting, write_report
from esg_panel.analysis.validation import run_validation


def test_stars():
    assert stars(0.001) == "***"
    assert stars(0.03) == "**"
    assert stars(0.07) == "*"
    assert stars(0.5) == ""
    assert stars(np.nan) == ""


def test_format_coef():
    assert format_coef(0.12345, 0.004) == "0.123***"
    assert format_coef(-1.5, 0.2, digits=1) == "-1.5"


def test_regression_table_layout():
    results = pd.DataFrame(
        {
            "model": ["m1", "m1", "m2"],
            "term": ["esg", "size", "esg"],
            "coef": [0.5, 1.0, 0.4],
            "se": [0.1, 0.2, 0.3],
            "p": [0.001, 0.2, 0.2],
            "n": [100, 100, 80],
            "r2": [0.3, 0.3, 0.1],
            "fe": ["none", "none", "stkcd, year"],
        }
    )
    table = regression_table(results)
    assert list(table.columns) == ["m1", "m2"]
    assert list(table.index) == ["esg", "", "size", "", "N", "R2", "Fixed effects"]
    assert table.loc["esg", "m1"] == "0.500***"
    assert table["m2"].iloc[1] == "(0.300)"
    assert table["m2"].iloc[2] == ""
    assert table.loc["N", "m2"] == "80"
    assert table.loc["Fixed effects", "m2"] == "stkcd, year"


def test_collect_results_skips_missing_files(tmp_path):
    assert collect_results(tmp_path) == {}
    (tmp_path / "iv_results.csv").write_text("", encoding="utf-8")
    assert collect_results(tmp_path) == {}


def test_write_report(raw_panel, panel, tmp_path):
    validation = run_validation(raw_panel, tmp_path)
    run_baseline_models(panel, tmp_path)
    (tmp_path / "iv_skipped.txt").write_text("No usable instruments.", encoding="utf-8")

    tables = run_reporting(tmp_path)
    assert "Baseline OLS" in tables
    assert (tmp_path / "table_baseline_ols.csv").exists()
    assert (tmp_path / "esg_coefficients_all_models.png").exists()

    path = write_report(tmp_path, validation)
    text = path.read_text(encoding="utf-8")
    assert text.startswith("# Analysis report")
    assert "## Sample construction" in text
    assert "## Baseline OLS" in text
    assert "No usable instruments." in text


def test_esg_plot_uses_logit_marginal_effect(tmp_path):
    pd.DataFrame(
        {"model": ["ols_controls"], "term": ["esg"], "coef": [0.05], "se": [0.01], "p": [0.001], "n": [500], "r2": [0.2]}
    ).to_csv(tmp_path / "baseline_results.csv", index=False)
    pd.DataFrame(
        {"model": ["logit"], "term": ["esg"], "coef": [0.9], "se": [0.2], "p": [0.001], "n": [500], "r2": [0.1]}
    ).to_csv(tmp_path / "logit_results.csv", index=False)
    pd.DataFrame(
        {"term": ["esg", "size"], "ame": [0.02, 0.1], "se": [0.004, 0.03], "z": [5.0, 3.3], "p": [0.001, 0.001]}
    ).to_csv(tmp_path / "logit_marginal_effects.csv", index=False)

    tables = run_reporting(tmp_path)
    assert "Logit" in tables

    esg = pd.read_csv(tmp_path / "esg_coefficients_all_models.csv").set_index("model")
    assert "logit" not in esg.index
    assert list(esg.index) == ["ols_controls", "logit_ame"]
    assert esg.loc["logit_ame", "coef"] == 0.02
    assert (tmp_path / "esg_coefficients_all_models.png").exists()
