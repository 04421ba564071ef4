#!/usr/bin/env python3
"""Orchestrate the ESG / green-investor data build and econometric analysis."""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
from typing import Sequence

from esg_panel.analysis.common import OUT, ensure_outdir
from esg_panel.analysis.reporting import write_report

DATA_TASKS: list[tuple[str, str]] = [
    ("Import workbook", "esg_panel.import_data"),
    ("Validate raw panel", "esg_panel.analysis.validation"),
    ("Construct analysis variables", "esg_panel.build_variables"),
]

ANALYSIS_TASKS: list[tuple[str, str]] = [
    ("Descriptive statistics", "esg_panel.analysis.eda"),
    ("Baseline OLS", "esg_panel.analysis.baseline_models"),
    ("Panel FE / RE / HDFE", "esg_panel.analysis.panel_models"),
    ("Instrumental variables", "esg_panel.analysis.iv_models"),
    ("Difference-in-differences", "esg_panel.analysis.did_models"),
    ("Dynamic panel GMM", "esg_panel.analysis.dynamic_gmm"),
    ("Quantile regressions", "esg_panel.analysis.quantile_models"),
    ("Logit", "esg_panel.analysis.logit_models"),
    ("Propensity-score matching", "esg_panel.analysis.matching"),
    ("Robustness checks", "esg_panel.analysis.robustness"),
]

EXPORT_TASK = ("Export final dataset", "esg_panel.export_panel")


def run_task(label: str, module: str) -> None:
    logging.info("Starting phase: %s", label)
    command: Sequence[str] = [sys.executable, "-m", module]
    result = subprocess.run(command)
    if result.returncode != 0:
        raise SystemExit(f"Command failed: {' '.join(command)}")
    logging.info("Completed phase: %s", label)


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Run the data build, the econometric analysis, or both. "
            "Defaults to running everything in order."
        )
    )
    parser.add_argument(
        "--data-only",
        action="store_true",
        help="Import, validate and construct the panel without running estimators.",
    )
    parser.add_argument(
        "--analysis-only",
        action="store_true",
        help="Assume the analysis panel exists and only produce analysis outputs.",
    )
    args = parser.parse_args(argv)

    if args.data_only and args.analysis_only:
        raise SystemExit("Use at most one of --data-only or --analysis-only.")

    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s:%(message)s")
    ensure_outdir()

    if not args.analysis_only:
        logging.info("Running data build...")
        for label, module in DATA_TASKS:
            run_task(label, module)

    if not args.data_only:
        logging.info("Running analysis outputs...")
        for label, module in ANALYSIS_TASKS:
            run_task(label, module)

        validation_path = OUT / "data_validation.json"
        validation = json.loads(validation_path.read_text(encoding="utf-8")) if validation_path.exists() else None
        write_report(OUT, validation)
        run_task(*EXPORT_TASK)

    logging.info("Pipeline completed. Outputs in: %s", OUT)


if __name__ == "__main__":
    main()
