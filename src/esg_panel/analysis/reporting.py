"""Publication tables, coefficient plots and the combined markdown report.

Every estimation phase leaves a long-format ``*_results.csv`` (one row per
model x term); this module pivots them into wide regression tables.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import pandas as pd

from config.config import ESG

from .common import OUT, ensure_outdir, stars

LOGIT_TITLE = "Logit"

RESULT_FILES = [
    ("Baseline OLS", "baseline_results.csv"),
    ("Panel fixed / random effects", "panel_results.csv"),
    ("Instrumental variables", "iv_results.csv"),
    ("Difference-in-differences", "did_results.csv"),
    ("Dynamic panel GMM", "gmm_results.csv"),
    ("Quantile regressions", "quantile_results.csv"),
    (LOGIT_TITLE, "logit_results.csv"),
    ("Propensity-score matching", "psm_results.csv"),
    ("Robustness", "robustness_results.csv"),
]

JSON_FILES = [
    ("Hausman test", "panel_hausman.json"),
    ("IV diagnostics", "iv_diagnostics.json"),
    ("Event-study pre-trend test", "did_pretrend_test.json"),
    ("GMM diagnostics", "gmm_diagnostics.json"),
    ("PSM average treatment effect on the treated", "psm_att.json"),
]


def format_coef(coef: float, p: float, digits: int = 3) -> str:
    return f"{coef:.{digits}f}{stars(p)}"


def regression_table(results: pd.DataFrame, terms: Sequence[str] | None = None, digits: int = 3) -> pd.DataFrame:
    """Wide table: coefficient and (se) rows per term, then N and R2, one column per model."""
    models = list(dict.fromkeys(results["model"]))
    if terms is None:
        terms = list(dict.fromkeys(results["term"]))

    index: list[str] = []
    body: dict[str, list[str]] = {m: [] for m in models}
    for term in terms:
        index += [term, ""]
        for m in models:
            row = results[(results["model"] == m) & (results["term"] == term)]
            if row.empty or pd.isna(row["coef"].iloc[0]):
                body[m] += ["", ""]
                continue
            r = row.iloc[0]
            body[m] += [format_coef(r["coef"], r["p"], digits), f"({r['se']:.{digits}f})"]

    for stat in ["n", "r2"]:
        index.append("N" if stat == "n" else "R2")
        for m in models:
            vals = results.loc[results["model"] == m, stat].dropna()
            if vals.empty:
                body[m].append("")
            elif stat == "n":
                body[m].append(f"{int(vals.iloc[0]):,}")
            else:
                body[m].append(f"{float(vals.iloc[0]):.3f}")

    if "fe" in results.columns:
        index.append("Fixed effects")
        for m in models:
            fe = results.loc[results["model"] == m, "fe"].dropna()
            body[m].append(str(fe.iloc[0]) if not fe.empty else "")

    return pd.DataFrame(body, index=index)


def coefficient_plot(results: pd.DataFrame, path: Path, title: str, label_col: str = "model") -> None:
    """One point per row of ``results`` with a 95% interval."""
    d = results.dropna(subset=["coef", "se"]).reset_index(drop=True)
    plt.figure(figsize=(max(6, 0.7 * len(d)), 4))
    plt.errorbar(range(len(d)), d["coef"], yerr=1.96 * d["se"], fmt="o", capsize=3)
    plt.axhline(0, linewidth=1, color="black")
    plt.xticks(range(len(d)), d[label_col], rotation=45, ha="right")
    plt.title(title)
    plt.ylabel("Coefficient (95% CI)")
    plt.tight_layout()
    plt.savefig(path, dpi=160)
    plt.close()


def collect_results(out_dir: Path = OUT) -> dict[str, pd.DataFrame]:
    found = {}
    for title, name in RESULT_FILES:
        path = out_dir / name
        if path.exists() and path.stat().st_size > 0:
            df = pd.read_csv(path)
            if not df.empty:
                found[title] = df
    return found


def run_reporting(out_dir: Path = OUT) -> dict[str, pd.DataFrame]:
    tables = {}
    results = collect_results(out_dir)
    for title, df in results.items():
        if "variant" in df.columns:
            table = df[["variant", "term", "coef", "se", "p", "n"]].copy()
        else:
            terms = list(dict.fromkeys([t for t in df["term"] if t == ESG] + df["term"].tolist()))
            table = regression_table(df, terms)
        slug = re.sub(r"[^a-z0-9]+", "_", title.lower()).strip("_")
        table.to_csv(out_dir / f"table_{slug}.csv")
        tables[title] = table

    # Logit enters on the probability scale (AME), not as log-odds
    esg_frames = [
        df[df["term"] == ESG] for title, df in results.items() if "variant" not in df.columns and title != LOGIT_TITLE
    ]
    ame_path = out_dir / "logit_marginal_effects.csv"
    if ame_path.exists():
        ame = pd.read_csv(ame_path)
        ame = ame[ame["term"] == ESG].rename(columns={"ame": "coef"}).assign(model="logit_ame", se_type="ame")
        esg_frames.append(ame[["model", "term", "coef", "se", "p", "se_type"]])
    esg_rows = pd.concat(esg_frames, ignore_index=True) if esg_frames else pd.DataFrame()
    if not esg_rows.empty:
        esg_rows.to_csv(out_dir / "esg_coefficients_all_models.csv", index=False)
        coefficient_plot(esg_rows, out_dir / "esg_coefficients_all_models.png", "ESG coefficient across estimators")
    return tables


def write_report(out_dir: Path = OUT, validation: dict | None = None) -> Path:
    tables = run_reporting(out_dir)

    lines = []
    lines.append("# Analysis report: ESG performance and green investors\n\n")
    if validation is not None:
        lines.append("## Data validation\n")
        lines.append("```json\n" + json.dumps(validation, indent=2, default=str) + "\n```\n\n")

    step_table = out_dir / "sample_construction_table.csv"
    if step_table.exists():
        lines.append("## Sample construction\n\n")
        lines.append(pd.read_csv(step_table).to_markdown(index=False))
        lines.append("\n\n")

    for title, table in tables.items():
        lines.append(f"## {title}\n\n")
        lines.append(table.to_markdown())
        lines.append("\n\n")

    for title, name in JSON_FILES:
        path = out_dir / name
        if path.exists():
            lines.append(f"## {title}\n\n")
            lines.append("```json\n" + path.read_text(encoding="utf-8") + "\n```\n\n")

    if (out_dir / "iv_skipped.txt").exists():
        lines.append("## Instrumental variables\n\n")
        lines.append((out_dir / "iv_skipped.txt").read_text(encoding="utf-8") + "\n\n")

    lines.append("Significance: *** p<0.01, ** p<0.05, * p<0.1. Standard errors in parentheses.\n")

    path = out_dir / "analysis_report.md"
    path.write_text("".join(lines), encoding="utf-8")
    return path


def main() -> None:
    ensure_outdir()
    validation_path = OUT / "data_validation.json"
    validation = json.loads(validation_path.read_text(encoding="utf-8")) if validation_path.exists() else None
    path = write_report(OUT, validation)
    print("Analysis report saved to", path)


if __name__ == "__main__":
    main()
