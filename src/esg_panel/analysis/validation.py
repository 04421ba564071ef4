from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from config.config import (
    CONTROLS,
    DEP,
    ESG,
    EXCLUDED_INDUSTRY_PREFIXES,
    FIRM,
    INDUSTRY,
    RAW_PANEL_PATH,
    ST_FLAG,
    YEAR,
)

from .common import OUT, ensure_outdir, write_json

PROFILE_VARS = [DEP, ESG, *CONTROLS]


def load_raw(path: Path = RAW_PANEL_PATH) -> pd.DataFrame:
    if not path.exists():
        raise SystemExit(f"Missing required input: {path}")
    return pd.read_parquet(path)


def validate(df: pd.DataFrame) -> dict:
    obs_per_firm = df.groupby(FIRM)[YEAR].nunique()
    n_years = int(df[YEAR].nunique())
    return {
        "rows_total": int(len(df)),
        "firms": int(df[FIRM].nunique()),
        "year_min": int(df[YEAR].min()),
        "year_max": int(df[YEAR].max()),
        "duplicate_firm_years": int(df.duplicated(subset=[FIRM, YEAR]).sum()),
        "balanced": bool((obs_per_firm == n_years).all()),
        "obs_per_firm": {
            "min": int(obs_per_firm.min()),
            "median": float(obs_per_firm.median()),
            "max": int(obs_per_firm.max()),
        },
        "missing_by_col": {k: int(v) for k, v in df.isna().sum().to_dict().items()},
    }


def missingness_table(df: pd.DataFrame) -> pd.DataFrame:
    miss = df.isna().sum()
    table = pd.DataFrame({"n_missing": miss.astype(int), "share_missing": miss / max(len(df), 1)})
    table.index.name = "variable"
    return table.sort_values("share_missing", ascending=False)


def outlier_table(df: pd.DataFrame, cols: Sequence[str]) -> pd.DataFrame:
    rows = []
    for col in cols:
        if col not in df.columns:
            continue
        s = df[col].dropna()
        if s.empty:
            continue
        q1, q3 = s.quantile(0.25), s.quantile(0.75)
        iqr = q3 - q1
        lo, hi = q1 - 1.5 * iqr, q3 + 1.5 * iqr
        rows.append(
            {
                "variable": col,
                "n": int(s.shape[0]),
                "p1": float(s.quantile(0.01)),
                "p99": float(s.quantile(0.99)),
                "iqr_low": float(lo),
                "iqr_high": float(hi),
                "n_below": int((s < lo).sum()),
                "n_above": int((s > hi).sum()),
                "share_outside": float(((s < lo) | (s > hi)).mean()),
            }
        )
    return pd.DataFrame(rows)


def build_step_table(df: pd.DataFrame) -> pd.DataFrame:
    steps: list[dict[str, int | str]] = []
    mask = pd.Series(True, index=df.index)

    def record(step: str) -> None:
        steps.append({"step": step, "remaining_obs": int(mask.sum())})

    record("Raw workbook rows")

    mask &= df[FIRM].notna() & df[YEAR].notna()
    mask &= ~df.duplicated(subset=[FIRM, YEAR], keep="first")
    record("Unique firm-year with identifiers")

    if INDUSTRY in df.columns and EXCLUDED_INDUSTRY_PREFIXES:
        industry = df[INDUSTRY].astype("string").str.upper()
        mask &= ~industry.str.startswith(tuple(EXCLUDED_INDUSTRY_PREFIXES), na=False)
        record("Excluding financial industries")

    if ST_FLAG in df.columns:
        mask &= df[ST_FLAG].fillna(0).astype(int) != 1
        record("Excluding ST firm-years")

    mask &= df[DEP].notna()
    record("Green-investor share observed")

    mask &= df[ESG].notna()
    record("ESG score observed")

    controls = [c for c in CONTROLS if c in df.columns]
    mask &= df[controls].notna().all(axis=1)
    record("Controls observed")

    table = pd.DataFrame(steps)
    table["dropped_this_step"] = table["remaining_obs"].shift(1, fill_value=len(df)) - table["remaining_obs"]
    return table


def plot_distributions(df: pd.DataFrame, cols: Sequence[str], out_dir: Path = OUT) -> None:
    cols = [c for c in cols if c in df.columns and df[c].notna().any()]
    for col in cols:
        plt.figure(figsize=(6, 4))
        plt.hist(df[col].dropna(), bins=40)
        plt.title(f"Distribution of {col}")
        plt.xlabel(col)
        plt.ylabel("Firm-years")
        plt.tight_layout()
        plt.savefig(out_dir / f"validation_hist_{col}.png", dpi=160)
        plt.close()

    z = df[cols].apply(lambda s: (s - s.mean()) / s.std(ddof=0) if s.std(ddof=0) else s * 0)
    plt.figure(figsize=(max(6, len(cols)), 4))
    plt.boxplot([z[c].dropna().to_numpy() for c in cols])
    plt.axhline(0, linewidth=1)
    plt.title("Standardized distributions (outlier screen)")
    plt.xticks(range(1, len(cols) + 1), cols, rotation=45)
    plt.tight_layout()
    plt.savefig(out_dir / "validation_boxplots.png", dpi=160)
    plt.close()


def run_validation(df: pd.DataFrame, out_dir: Path = OUT) -> dict:
    summary = validate(df)
    write_json(out_dir / "data_validation.json", summary)
    missingness_table(df).to_csv(out_dir / "validation_missingness.csv")
    outlier_table(df, PROFILE_VARS).to_csv(out_dir / "validation_outliers.csv", index=False)
    build_step_table(df).to_csv(out_dir / "sample_construction_table.csv", index=False)
    plot_distributions(df, PROFILE_VARS, out_dir)

    years = df.groupby(YEAR)[FIRM].nunique().rename("firms").reset_index()
    years["share_green"] = df.groupby(YEAR)[DEP].apply(lambda s: float(np.mean(s > 0))).to_numpy()
    years.to_csv(out_dir / "validation_firms_by_year.csv", index=False)
    return summary


def main() -> None:
    ensure_outdir()
    df = load_raw()
    run_validation(df)
    print("Validation outputs saved to", OUT)


if __name__ == "__main__":
    main()
