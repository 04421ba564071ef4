from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import scipy.stats as st
import seaborn as sns
import statsmodels.api as sm
from statsmodels.stats.outliers_influence import variance_inflation_factor

from config.config import CONTROLS, DEP, ESG, YEAR

from .common import BASE_REGRESSORS, OUT, ensure_outdir, load_clean, stars

STATS_VARS = [DEP, "green_num", "green_dummy", ESG, "esg_alt", "esg_e", "esg_s", "esg_g", *CONTROLS, "soe", "heavy_pollution"]
CORR_VARS = [DEP, ESG, *CONTROLS]


def summary_stats(df: pd.DataFrame, cols: Sequence[str] = STATS_VARS) -> pd.DataFrame:
    cols = [c for c in cols if c in df.columns]
    return df[cols].describe(percentiles=[0.01, 0.05, 0.5, 0.95, 0.99]).T


def group_mean_comparison(df: pd.DataFrame, group: str = "high_esg", cols: Sequence[str] = CORR_VARS) -> pd.DataFrame:
    rows = []
    hi = df[df[group] == 1]
    lo = df[df[group] == 0]
    for col in cols:
        a, b = hi[col].dropna(), lo[col].dropna()
        t, p = st.ttest_ind(a, b, equal_var=False)
        rows.append(
            {
                "variable": col,
                "mean_high": float(a.mean()),
                "mean_low": float(b.mean()),
                "diff": float(a.mean() - b.mean()),
                "t": float(t),
                "p": float(p),
                "n_high": int(a.shape[0]),
                "n_low": int(b.shape[0]),
            }
        )
    return pd.DataFrame(rows)


def correlation_table(df: pd.DataFrame, cols: Sequence[str] = CORR_VARS) -> pd.DataFrame:
    """Pearson below the diagonal, Spearman above, with significance stars."""
    d = df[list(cols)].dropna()
    table = pd.DataFrame("", index=cols, columns=cols)
    for i, a in enumerate(cols):
        for j, b in enumerate(cols):
            if i == j:
                table.loc[a, b] = "1"
                continue
            r, p = st.pearsonr(d[a], d[b]) if i > j else st.spearmanr(d[a], d[b])
            table.loc[a, b] = f"{r:.3f}{stars(p)}"
    return table


def plot_correlation_heatmap(df: pd.DataFrame, path: Path, cols: Sequence[str] = CORR_VARS) -> None:
    corr = df[list(cols)].corr()
    mask = np.triu(np.ones_like(corr, dtype=bool), k=1)
    plt.figure(figsize=(9, 7))
    sns.heatmap(corr, mask=mask, annot=True, fmt=".2f", cmap="RdBu_r", center=0, vmin=-1, vmax=1, square=True)
    plt.title("Pearson correlations")
    plt.tight_layout()
    plt.savefig(path, dpi=160)
    plt.close()


def vif_table(df: pd.DataFrame, cols: Sequence[str] = BASE_REGRESSORS) -> pd.DataFrame:
    X = sm.add_constant(df[list(cols)].dropna())
    rows = [
        {"variable": col, "vif": float(variance_inflation_factor(X.values, i))}
        for i, col in enumerate(X.columns)
        if col != "const"
    ]
    out = pd.DataFrame(rows)
    out["tolerance"] = 1 / out["vif"]
    return out.sort_values("vif", ascending=False).reset_index(drop=True)


def yearly_trend(df: pd.DataFrame) -> pd.DataFrame:
    return df.groupby(YEAR).agg(
        esg_mean=(ESG, "mean"),
        green_inv_mean=(DEP, "mean"),
        share_green=("green_dummy", "mean"),
        n=(ESG, "size"),
    ).reset_index()


def run_eda(df: pd.DataFrame, out_dir: Path = OUT) -> None:
    summary_stats(df).to_csv(out_dir / "eda_summary_stats.csv")
    group_mean_comparison(df).to_csv(out_dir / "eda_group_comparison.csv", index=False)
    correlation_table(df).to_csv(out_dir / "eda_correlation_matrix.csv")
    plot_correlation_heatmap(df, out_dir / "eda_correlation_heatmap.png")
    vif_table(df).to_csv(out_dir / "eda_vif.csv", index=False)

    trend = yearly_trend(df)
    trend.to_csv(out_dir / "eda_yearly_trend.csv", index=False)
    fig, ax1 = plt.subplots(figsize=(9, 4))
    ax1.plot(trend[YEAR], trend["esg_mean"], marker="o", color="tab:green")
    ax1.set_xlabel("Year")
    ax1.set_ylabel("Mean ESG score", color="tab:green")
    ax2 = ax1.twinx()
    ax2.plot(trend[YEAR], trend["green_inv_mean"], marker="s", color="tab:blue")
    ax2.set_ylabel("Mean green-investor share (%)", color="tab:blue")
    plt.title("ESG and green-investor share by year")
    fig.tight_layout()
    fig.savefig(out_dir / "eda_yearly_trend.png", dpi=160)
    plt.close(fig)

    d = df.dropna(subset=[ESG, DEP])
    plt.figure(figsize=(6, 6))
    plt.scatter(d[ESG], d[DEP], s=6, alpha=0.4)
    slope, intercept = np.polyfit(d[ESG], d[DEP], 1)
    grid = np.linspace(d[ESG].min(), d[ESG].max(), 50)
    plt.plot(grid, intercept + slope * grid, color="tab:red")
    plt.title("ESG score vs green-investor share")
    plt.xlabel("ESG")
    plt.ylabel("Green-investor share (%)")
    plt.tight_layout()
    plt.savefig(out_dir / "eda_scatter_esg_green.png", dpi=160)
    plt.close()


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_eda(df)
    print("EDA outputs saved to", OUT)


if __name__ == "__main__":
    main()
