from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from config.config import ANALYSIS_PANEL_PATH, CONTROLS, ESG, FIRM, INDUSTRY, OUTPUT_DIR, PROVINCE, YEAR

OUT = OUTPUT_DIR

BASE_REGRESSORS = [ESG] + CONTROLS


def ensure_outdir(out_dir: Path = OUT) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


def write_json(path: Path, obj: dict) -> None:
    path.write_text(json.dumps(obj, indent=2, default=str), encoding="utf-8")


def load_clean(path: Path = ANALYSIS_PANEL_PATH) -> pd.DataFrame:
    if not path.exists():
        raise SystemExit(f"Missing required input: {path}")
    df = pd.read_parquet(path)
    df[FIRM] = df[FIRM].astype(str)
    df[YEAR] = df[YEAR].astype(int)
    for col in [INDUSTRY, PROVINCE]:
        if col in df.columns:
            df[col] = df[col].astype(object).where(df[col].notna(), np.nan)
    return df.sort_values([FIRM, YEAR]).reset_index(drop=True)


def estimation_sample(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    """Rows with every column in ``cols`` observed (listwise deletion)."""
    cols = list(dict.fromkeys([FIRM, YEAR, *cols]))
    return df.dropna(subset=cols).copy()


def panel_index(df: pd.DataFrame) -> pd.DataFrame:
    return df.set_index([FIRM, YEAR]).sort_index()


def save_summary(model, path: Path) -> None:
    summary = model.summary
    text = summary().as_text() if callable(summary) else str(summary)
    path.write_text(text, encoding="utf-8")


def standardize_columns(df: pd.DataFrame, cols: Iterable[str], suffix: str = "") -> pd.DataFrame:
    out = df.copy()
    for col in cols:
        if col not in out.columns:
            continue
        std = out[col].std(ddof=0)
        if std and not np.isclose(std, 0):
            out[f"{col}{suffix}"] = (out[col] - out[col].mean()) / std
        elif suffix:
            out[f"{col}{suffix}"] = out[col]
    return out


def tidy(res, model: str, terms: Iterable[str] | None = None, **extra) -> pd.DataFrame:
    """Long-format coefficient rows from a statsmodels, linearmodels or pyfixest fit."""
    if hasattr(res, "_N") and callable(getattr(res, "coef", None)):
        params, se, tvals, pvals = res.coef(), res.se(), res.tstat(), res.pvalue()
        n = int(res._N)
        r2 = float(getattr(res, "_r2", np.nan))
    elif hasattr(res, "std_errors"):
        params, se, tvals, pvals = res.params, res.std_errors, res.tstats, res.pvalues
        n = int(res.nobs)
        r2 = float(res.rsquared)
    else:
        params, se, tvals, pvals = res.params, res.bse, res.tvalues, res.pvalues
        n = int(res.nobs)
        r2 = float(res.prsquared if hasattr(res, "prsquared") else getattr(res, "rsquared", np.nan))

    keep = list(params.index) if terms is None else [t for t in terms if t in params.index]
    rows = []
    for term in keep:
        rows.append(
            {
                "model": model,
                "term": term,
                "coef": float(params[term]),
                "se": float(se[term]),
                "t": float(tvals[term]),
                "p": float(pvals[term]),
                "n": n,
                "r2": r2,
                **extra,
            }
        )
    return pd.DataFrame(rows)


def save_coef_plot(
    coef_df: pd.DataFrame,
    x: str,
    path: Path,
    title: str,
    xlabel: str,
    ylabel: str = f"Coefficient on {ESG}",
    ref: float | None = None,
) -> None:
    """Point estimates with 95% bands; ``ref`` draws a horizontal reference estimate."""
    plt.figure(figsize=(7, 4))
    plt.errorbar(coef_df[x], coef_df["coef"], yerr=1.96 * coef_df["se"], fmt="o-", capsize=3)
    plt.axhline(0, linewidth=1, color="black")
    if ref is not None:
        plt.axhline(ref, linewidth=1, linestyle="--", color="tab:red")
    plt.title(title)
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.tight_layout()
    plt.savefig(path, dpi=160)
    plt.close()


def stars(p: float) -> str:
    if p != p:
        return ""
    return "***" if p < 0.01 else "**" if p < 0.05 else "*" if p < 0.1 else ""
