"""Turn the raw firm-year import into the analysis panel.

Steps, in order: panel structure (one row per firm-year), sample filters,
winsorisation, consecutive-year lags, z-scores, interaction terms, ESG
quartiles, indicator columns and leave-one-out peer instruments.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from config.config import (
    ALT_ESG,
    ANALYSIS_PANEL_PATH,
    CONTROLS,
    DEP,
    ESG,
    EVENT_POST,
    EVENT_PRE,
    EXCLUDED_INDUSTRY_PREFIXES,
    FIRM,
    INDUSTRY,
    POLICY_YEAR,
    PROVINCE,
    RAW_PANEL_PATH,
    SOE,
    ST_FLAG,
    TREAT,
    WINSOR_P,
    WINSOR_VARS,
    YEAR,
)
from esg_panel.analysis.common import standardize_columns

logger = logging.getLogger(__name__)

LAG_VARS = [DEP, ESG]
STD_VARS = [DEP, ESG, ALT_ESG, *CONTROLS]


def set_panel(df: pd.DataFrame) -> pd.DataFrame:
    missing = df[[FIRM, YEAR]].isna().any(axis=1)
    if missing.any():
        raise ValueError(f"{int(missing.sum())} rows have no firm or year key")
    out = df.sort_values([FIRM, YEAR]).copy()
    dup = out.duplicated(subset=[FIRM, YEAR], keep="first")
    if dup.any():
        logger.warning("Dropping %d duplicate firm-year rows", int(dup.sum()))
        out = out.loc[~dup]
    return out.reset_index(drop=True)


def apply_sample_filters(df: pd.DataFrame) -> pd.DataFrame:
    out = df
    if INDUSTRY in out.columns and EXCLUDED_INDUSTRY_PREFIXES:
        industry = out[INDUSTRY].astype("string").str.upper()
        excluded = industry.str.startswith(tuple(EXCLUDED_INDUSTRY_PREFIXES), na=False)
        logger.info("Excluding %d firm-years in industries %s", int(excluded.sum()), EXCLUDED_INDUSTRY_PREFIXES)
        out = out.loc[~excluded]
    if ST_FLAG in out.columns:
        st_rows = out[ST_FLAG].fillna(0).astype(int) == 1
        logger.info("Excluding %d ST firm-years", int(st_rows.sum()))
        out = out.loc[~st_rows]
    return out.reset_index(drop=True)


def panel_lag(df: pd.DataFrame, col: str, k: int = 1) -> pd.Series:
    """Value of ``col`` exactly ``k`` years earlier for the same firm, else NaN."""
    lagged = df[[FIRM, YEAR, col]].copy()
    lagged[YEAR] = lagged[YEAR] + k
    merged = df[[FIRM, YEAR]].merge(lagged, on=[FIRM, YEAR], how="left")
    return pd.Series(merged[col].to_numpy(), index=df.index, name=f"l{k}_{col}")


def add_lags(df: pd.DataFrame, cols: Sequence[str] = LAG_VARS, max_lag: int = 3) -> pd.DataFrame:
    out = df.copy()
    for col in cols:
        for k in range(1, max_lag + 1):
            out[f"l{k}_{col}"] = panel_lag(out, col, k)
    return out


def winsorize_series(s: pd.Series, p: float = WINSOR_P) -> pd.Series:
    s = pd.to_numeric(s, errors="coerce")
    if s.dropna().empty:
        return s
    lo = s.quantile(p)
    hi = s.quantile(1 - p)
    return s.clip(lower=lo, upper=hi)


def winsorize_df(df: pd.DataFrame, cols: Sequence[str], p: float = WINSOR_P) -> pd.DataFrame:
    out = df.copy()
    for c in cols:
        if c in out.columns:
            out[c] = winsorize_series(out[c], p=p)
    return out


def add_interactions(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["c_esg"] = out[ESG] - out[ESG].mean()
    out["c_size"] = out["size"] - out["size"].mean()
    out["c_esg_x_c_size"] = out["c_esg"] * out["c_size"]
    if SOE in out.columns:
        out["esg_x_soe"] = out["c_esg"] * out[SOE]
    if TREAT in out.columns:
        out["esg_x_heavy"] = out["c_esg"] * out[TREAT]
    return out


def add_quartiles(df: pd.DataFrame, col: str = ESG) -> pd.DataFrame:
    out = df.copy()
    q = pd.qcut(out[col], 4, labels=[1, 2, 3, 4])
    out[f"{col}_q"] = q.astype("Int64")
    dummies = pd.get_dummies(q, prefix=f"{col}_q", prefix_sep="", dtype=float)
    dummies.loc[q.isna(), :] = np.nan
    return pd.concat([out, dummies], axis=1)


def event_periods() -> list[int]:
    return [k for k in range(-EVENT_PRE, EVENT_POST + 1) if k != -1]


def event_dummy_name(k: int) -> str:
    return f"ev_m{-k}" if k < 0 else f"ev_p{k}"


def add_indicators(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()

    year_median = out.groupby(YEAR)[ESG].transform("median")
    out["high_esg"] = (out[ESG] > year_median).astype(float).where(out[ESG].notna())
    out["green_dummy"] = (out[DEP] > 0).astype(float).where(out[DEP].notna())

    out["post"] = (out[YEAR] >= POLICY_YEAR).astype(int)
    out["treat"] = out[TREAT].fillna(0).astype(int) if TREAT in out.columns else 0
    out["treat_post"] = out["treat"] * out["post"]

    # Event time binned at the window edges; -1 is the omitted reference year
    out["rel_year"] = (out[YEAR] - POLICY_YEAR).clip(lower=-EVENT_PRE, upper=EVENT_POST)
    for k in event_periods():
        out[event_dummy_name(k)] = ((out["rel_year"] == k) & (out["treat"] == 1)).astype(int)
    return out


def leave_one_out_mean(df: pd.DataFrame, col: str, by: Sequence[str]) -> pd.Series:
    """Group mean of ``col`` excluding the row itself; NaN for single-firm groups."""
    g = df.groupby(list(by))[col]
    total = g.transform("sum")
    count = g.transform("count")
    own = df[col].fillna(0)
    own_n = df[col].notna().astype(int)
    denom = (count - own_n).replace(0, np.nan)
    return (total - own) / denom


def add_instruments(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["esg_iv_ind"] = leave_one_out_mean(out, ESG, [INDUSTRY, YEAR])
    if PROVINCE in out.columns:
        out["esg_iv_prov"] = leave_one_out_mean(out, ESG, [PROVINCE, YEAR])
    return out


def build_analysis_panel(df: pd.DataFrame, winsor_p: float = WINSOR_P) -> pd.DataFrame:
    panel = set_panel(df)
    panel = apply_sample_filters(panel)
    panel = winsorize_df(panel, WINSOR_VARS, p=winsor_p)
    panel = add_lags(panel)
    panel = standardize_columns(panel, STD_VARS, suffix="_std")
    panel = add_interactions(panel)
    panel = add_quartiles(panel, ESG)
    panel = add_indicators(panel)
    panel = add_instruments(panel)
    return panel


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s:%(message)s")
    if not RAW_PANEL_PATH.exists():
        raise SystemExit(f"Missing required input: {RAW_PANEL_PATH}")
    raw = pd.read_parquet(RAW_PANEL_PATH)
    panel = build_analysis_panel(raw)

    ANALYSIS_PANEL_PATH.parent.mkdir(parents=True, exist_ok=True)
    panel.to_parquet(ANALYSIS_PANEL_PATH, index=False)
    print(f"Saved analysis panel with {len(panel):,} rows to {ANALYSIS_PANEL_PATH}")


if __name__ == "__main__":
    main()
