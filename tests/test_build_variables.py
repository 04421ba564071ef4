from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from config.config import WINSOR_VARS
from esg_panel.analysis.common import standardize_columns
from esg_panel.build_variables import (
    add_quartiles,
    apply_sample_filters,
    event_dummy_name,
    event_periods,
    leave_one_out_mean,
    panel_lag,
    set_panel,
    winsorize_series,
)


def test_set_panel_drops_duplicate_firm_years(raw_panel):
    assert raw_panel.duplicated(subset=["stkcd", "year"]).sum() == 1
    out = set_panel(raw_panel)
    assert not out.duplicated(subset=["stkcd", "year"]).any()
    assert len(out) == len(raw_panel) - 1


def test_sample_filters_remove_financials_and_st(raw_panel):
    out = apply_sample_filters(set_panel(raw_panel))
    assert not out["industry"].str.startswith("J").any()
    assert (out["st"] == 0).all()


def test_winsorize_series_clips_to_percentiles():
    s = pd.Series(np.arange(1, 101, dtype=float))
    w = winsorize_series(s, p=0.05)
    assert w.min() == pytest.approx(s.quantile(0.05))
    assert w.max() == pytest.approx(s.quantile(0.95))
    assert w.iloc[50] == s.iloc[50]


def test_winsorize_series_keeps_missing():
    s = pd.Series([1.0, np.nan, 3.0])
    assert winsorize_series(s, 0.01).isna().sum() == 1
    assert winsorize_series(pd.Series([np.nan, np.nan])).isna().all()


def test_analysis_panel_within_raw_bounds(raw_panel, analysis_panel):
    base = apply_sample_filters(set_panel(raw_panel))
    for col in WINSOR_VARS:
        if col not in base.columns:
            continue
        assert analysis_panel[col].min() >= base[col].quantile(0.01) - 1e-9
        assert analysis_panel[col].max() <= base[col].quantile(0.99) + 1e-9


def test_panel_lag_is_missing_across_gaps():
    df = pd.DataFrame(
        {
            "stkcd": ["000001"] * 3 + ["000002"] * 2,
            "year": [2015, 2016, 2018, 2015, 2016],
            "esg": [1.0, 2.0, 4.0, 10.0, 20.0],
        }
    )
    lag1 = panel_lag(df, "esg", 1)
    lag2 = panel_lag(df, "esg", 2)
    assert np.isnan(lag1.iloc[0])
    assert lag1.iloc[1] == 1.0
    assert np.isnan(lag1.iloc[2])
    assert lag2.iloc[2] == 2.0
    assert np.isnan(lag1.iloc[3])
    assert lag1.iloc[4] == 10.0


def test_lag_columns_created(analysis_panel):
    for col in ["l1_green_inv", "l2_green_inv", "l3_green_inv", "l1_esg", "l3_esg"]:
        assert col in analysis_panel.columns
    first_years = analysis_panel.groupby("stkcd")["year"].transform("min") == analysis_panel["year"]
    assert analysis_panel.loc[first_years, "l1_esg"].isna().all()


def test_quartile_dummies_partition_rows():
    df = pd.DataFrame({"esg": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, np.nan]})
    out = add_quartiles(df)
    dummies = out[["esg_q1", "esg_q2", "esg_q3", "esg_q4"]]
    assert (dummies.iloc[:8].sum(axis=1) == 1).all()
    assert dummies.iloc[8].isna().all()
    assert list(out["esg_q"].iloc[:8]) == [1, 1, 2, 2, 3, 3, 4, 4]


def test_leave_one_out_mean_excludes_own_value():
    df = pd.DataFrame({"industry": ["C", "C", "C", "D"], "year": 2020, "esg": [1.0, 2.0, 6.0, 5.0]})
    loo = leave_one_out_mean(df, "esg", ["industry", "year"])
    assert list(loo.iloc[:3]) == [4.0, 3.5, 1.5]
    assert np.isnan(loo.iloc[3])


def test_indicators(analysis_panel):
    p = analysis_panel
    assert set(p["green_dummy"].dropna().unique()) <= {0.0, 1.0}
    assert ((p["green_inv"] > 0).astype(float) == p["green_dummy"]).all()
    assert (p["treat_post"] == p["treat"] * p["post"]).all()
    assert p["rel_year"].between(-4, 4).all()

    names = [event_dummy_name(k) for k in event_periods()]
    assert "ev_m1" not in names
    assert {"ev_m4", "ev_p0", "ev_p4"} <= set(names)
    treated = p[p["treat"] == 1]
    ref = treated["rel_year"] == -1
    assert (treated.loc[~ref, names].sum(axis=1) == 1).all()
    assert (treated.loc[ref, names].sum(axis=1) == 0).all()
    assert (p.loc[p["treat"] == 0, names].to_numpy() == 0).all()


def test_standardized_columns(analysis_panel):
    z = analysis_panel["esg_std"]
    assert z.mean() == pytest.approx(0.0, abs=1e-9)
    assert z.std(ddof=0) == pytest.approx(1.0)


def test_instruments_vary(analysis_panel):
    assert analysis_panel["esg_iv_ind"].notna().all()
    assert analysis_panel["esg_iv_ind"].nunique() > 10
    assert "esg_iv_prov" in analysis_panel.columns


def test_set_panel_rejects_missing_keys():
    df = pd.DataFrame({"stkcd": ["000001", "000001"], "year": [2019.0, np.nan], "esg": [1.0, 2.0]})
    with pytest.raises(ValueError, match="1 rows have no firm or year key"):
        set_panel(df)


def test_standardize_columns_leaves_constant_column_unchanged():
    df = pd.DataFrame({"flat": [3.0, 3.0, 3.0], "x": [1.0, 2.0, 3.0]})
    out = standardize_columns(df, ["flat", "x", "absent"])
    assert list(out["flat"]) == [3.0, 3.0, 3.0]
    assert out["x"].std(ddof=0) == pytest.approx(1.0)
    assert "absent" not in out.columns

    out = standardize_columns(df, ["flat"], suffix="_std")
    assert list(out["flat_std"]) == [3.0, 3.0, 3.0]
    assert list(out["flat"]) == [3.0, 3.0, 3.0]
