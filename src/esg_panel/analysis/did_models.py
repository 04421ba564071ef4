"""Difference-in-differences around the ESG disclosure policy year.

Treated firms are those in heavy-polluting industries; the event study
replaces ``treat_post`` with treated x event-time dummies, year -1 omitted.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import scipy.stats as st

from config.config import CONTROLS, DEP, FIRM, POLICY_YEAR, YEAR
from esg_panel.build_variables import event_dummy_name, event_periods

from .common import OUT, ensure_outdir, load_clean, save_coef_plot, save_summary, tidy, write_json
from .panel_models import fit_panel_fe


def event_columns() -> list[str]:
    return [event_dummy_name(k) for k in event_periods()]


def fit_did(df: pd.DataFrame, dep: str = DEP):
    return fit_panel_fe(df, dep, ["treat_post", *CONTROLS], entity=True, time=True)


def fit_event_study(df: pd.DataFrame, dep: str = DEP):
    return fit_panel_fe(df, dep, [*event_columns(), *CONTROLS], entity=True, time=True)


def pretrend_test(res) -> dict:
    """Joint Wald test that all lead coefficients are zero."""
    leads = [event_dummy_name(k) for k in event_periods() if k < -1 and event_dummy_name(k) in res.params.index]
    if not leads:
        return {"statistic": np.nan, "dof": 0, "p_value": np.nan, "leads": []}
    b = res.params[leads].to_numpy()
    v = res.cov.loc[leads, leads].to_numpy()
    stat = float(b @ np.linalg.pinv(v) @ b)
    return {"statistic": stat, "dof": len(leads), "p_value": float(st.chi2.sf(stat, len(leads))), "leads": leads}


def event_coefficients(res) -> pd.DataFrame:
    rows = [{"rel_year": -1, "coef": 0.0, "se": 0.0}]
    for k in event_periods():
        name = event_dummy_name(k)
        if name in res.params.index:
            rows.append({"rel_year": k, "coef": float(res.params[name]), "se": float(res.std_errors[name])})
    return pd.DataFrame(rows).sort_values("rel_year").reset_index(drop=True)


def run_did_models(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    did = fit_did(df)
    save_summary(did, out_dir / "did_twoway.txt")

    es = fit_event_study(df)
    save_summary(es, out_dir / "did_event_study.txt")
    write_json(out_dir / "did_pretrend_test.json", pretrend_test(es))

    coefs = event_coefficients(es)
    coefs.to_csv(out_dir / "did_event_study_coefs.csv", index=False)
    save_coef_plot(
        coefs,
        "rel_year",
        out_dir / "did_event_study.png",
        title=f"Event study around {POLICY_YEAR} (treated vs control)",
        xlabel="Years relative to policy",
        ylabel="Coefficient",
    )

    results = pd.concat(
        [
            tidy(did, "did", terms=["treat_post", *CONTROLS], fe=f"{FIRM}, {YEAR}", se_type="cluster(firm)"),
            tidy(es, "event_study", terms=event_columns(), fe=f"{FIRM}, {YEAR}", se_type="cluster(firm)"),
        ],
        ignore_index=True,
    )
    results.to_csv(out_dir / "did_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_did_models(df)
    print("DiD outputs saved to", OUT)


if __name__ == "__main__":
    main()
