from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import pyfixest as pf
import scipy.stats as st
import statsmodels.api as sm
from linearmodels.panel import PanelOLS, RandomEffects

from config.config import DEP, FIRM, INDUSTRY, YEAR

from .common import BASE_REGRESSORS, OUT, ensure_outdir, estimation_sample, load_clean, panel_index, save_summary, tidy, write_json

HDFE_EFFECTS = (FIRM, YEAR, f"{INDUSTRY}^{YEAR}")


def _panel_design(df: pd.DataFrame, dep: str, regressors: Sequence[str]) -> tuple[pd.Series, pd.DataFrame]:
    sample = panel_index(estimation_sample(df, [dep, *regressors]))
    exog = sm.add_constant(sample[list(regressors)], has_constant="add")
    return sample[dep], exog


def fit_panel_fe(
    df: pd.DataFrame,
    dep: str,
    regressors: Sequence[str],
    entity: bool = True,
    time: bool = True,
    cov_type: str = "clustered",
):
    y, X = _panel_design(df, dep, regressors)
    mod = PanelOLS(y, X, entity_effects=entity, time_effects=time, drop_absorbed=True)
    if cov_type == "clustered":
        return mod.fit(cov_type="clustered", cluster_entity=True)
    return mod.fit(cov_type=cov_type)


def fit_random_effects(df: pd.DataFrame, dep: str, regressors: Sequence[str], cov_type: str = "clustered"):
    y, X = _panel_design(df, dep, regressors)
    mod = RandomEffects(y, X)
    if cov_type == "clustered":
        return mod.fit(cov_type="clustered", cluster_entity=True)
    return mod.fit(cov_type=cov_type)


def hausman_test(fe, re) -> dict:
    """FE vs RE contrast; a non-positive-definite difference falls back to the pseudo-inverse."""
    common = [c for c in fe.params.index if c in re.params.index and c != "const"]
    diff = (fe.params[common] - re.params[common]).to_numpy()
    v = (fe.cov.loc[common, common] - re.cov.loc[common, common]).to_numpy()
    stat = float(diff @ np.linalg.pinv(v) @ diff)
    dof = len(common)
    p = float(st.chi2.sf(stat, dof))
    return {
        "statistic": stat,
        "dof": dof,
        "p_value": p,
        "psd_difference": bool(np.all(np.linalg.eigvalsh((v + v.T) / 2) >= -1e-12)),
        "preferred": "fixed_effects" if p < 0.05 else "random_effects",
    }


def fit_hdfe(
    df: pd.DataFrame,
    dep: str,
    regressors: Sequence[str],
    effects: Sequence[str] = HDFE_EFFECTS,
    cluster: str = FIRM,
):
    sample = estimation_sample(df, [dep, *regressors, INDUSTRY])
    sample[INDUSTRY] = sample[INDUSTRY].astype(str)
    fml = f"{dep} ~ {' + '.join(regressors)} | {' + '.join(effects)}"
    return pf.feols(fml, data=sample, vcov={"CRV1": cluster})


def run_panel_models(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    frames = []

    fe_firm = fit_panel_fe(df, DEP, BASE_REGRESSORS, entity=True, time=False)
    save_summary(fe_firm, out_dir / "panel_fe_firm.txt")
    frames.append(tidy(fe_firm, "fe_firm", terms=BASE_REGRESSORS, fe=FIRM, se_type="cluster(firm)"))

    fe_tw = fit_panel_fe(df, DEP, BASE_REGRESSORS, entity=True, time=True)
    save_summary(fe_tw, out_dir / "panel_fe_twoway.txt")
    frames.append(tidy(fe_tw, "fe_twoway", terms=BASE_REGRESSORS, fe=f"{FIRM}, {YEAR}", se_type="cluster(firm)"))

    re = fit_random_effects(df, DEP, BASE_REGRESSORS)
    save_summary(re, out_dir / "panel_re.txt")
    frames.append(tidy(re, "re", terms=BASE_REGRESSORS, fe="random(firm)", se_type="cluster(firm)"))

    hdfe = fit_hdfe(df, DEP, BASE_REGRESSORS)
    frames.append(tidy(hdfe, "hdfe", terms=BASE_REGRESSORS, fe=", ".join(HDFE_EFFECTS), se_type="cluster(firm)"))

    # Hausman needs the classical covariances of both estimators
    fe_u = fit_panel_fe(df, DEP, BASE_REGRESSORS, entity=True, time=False, cov_type="unadjusted")
    re_u = fit_random_effects(df, DEP, BASE_REGRESSORS, cov_type="unadjusted")
    write_json(out_dir / "panel_hausman.json", hausman_test(fe_u, re_u))

    results = pd.concat(frames, ignore_index=True)
    results.to_csv(out_dir / "panel_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_panel_models(df)
    print("Panel model outputs saved to", OUT)


if __name__ == "__main__":
    main()
