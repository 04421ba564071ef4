"""First-difference dynamic panel GMM (Arellano-Bond style).

    d.y_it = rho * d.y_i,t-1 + beta * d.esg_it + d.x_it' gamma + year effects + d.e_it

``d.y_i,t-1`` and ``d.esg_it`` are treated as endogenous and instrumented with
their levels dated t-2 and t-3. The weight matrix is the two-step
firm-clustered one, so the J statistic is Hansen's.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import scipy.stats as st
import statsmodels.api as sm
from linearmodels.iv import IVGMM

from config.config import CONTROLS, DEP, ESG, FIRM, YEAR
from esg_panel.build_variables import panel_lag

from .common import OUT, ensure_outdir, load_clean, save_summary, tidy, write_json

GMM_LAGS = (2, 3)


def differenced_sample(df: pd.DataFrame, dep: str = DEP, exog: Sequence[str] = CONTROLS) -> pd.DataFrame:
    d = df[[FIRM, YEAR, dep, ESG, *exog]].copy()
    for col in [dep, ESG, *exog]:
        d[f"d_{col}"] = d[col] - panel_lag(d, col, 1)
    l1_dep = panel_lag(d, dep, 1)
    d[f"d_l1_{dep}"] = l1_dep - panel_lag(d, dep, 2)
    for k in GMM_LAGS:
        d[f"l{k}_{dep}_lvl"] = panel_lag(d, dep, k)
        d[f"l{k}_{ESG}_lvl"] = panel_lag(d, ESG, k)
    return d


def difference_gmm(df: pd.DataFrame, dep: str = DEP, exog: Sequence[str] = CONTROLS):
    d = differenced_sample(df, dep, exog)
    endog = [f"d_l1_{dep}", f"d_{ESG}"]
    instruments = [f"l{k}_{v}_lvl" for v in (dep, ESG) for k in GMM_LAGS]
    d_exog = [f"d_{c}" for c in exog]
    sample = d.dropna(subset=[f"d_{dep}", *endog, *instruments, *d_exog]).copy()
    # Controls that move one-for-one with time (firm age) difference out to a constant
    d_exog = [c for c in d_exog if sample[c].std() > 1e-12]

    years = pd.get_dummies(sample[YEAR].astype(str), prefix="yr", drop_first=True, dtype=float)
    X = sm.add_constant(pd.concat([sample[d_exog], years], axis=1), has_constant="add")
    clusters = pd.Series(pd.factorize(sample[FIRM])[0], index=sample.index)
    mod = IVGMM(
        sample[f"d_{dep}"],
        X,
        sample[endog],
        sample[instruments],
        weight_type="clustered",
        clusters=clusters,
    )
    res = mod.fit(cov_type="clustered", clusters=clusters)
    return res, sample


def ar_test(resid: pd.Series, sample: pd.DataFrame, order: int) -> dict:
    """m-statistic for serial correlation of order ``order`` in differenced residuals."""
    e = sample[[FIRM, YEAR]].copy()
    e["e"] = resid.reindex(sample.index).to_numpy()
    e["e_lag"] = panel_lag(e, "e", order)
    e = e.dropna(subset=["e", "e_lag"])
    if len(e) < 3:
        return {"order": order, "m_stat": np.nan, "p_value": np.nan, "n": int(len(e))}
    groups = pd.factorize(e[FIRM])[0]
    fit = sm.OLS(e["e"], sm.add_constant(e["e_lag"])).fit(cov_type="cluster", cov_kwds={"groups": groups})
    m = float(fit.tvalues["e_lag"])
    return {"order": order, "m_stat": m, "p_value": float(2 * st.norm.sf(abs(m))), "n": int(len(e))}


def gmm_diagnostics(res, sample: pd.DataFrame, dep: str = DEP) -> dict:
    rho = float(res.params[f"d_l1_{dep}"])
    beta = float(res.params[f"d_{ESG}"])
    return {
        "hansen_j": float(res.j_stat.stat),
        "hansen_j_pval": float(res.j_stat.pval),
        "ar1": ar_test(res.resids, sample, 1),
        "ar2": ar_test(res.resids, sample, 2),
        "persistence_rho": rho,
        "long_run_esg_effect": beta / (1 - rho) if rho != 1 else np.nan,
        "n": int(res.nobs),
        "firms": int(sample[FIRM].nunique()),
    }


def run_dynamic_gmm(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    res, sample = difference_gmm(df)
    save_summary(res, out_dir / "gmm_difference.txt")
    write_json(out_dir / "gmm_diagnostics.json", gmm_diagnostics(res, sample))

    terms = [f"d_l1_{DEP}", f"d_{ESG}", *[f"d_{c}" for c in CONTROLS]]
    results = tidy(res, "diff_gmm", terms=terms, fe=YEAR, se_type="cluster(firm)")
    # Differenced names map back so the ESG row lines up with the other tables
    results["term"] = results["term"].str.replace(r"^d_", "", regex=True)
    results.to_csv(out_dir / "gmm_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_dynamic_gmm(df)
    print("Dynamic GMM outputs saved to", OUT)


if __name__ == "__main__":
    main()
