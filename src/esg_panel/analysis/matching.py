"""Propensity-score matching of high-ESG firm-years to low-ESG firm-years.

Treatment is ``high_esg`` (ESG above the yearly median). Scores come from a
logit on the controls and year dummies; each treated firm-year is matched to
its nearest control on the score, with replacement, inside a caliper.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import scipy.stats as st
import statsmodels.formula.api as smf
from sklearn.neighbors import NearestNeighbors

from config.config import CONTROLS, DEP, FIRM, MATCH_CALIPER, YEAR

from .common import OUT, ensure_outdir, estimation_sample, load_clean, save_summary, tidy, write_json

TREATMENT = "high_esg"


def estimate_propensity(
    df: pd.DataFrame,
    treat: str = TREATMENT,
    covariates: Sequence[str] = CONTROLS,
    fe_dummies: Sequence[str] = (YEAR,),
    outcome: str = DEP,
) -> pd.DataFrame:
    sample = estimation_sample(df, [treat, outcome, *covariates, *fe_dummies])
    rhs = " + ".join([*covariates, *[f"C({c})" for c in fe_dummies]])
    res = smf.logit(f"{treat} ~ {rhs}", data=sample).fit(disp=0, maxiter=200)
    sample["pscore"] = res.predict(sample)
    return sample


def nearest_neighbor_match(ps: pd.Series, treated: pd.Series, caliper: float = MATCH_CALIPER) -> pd.DataFrame:
    """1:1 nearest-neighbour pairs on the score, with replacement; pairs beyond ``caliper`` dropped."""
    treated = treated.astype(bool)
    t_idx = ps.index[treated]
    c_idx = ps.index[~treated]
    if len(t_idx) == 0 or len(c_idx) == 0:
        return pd.DataFrame(columns=["treated", "control", "distance"])

    nn = NearestNeighbors(n_neighbors=1)
    nn.fit(ps.loc[c_idx].to_numpy().reshape(-1, 1))
    dist, ind = nn.kneighbors(ps.loc[t_idx].to_numpy().reshape(-1, 1))
    pairs = pd.DataFrame({"treated": t_idx, "control": c_idx[ind.reshape(-1)], "distance": dist.reshape(-1)})
    return pairs[pairs["distance"] <= caliper].reset_index(drop=True)


def att(sample: pd.DataFrame, pairs: pd.DataFrame, outcome: str = DEP) -> dict:
    diff = sample.loc[pairs["treated"], outcome].to_numpy() - sample.loc[pairs["control"], outcome].to_numpy()
    n = len(diff)
    if n < 2:
        return {"att": np.nan, "se": np.nan, "t": np.nan, "p": np.nan, "n_treated": n, "n_controls": 0}
    est = float(diff.mean())
    se = float(diff.std(ddof=1) / np.sqrt(n))
    t = est / se if se > 0 else np.nan
    return {
        "att": est,
        "se": se,
        "t": t,
        "p": float(2 * st.norm.sf(abs(t))) if t == t else np.nan,
        "n_treated": int(n),
        "n_controls": int(pairs["control"].nunique()),
    }


def _smd(a: pd.Series, b: pd.Series) -> float:
    pooled = np.sqrt((a.var(ddof=1) + b.var(ddof=1)) / 2)
    return float((a.mean() - b.mean()) / pooled) if pooled > 0 else 0.0


def balance_table(
    sample: pd.DataFrame,
    pairs: pd.DataFrame,
    covariates: Sequence[str] = CONTROLS,
    treat: str = TREATMENT,
) -> pd.DataFrame:
    is_t = sample[treat] == 1
    matched_t = sample.loc[pairs["treated"]]
    matched_c = sample.loc[pairs["control"]]
    rows = []
    for col in [*covariates, "pscore"]:
        rows.append(
            {
                "variable": col,
                "mean_treated_before": float(sample.loc[is_t, col].mean()),
                "mean_control_before": float(sample.loc[~is_t, col].mean()),
                "smd_before": _smd(sample.loc[is_t, col], sample.loc[~is_t, col]),
                "mean_treated_after": float(matched_t[col].mean()),
                "mean_control_after": float(matched_c[col].mean()),
                "smd_after": _smd(matched_t[col], matched_c[col]),
            }
        )
    return pd.DataFrame(rows)


def matched_regression(sample: pd.DataFrame, pairs: pd.DataFrame, outcome: str = DEP, treat: str = TREATMENT):
    """WLS on the matched sample; controls weighted by how often they were used."""
    weights = pd.concat([pairs["treated"].value_counts(), pairs["control"].value_counts()]).groupby(level=0).sum()
    matched = sample.loc[weights.index].copy()
    matched["match_weight"] = weights.to_numpy()
    rhs = " + ".join([treat, *CONTROLS, f"C({YEAR})"])
    groups = pd.factorize(matched[FIRM])[0]
    return smf.wls(f"{outcome} ~ {rhs}", data=matched, weights=matched["match_weight"]).fit(
        cov_type="cluster", cov_kwds={"groups": groups}
    )


def plot_overlap(sample: pd.DataFrame, pairs: pd.DataFrame, path: Path, treat: str = TREATMENT) -> None:
    fig, axes = plt.subplots(1, 2, figsize=(11, 4), sharey=True)
    bins = np.linspace(0, 1, 31)
    is_t = sample[treat] == 1
    axes[0].hist(sample.loc[is_t, "pscore"], bins=bins, alpha=0.5, density=True, label="High ESG")
    axes[0].hist(sample.loc[~is_t, "pscore"], bins=bins, alpha=0.5, density=True, label="Low ESG")
    axes[0].set_title("Before matching")
    axes[1].hist(sample.loc[pairs["treated"], "pscore"], bins=bins, alpha=0.5, density=True, label="High ESG")
    axes[1].hist(sample.loc[pairs["control"], "pscore"], bins=bins, alpha=0.5, density=True, label="Matched low ESG")
    axes[1].set_title("After matching")
    for ax in axes:
        ax.set_xlabel("Propensity score")
        ax.legend()
    fig.tight_layout()
    fig.savefig(path, dpi=160)
    plt.close(fig)


def run_matching(df: pd.DataFrame, out_dir: Path = OUT, caliper: float = MATCH_CALIPER) -> pd.DataFrame:
    sample = estimate_propensity(df)
    pairs = nearest_neighbor_match(sample["pscore"], sample[TREATMENT] == 1, caliper=caliper)

    summary = att(sample, pairs)
    summary["caliper"] = caliper
    summary["n_treated_total"] = int((sample[TREATMENT] == 1).sum())
    write_json(out_dir / "psm_att.json", summary)
    balance_table(sample, pairs).to_csv(out_dir / "psm_balance.csv", index=False)
    plot_overlap(sample, pairs, out_dir / "psm_overlap.png")

    m = matched_regression(sample, pairs)
    save_summary(m, out_dir / "psm_matched_wls.txt")
    results = tidy(m, "psm_wls", terms=[TREATMENT, *CONTROLS], fe=YEAR, se_type="cluster(firm)")
    results.to_csv(out_dir / "psm_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_matching(df)
    print("Matching outputs saved to", OUT)


if __name__ == "__main__":
    main()
