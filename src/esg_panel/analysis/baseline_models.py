from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd
import statsmodels.formula.api as smf

from config.config import CONTROLS, DEP, ESG, FIRM, INDUSTRY, YEAR

from .common import OUT, ensure_outdir, estimation_sample, load_clean, save_summary, tidy


def fit_pooled_ols(
    df: pd.DataFrame,
    dep: str,
    regressors: Sequence[str],
    fe_dummies: Sequence[str] = (),
    cluster: str | None = FIRM,
):
    """Pooled OLS; ``fe_dummies`` enter as C() blocks, errors clustered by ``cluster``."""
    sample = estimation_sample(df, [dep, *regressors, *fe_dummies])
    rhs = " + ".join([*regressors, *[f"C({c})" for c in fe_dummies]])
    model = smf.ols(f"{dep} ~ {rhs}", data=sample)
    if cluster:
        groups = pd.factorize(sample[cluster])[0]
        return model.fit(cov_type="cluster", cov_kwds={"groups": groups})
    return model.fit(cov_type="HC1")


BASELINE_SPECS = [
    ("ols_esg_only", [ESG], []),
    ("ols_controls", [ESG, *CONTROLS], []),
    ("ols_year_industry", [ESG, *CONTROLS], [YEAR, INDUSTRY]),
]


def run_baseline_models(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    frames = []
    for name, regressors, fe in BASELINE_SPECS:
        m = fit_pooled_ols(df, DEP, regressors, fe_dummies=fe)
        save_summary(m, out_dir / f"baseline_{name}.txt")
        frames.append(
            tidy(
                m,
                name,
                terms=[*regressors, "Intercept"],
                fe=", ".join(fe) if fe else "none",
                se_type="cluster(firm)",
            )
        )

    # ESG quartile dummies, bottom quartile omitted
    quartiles = ["esg_q2", "esg_q3", "esg_q4"]
    m = fit_pooled_ols(df, DEP, [*quartiles, *CONTROLS], fe_dummies=[YEAR, INDUSTRY])
    save_summary(m, out_dir / "baseline_ols_esg_quartiles.txt")
    frames.append(tidy(m, "ols_esg_quartiles", terms=[*quartiles, *CONTROLS], fe=f"{YEAR}, {INDUSTRY}", se_type="cluster(firm)"))

    results = pd.concat(frames, ignore_index=True)
    results.to_csv(out_dir / "baseline_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_baseline_models(df)
    print("Baseline model outputs saved to", OUT)


if __name__ == "__main__":
    main()
