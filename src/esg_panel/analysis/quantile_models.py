from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd
import statsmodels.formula.api as smf

from config.config import CONTROLS, DEP, ESG, QUANTILES, YEAR

from .baseline_models import fit_pooled_ols
from .common import BASE_REGRESSORS, OUT, ensure_outdir, estimation_sample, load_clean, save_coef_plot, save_summary, tidy


def fit_quantiles(
    df: pd.DataFrame,
    dep: str,
    regressors: Sequence[str],
    taus: Sequence[float] = QUANTILES,
    fe_dummies: Sequence[str] = (YEAR,),
) -> dict[float, object]:
    sample = estimation_sample(df, [dep, *regressors, *fe_dummies])
    rhs = " + ".join([*regressors, *[f"C({c})" for c in fe_dummies]])
    model = smf.quantreg(f"{dep} ~ {rhs}", data=sample)
    return {tau: model.fit(q=tau, max_iter=5000) for tau in taus}


def run_quantile_models(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    fits = fit_quantiles(df, DEP, BASE_REGRESSORS)
    frames = []
    for tau, m in fits.items():
        save_summary(m, out_dir / f"quantile_q{int(round(tau * 100)):02d}.txt")
        frames.append(tidy(m, f"qreg_q{int(round(tau * 100)):02d}", terms=BASE_REGRESSORS, fe=YEAR, se_type="robust", tau=tau))
    results = pd.concat(frames, ignore_index=True)
    results.to_csv(out_dir / "quantile_results.csv", index=False)

    ols = fit_pooled_ols(df, DEP, [ESG, *CONTROLS], fe_dummies=[YEAR])
    esg_path = results[results["term"] == ESG].sort_values("tau")
    save_coef_plot(
        esg_path,
        "tau",
        out_dir / "quantile_esg_coefficients.png",
        title="ESG coefficient across quantiles of green-investor share",
        xlabel="Quantile",
        ref=float(ols.params[ESG]),
    )
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_quantile_models(df)
    print("Quantile regression outputs saved to", OUT)


if __name__ == "__main__":
    main()
