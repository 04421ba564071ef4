from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd
import statsmodels.formula.api as smf

from config.config import FIRM, YEAR

from .common import BASE_REGRESSORS, OUT, ensure_outdir, estimation_sample, load_clean, save_summary, tidy, write_json


def fit_logit(
    df: pd.DataFrame,
    dep: str = "green_dummy",
    regressors: Sequence[str] = BASE_REGRESSORS,
    fe_dummies: Sequence[str] = (YEAR,),
):
    sample = estimation_sample(df, [dep, *regressors, *fe_dummies])
    rhs = " + ".join([*regressors, *[f"C({c})" for c in fe_dummies]])
    groups = pd.factorize(sample[FIRM])[0]
    return smf.logit(f"{dep} ~ {rhs}", data=sample).fit(
        disp=0, maxiter=200, cov_type="cluster", cov_kwds={"groups": groups}
    )


def average_marginal_effects(res, terms: Sequence[str] = BASE_REGRESSORS) -> pd.DataFrame:
    frame = res.get_margeff(at="overall").summary_frame()
    frame = frame.rename(
        columns={"dy/dx": "ame", "Std. Err.": "se", "z": "z", "Pr(>|z|)": "p", "Conf. Int. Low": "ci_low", "Cont. Int. Hi.": "ci_high"}
    )
    frame.index.name = "term"
    return frame.loc[[t for t in terms if t in frame.index]].reset_index()


def run_logit_models(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    res = fit_logit(df)
    save_summary(res, out_dir / "logit_green_dummy.txt")
    ame = average_marginal_effects(res)
    ame.to_csv(out_dir / "logit_marginal_effects.csv", index=False)
    write_json(
        out_dir / "logit_fit.json",
        {"pseudo_r2": float(res.prsquared), "llr_pvalue": float(res.llr_pvalue), "n": int(res.nobs), "converged": bool(res.mle_retvals["converged"])},
    )

    results = tidy(res, "logit", terms=BASE_REGRESSORS, fe=YEAR, se_type="cluster(firm)")
    results.to_csv(out_dir / "logit_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_logit_models(df)
    print("Logit outputs saved to", OUT)


if __name__ == "__main__":
    main()
