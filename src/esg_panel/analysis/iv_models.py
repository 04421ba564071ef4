from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from linearmodels.iv import IV2SLS

from config.config import CONTROLS, DEP, ESG, FIRM, INDUSTRY, YEAR

from .common import OUT, ensure_outdir, estimation_sample, load_clean, save_summary, tidy, write_json

IV_CANDIDATES = ["esg_iv_ind", "esg_iv_prov"]
IV_FIT_OUTPUTS = ["iv_2sls.txt", "iv_first_stage.txt", "iv_diagnostics.json", "iv_results.csv"]
IV_SKIP_NOTE = "iv_skipped.txt"


def choose_instruments(df: pd.DataFrame, candidates: Sequence[str] = IV_CANDIDATES, instrument_path: Path | None = None) -> list[str]:
    used = []
    for c in candidates:
        if c not in df.columns:
            continue
        if df[c].dropna().nunique() > 1:
            used.append(c)
    if instrument_path:
        write_json(instrument_path, {"candidates": list(candidates), "used": used})
    return used


def fe_dummies(sample: pd.DataFrame, cols: Sequence[str]) -> pd.DataFrame:
    return pd.get_dummies(sample[list(cols)].astype(str), drop_first=True, dtype=float)


def fit_iv2sls(
    df: pd.DataFrame,
    dep: str,
    endog: str,
    instruments: Sequence[str],
    exog: Sequence[str] = CONTROLS,
    fe: Sequence[str] = (YEAR, INDUSTRY),
):
    sample = estimation_sample(df, [dep, endog, *instruments, *exog, *fe])
    X = sm.add_constant(pd.concat([sample[list(exog)], fe_dummies(sample, fe)], axis=1), has_constant="add")
    mod = IV2SLS(sample[dep], X, sample[[endog]], sample[list(instruments)])
    clusters = pd.Series(pd.factorize(sample[FIRM])[0], index=sample.index)
    return mod.fit(cov_type="clustered", clusters=clusters)


def iv_diagnostics(res, endog: str = ESG) -> dict:
    fs = res.first_stage.diagnostics.loc[endog]
    sargan = res.sargan
    wu = res.wu_hausman()
    return {
        "first_stage_partial_r2": float(fs["partial.rsquared"]),
        "first_stage_f": float(fs["f.stat"]),
        "first_stage_f_pval": float(fs["f.pval"]),
        "weak_instrument_flag": bool(fs["f.stat"] < 10),
        "sargan_stat": float(getattr(sargan, "stat", np.nan)),
        "sargan_pval": float(getattr(sargan, "pval", np.nan)),
        "wu_hausman_stat": float(wu.stat),
        "wu_hausman_pval": float(wu.pval),
        "n": int(res.nobs),
    }


def run_iv_models(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    instruments = choose_instruments(df, instrument_path=out_dir / "iv_instruments_used.json")
    # Clear both branches' outputs left by an earlier run
    for name in [*IV_FIT_OUTPUTS, IV_SKIP_NOTE]:
        (out_dir / name).unlink(missing_ok=True)

    if len(instruments) == 0:
        (out_dir / IV_SKIP_NOTE).write_text(
            "No usable instruments with variation in provided data.", encoding="utf-8"
        )
        return pd.DataFrame()

    res = fit_iv2sls(df, DEP, ESG, instruments)
    save_summary(res, out_dir / "iv_2sls.txt")
    save_summary(res.first_stage, out_dir / "iv_first_stage.txt")
    write_json(out_dir / "iv_diagnostics.json", iv_diagnostics(res))

    fs = res.first_stage.individual[ESG]
    results = pd.concat(
        [
            tidy(fs, "iv_first_stage", terms=[*instruments, *CONTROLS], fe=f"{YEAR}, {INDUSTRY}", se_type="cluster(firm)"),
            tidy(res, "iv_2sls", terms=[ESG, *CONTROLS], fe=f"{YEAR}, {INDUSTRY}", se_type="cluster(firm)"),
        ],
        ignore_index=True,
    )
    results.to_csv(out_dir / "iv_results.csv", index=False)
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_iv_models(df)
    print("IV model outputs saved to", OUT)


if __name__ == "__main__":
    main()
