from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from config.config import ALT_DEP, ALT_ESG, CONTROLS, DEP, ESG, ESG_PILLARS, FIRM, SOE, WINSOR_VARS, YEAR
from esg_panel.build_variables import winsorize_df

from .common import OUT, ensure_outdir, load_clean, write_json
from .panel_models import fit_panel_fe
from .reporting import coefficient_plot

COVID_YEARS = [2020]


def build_variants(df: pd.DataFrame) -> dict[str, tuple[pd.DataFrame, str, list[str], str]]:
    """name -> (data, dependent, regressors, key regressor)."""
    variants: dict[str, tuple[pd.DataFrame, str, list[str], str]] = {
        "base": (df, DEP, [ESG, *CONTROLS], ESG),
        "alt_esg_measure": (df, DEP, [ALT_ESG, *CONTROLS], ALT_ESG),
        "alt_dependent": (df, ALT_DEP, [ESG, *CONTROLS], ESG),
        "lagged_esg": (df, DEP, [f"l1_{ESG}", *CONTROLS], f"l1_{ESG}"),
        "exclude_covid": (df[~df[YEAR].isin(COVID_YEARS)], DEP, [ESG, *CONTROLS], ESG),
        "winsor_5_95": (winsorize_df(df, WINSOR_VARS, p=0.05), DEP, [ESG, *CONTROLS], ESG),
    }
    if SOE in df.columns:
        variants["soe_only"] = (df[df[SOE] == 1], DEP, [ESG, *CONTROLS], ESG)
        variants["non_soe_only"] = (df[df[SOE] == 0], DEP, [ESG, *CONTROLS], ESG)
        variants["soe_interaction"] = (df, DEP, [ESG, "esg_x_soe", *CONTROLS], "esg_x_soe")
    for pillar in ESG_PILLARS:
        variants[f"pillar_{pillar}"] = (df, DEP, [pillar, *CONTROLS], pillar)
    return variants


def run_robustness_checks(df: pd.DataFrame, out_dir: Path = OUT) -> pd.DataFrame:
    variants = build_variants(df)
    write_json(out_dir / "robustness_variants.json", {"variants": list(variants.keys())})

    rows = []
    for name, (vd, dep, regressors, key) in variants.items():
        try:
            m = fit_panel_fe(vd, dep, regressors, entity=True, time=True)
            rows.append(
                {
                    "model": f"rob_{name}",
                    "variant": name,
                    "dependent": dep,
                    "term": key,
                    "coef": float(m.params[key]),
                    "se": float(m.std_errors[key]),
                    "t": float(m.tstats[key]),
                    "p": float(m.pvalues[key]),
                    "n": int(m.nobs),
                    "r2": float(m.rsquared),
                    "fe": f"{FIRM}, {YEAR}",
                    "se_type": "cluster(firm)",
                }
            )
        except Exception as e:  # noqa: BLE001
            rows.append({
                "model": f"rob_{name}",
                "variant": name,
                "dependent": dep,
                "term": key,
                "coef": np.nan,
                "se": np.nan,
                "t": np.nan,
                "p": np.nan,
                "n": 0,
                "r2": np.nan,
                "fe": f"{FIRM}, {YEAR}",
                "se_type": "cluster(firm)",
                "error": str(e),
            })

    results = pd.DataFrame(rows)
    results.to_csv(out_dir / "robustness_results.csv", index=False)

    ok = results.dropna(subset=["coef"])
    if not ok.empty:
        coefficient_plot(
            ok,
            out_dir / "robustness_coefficients.png",
            "Key coefficient across robustness variants (two-way FE)",
            label_col="variant",
        )

    lines = []
    lines.append("# Robustness checks\n\n")
    lines.append("- Variants: " + ", ".join(variants.keys()) + "\n")
    failed = results.loc[results["coef"].isna(), "variant"].tolist()
    if failed:
        lines.append("- Failed variants: " + ", ".join(failed) + "\n")
    lines.append("- Files:\n")
    lines.append("  - robustness_results.csv\n")
    lines.append("  - robustness_coefficients.png\n")
    (out_dir / "robustness_report.md").write_text("".join(lines), encoding="utf-8")
    return results


def main() -> None:
    ensure_outdir()
    df = load_clean()
    run_robustness_checks(df)
    print("Robustness outputs saved to", OUT)


if __name__ == "__main__":
    main()
