from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from esg_panel.build_variables import build_analysis_panel

INDUSTRIES = ["C13", "C26", "D44", "F51", "I65", "J66"]
PROVINCES = ["Beijing", "Shanghai", "Guangdong", "Zhejiang", "Jiangsu", "Sichuan"]
YEARS = list(range(2012, 2023))


def make_raw_panel(n_firms: int = 150, seed: int = 7) -> pd.DataFrame:
    """Synthetic firm-year panel with a known positive ESG effect on green-investor share."""
    rng = np.random.default_rng(seed)
    ind_year_shock = {(j, t): rng.normal(0, 3) for j in INDUSTRIES for t in YEARS}

    rows = []
    for i in range(n_firms):
        industry = INDUSTRIES[i % len(INDUSTRIES)]
        province = PROVINCES[rng.integers(len(PROVINCES))]
        heavy = int(industry[0] in "CD" and rng.random() < 0.7)
        soe = int(rng.random() < 0.4)
        founded = int(rng.integers(1985, 2008))
        alpha = rng.normal(0, 1)
        esg_mu = 60 + 4 * alpha + rng.normal(0, 3)
        size_mu = 22 + 0.5 * alpha + rng.normal(0, 1)
        board_base = int(rng.integers(7, 12))
        green_prev = max(0.0, 2 + alpha)
        esg_dev = 0.0

        for t in YEARS:
            esg_dev = 0.6 * esg_dev + rng.normal(0, 3)
            esg = esg_mu + ind_year_shock[(industry, t)] + esg_dev
            size = size_mu + 0.05 * (t - 2012) + rng.normal(0, 0.2)
            lev = float(np.clip(rng.normal(0.45, 0.15), 0.05, 0.95))
            roa = rng.normal(0.04, 0.05)
            growth = rng.normal(0.15, 0.3)
            top1 = float(np.clip(rng.normal(35, 12), 5, 80))
            board = board_base + int(rng.integers(-1, 2))
            indep = float(np.clip(rng.normal(0.38, 0.05), 0.3, 0.6))
            tobinq = float(np.exp(rng.normal(0.6, 0.3)))
            treat_post = heavy * int(t >= 2018)

            latent = (
                0.3 * green_prev
                + 0.08 * (esg - 60)
                + 0.8 * alpha
                + 0.3 * (size - 22)
                - 0.5 * lev
                + 0.6 * treat_post
                + rng.normal(0, 0.8)
            )
            green_inv = max(0.0, latent)
            green_prev = green_inv

            rows.append(
                {
                    "stkcd": f"{i + 1:06d}",
                    "year": t,
                    "industry": industry,
                    "province": province,
                    "green_inv": green_inv,
                    "green_num": int(rng.poisson(1 + green_inv)),
                    "esg": esg,
                    "esg_alt": esg + rng.normal(0, 2),
                    "esg_e": esg + rng.normal(0, 4),
                    "esg_s": esg + rng.normal(0, 4),
                    "esg_g": esg + rng.normal(0, 4),
                    "size": size,
                    "lev": lev,
                    "roa": roa,
                    "growth": growth,
                    "top1": top1,
                    "board": board,
                    "indep": indep,
                    "age": t - founded,
                    "tobinq": tobinq,
                    "soe": soe,
                    "heavy_pollution": heavy,
                    "st": int(rng.random() < 0.02),
                }
            )

    df = pd.DataFrame(rows)
    # Unbalanced panel: drop a few firm-years, then repeat one row
    gaps = rng.random(len(df)) < 0.04
    df = df.loc[~gaps].reset_index(drop=True)
    return pd.concat([df, df.iloc[[10]]], ignore_index=True)


@pytest.fixture(scope="session")
def raw_panel() -> pd.DataFrame:
    return make_raw_panel()


@pytest.fixture(scope="session")
def analysis_panel(raw_panel: pd.DataFrame) -> pd.DataFrame:
    return build_analysis_panel(raw_panel)


@pytest.fixture
def panel(analysis_panel: pd.DataFrame) -> pd.DataFrame:
    return analysis_panel.copy()
