"""Project-wide configuration for the ESG / green-investor panel pipeline.

Update these values to reflect the input workbook and the sample you want to run.
"""

import os
from pathlib import Path

# Base directory for all data artifacts (raw workbook and cleaned panels)
DATA_DIR = Path(os.getenv("ESG_DATA_DIR", "data"))
OUTPUT_DIR = Path(os.getenv("ESG_OUTPUT_DIR", "outputs"))

# Convenience paths derived from DATA_DIR
RAW_DIR = DATA_DIR / "raw"
CLEAN_DIR = DATA_DIR / "clean"

INPUT_XLSX = RAW_DIR / os.getenv("ESG_INPUT_FILE", "esg_green_investors.xlsx")
INPUT_SHEET = os.getenv("ESG_INPUT_SHEET", "panel")

RAW_PANEL_PATH = CLEAN_DIR / "panel_raw.parquet"
ANALYSIS_PANEL_PATH = CLEAN_DIR / "analysis_panel.parquet"
FINAL_CSV_PATH = OUTPUT_DIR / "esg_green_final.csv"

# Panel keys
FIRM = "stkcd"
YEAR = "year"
INDUSTRY = "industry"
PROVINCE = "province"

# Outcome and main regressor
DEP = "green_inv"
ALT_DEP = "green_num"
ESG = "esg"
ALT_ESG = "esg_alt"
ESG_PILLARS = ["esg_e", "esg_s", "esg_g"]

CONTROLS = ["size", "lev", "roa", "growth", "top1", "board", "indep", "age", "tobinq"]

SOE = "soe"
TREAT = "heavy_pollution"
ST_FLAG = "st"

REQUIRED_COLUMNS = [FIRM, YEAR, INDUSTRY, DEP, ESG, *CONTROLS]

# Industries dropped from the sample (CSRC letter codes; J = finance)
EXCLUDED_INDUSTRY_PREFIXES = ["J"]

# Continuous variables clipped at WINSOR_P / 1 - WINSOR_P (pooled)
WINSOR_P = 0.01
WINSOR_VARS = [DEP, ALT_DEP, ESG, ALT_ESG, *ESG_PILLARS, *CONTROLS]

# DiD / event study: policy shock year and event window (years)
POLICY_YEAR = 2018
EVENT_PRE = 4
EVENT_POST = 4

QUANTILES = [0.10, 0.25, 0.50, 0.75, 0.90]

# Propensity-score matching: caliper on the score, 1:1 with replacement
MATCH_CALIPER = 0.05
