"""Read the firm-year workbook and persist it as the intermediate parquet panel."""

from __future__ import annotations

import logging
import re
import unicodedata
from pathlib import Path

import numpy as np
import pandas as pd

from config.config import (
    FIRM,
    INDUSTRY,
    INPUT_SHEET,
    INPUT_XLSX,
    PROVINCE,
    RAW_PANEL_PATH,
    REQUIRED_COLUMNS,
    YEAR,
)

logger = logging.getLogger(__name__)

TEXT_COLUMNS = [FIRM, INDUSTRY, PROVINCE]


def _strip_accents(s: str) -> str:
    s = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def clean_colname(c: str) -> str:
    c = _strip_accents(str(c).strip()).lower()
    c = re.sub(r"\s+", "_", c)
    c = re.sub(r"[^a-z0-9_]", "", c)
    return c


def read_spreadsheet(path: Path = INPUT_XLSX, sheet: str | int = INPUT_SHEET) -> pd.DataFrame:
    if not path.exists():
        raise SystemExit(f"Missing required input: {path}")
    return pd.read_excel(path, sheet_name=sheet, engine="openpyxl")


def standardize_raw(df: pd.DataFrame) -> pd.DataFrame:
    out = df.rename(columns=clean_colname)
    out = out.loc[:, ~out.columns.duplicated()].copy()

    for col in out.columns:
        if col in TEXT_COLUMNS:
            continue
        out[col] = pd.to_numeric(out[col], errors="coerce").replace([np.inf, -np.inf], np.nan)

    # Stock codes keep their leading zeros ("000001"), Excel drops them
    if FIRM in out.columns:
        firm = out[FIRM]
        if pd.api.types.is_numeric_dtype(firm):
            firm = firm.astype("Int64")
        firm = firm.astype("string").str.strip()
        out[FIRM] = firm.where(~firm.str.fullmatch(r"\d{1,6}", na=False), firm.str.zfill(6))
    for col in [INDUSTRY, PROVINCE]:
        if col in out.columns:
            out[col] = out[col].astype("string").str.strip()

    before = len(out)
    keys = [c for c in (FIRM, YEAR) if c in out.columns]
    out = out.dropna(subset=keys)
    if len(out) < before:
        logger.info("Dropped %d rows without firm or year", before - len(out))
    if YEAR in out.columns:
        out[YEAR] = out[YEAR].astype(int)
    return out.reset_index(drop=True)


def check_required(df: pd.DataFrame, required: list[str] = REQUIRED_COLUMNS) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SystemExit(f"Missing required columns: {missing}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s:%(message)s")
    raw = read_spreadsheet()
    panel = standardize_raw(raw)
    check_required(panel)

    RAW_PANEL_PATH.parent.mkdir(parents=True, exist_ok=True)
    panel.to_parquet(RAW_PANEL_PATH, index=False)
    print(f"Saved raw panel with {len(panel):,} rows to {RAW_PANEL_PATH}")


if __name__ == "__main__":
    main()
