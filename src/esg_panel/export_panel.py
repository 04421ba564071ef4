"""Write the cleaned analysis panel as the final delimited dataset."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from config.config import ANALYSIS_PANEL_PATH, FINAL_CSV_PATH, FIRM, YEAR
from esg_panel.analysis.common import load_clean


def export_final(df: pd.DataFrame, path: Path = FINAL_CSV_PATH) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    out = df.sort_values([FIRM, YEAR])
    out.to_csv(path, index=False, encoding="utf-8")

    written = pd.read_csv(path, usecols=[FIRM], dtype={FIRM: str}).shape[0]
    if written != len(out):
        raise ValueError(f"Exported {written} rows to {path}, expected {len(out)}")
    return written


def main() -> None:
    df = load_clean(ANALYSIS_PANEL_PATH)
    n = export_final(df)
    print(f"Saved final dataset with {n:,} rows to {FINAL_CSV_PATH}")


if __name__ == "__main__":
    main()
