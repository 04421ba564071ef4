from __future__ import annotations

import pandas as pd
import pytest

from esg_panel import export_panel
from esg_panel.export_panel import export_final


def test_export_final_keeps_every_row(panel, tmp_path):
    path = tmp_path / "final" / "esg_green_final.csv"
    n = export_final(panel, path)
    assert n == len(panel)

    back = pd.read_csv(path, dtype={"stkcd": str})
    assert back["stkcd"].str.len().eq(6).all()
    assert not back.duplicated(subset=["stkcd", "year"]).any()


def test_export_final_detects_row_loss(panel, tmp_path, monkeypatch):
    real_read_csv = pd.read_csv
    monkeypatch.setattr(export_panel.pd, "read_csv", lambda *a, **k: real_read_csv(*a, **k).iloc[:-1])
    with pytest.raises(ValueError, match="expected"):
        export_final(panel, tmp_path / "out.csv")
