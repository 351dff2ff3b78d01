from __future__ import annotations
from pathlib import Path
import matplotlib
matplotlib.use("Agg")
import numpy as np
import pandas as pd
import pytest
from scop_sim import interface as mod
from scop_sim.allocation import Allocation
from scop_sim.model import SimulationInputs, solve


def _result():
    return solve(
        SimulationInputs(
            fiscal_result=100000.0,
            cet=5000.0,
            normal_rate=25.0,
            participation_pct=45.0,
            reserves_pct=45.0,
            dividends_pct=10.0,
        )
    )


def test_root_points_to_project() -> None:
    assert (mod.ROOT / "scop_sim").is_dir()
    assert isinstance(mod.ROOT, Path)


def test_format_currency() -> None:
    assert mod.format_currency(42500.0) == "42 500 €"
    assert mod.format_currency(-5000.4) == "-5 000 €"
    assert mod.format_currency(float("nan")) == "N/A"
    assert mod.format_currency(None) == "N/A"
    assert mod.format_currency("abc") == "N/A"


def test_format_percentage() -> None:
    assert mod.format_percentage(45.0) == "45%"
    assert mod.format_percentage(15.5) == "15.5%"


def test_format_table_marks_missing_values() -> None:
    df = pd.DataFrame(
        {"Indicateur": ["Dividendes", "IS"], "Sans SCOP": [np.nan, 25000.0], "Avec SCOP": [1000.0, 14570.2]}
    )
    out = mod.format_table(df)
    assert out["Sans SCOP"].tolist() == ["-", "25 000 €"]
    assert out["Avec SCOP"].tolist() == ["1 000 €", "14 570 €"]
    assert df["Sans SCOP"].isna().iloc[0]


def test_allocation_state_defaults_and_rebalances() -> None:
    state: dict = {}
    alloc = mod.current_allocation(state)
    assert alloc == Allocation(45.0, 45.0, 10.0)

    new = mod.on_allocation_change(state, "participation", 50.0)
    assert state[mod.ALLOCATION_KEY] is new
    assert (new.participation, new.reserves, new.dividends) == pytest.approx((50.0, 45.0, 5.0))


def test_plot_comparison_calls_streamlit_pyplot(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def fake_pyplot(fig):
        captured["fig"] = fig

    monkeypatch.setattr(mod.st, "pyplot", fake_pyplot, raising=True)
    mod.plot_comparison(_result())

    fig = captured["fig"]
    ax = fig.axes[0]
    assert [t.get_text() for t in ax.get_legend().get_texts()] == ["Sans SCOP", "Avec SCOP"]
    assert len(ax.patches) == 8


def test_plot_xy_calls_streamlit_pyplot(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def fake_pyplot(fig):
        captured["fig"] = fig

    monkeypatch.setattr(mod.st, "pyplot", fake_pyplot, raising=True)
    df = pd.DataFrame({"x": [1, 2, 3], "a": [1.0, 2.0, 3.0], "b": [0.0, 1.0, 0.5]})
    mod.plot_xy(df, "x", ["a", "b"], "titre test")

    ax = captured["fig"].axes[0]
    assert ax.get_title() == "titre test"
    assert len(ax.get_lines()) == 2


def test_currency_formatter_is_shared_with_model() -> None:
    from scop_sim import model

    assert mod.format_currency is model.format_currency
    assert mod.format_currency(1234567.0).encode("ascii", "ignore") == b"1 234 567 "
    assert "\u202f" not in model.tax_breakdown(100000.0, 42500.0, 15.0, 25.0).detail
