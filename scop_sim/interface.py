# scop_sim/interface.py
from __future__ import annotations

import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import streamlit as st

# --- Fix imports when running: streamlit run scop_sim/interface.py
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scop_sim.allocation import Allocation, default_allocation, rebalance_allocation
from scop_sim.model import (
    SimulationInputs,
    SimulationResult,
    comparison_table,
    format_currency,
    format_percentage,
    solve,
    tax_breakdown,
)
from scop_sim.regimes import (
    ALLOCATION_FLOORS,
    DEFAULT_CET,
    DEFAULT_FISCAL_RESULT,
    IS_NORMAL,
    IS_PME,
)
from scop_sim.simulations import sweep_fiscal_result

ALLOCATION_KEY = "allocation"


# ----------------------------
# Formatting
# ----------------------------
def format_table(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    for c in ["Sans SCOP", "Avec SCOP"]:
        out[c] = [("-" if pd.isna(v) else format_currency(v)) for v in out[c]]
    return out


# ----------------------------
# Allocation state
# ----------------------------
def current_allocation(state) -> Allocation:
    if ALLOCATION_KEY not in state:
        state[ALLOCATION_KEY] = default_allocation()
    return state[ALLOCATION_KEY]


def on_allocation_change(state, name: str, value: float) -> Allocation:
    alloc = rebalance_allocation(current_allocation(state), name, value)
    state[ALLOCATION_KEY] = alloc
    return alloc


# ----------------------------
# Plots
# ----------------------------
def plot_comparison(result: SimulationResult):
    a = result.without_regime
    b = result.with_regime
    labels = ["Impôt sur les Sociétés", "CET", "Coût Fiscal Total", "Résultat Net"]
    sans = [a.tax_owed, a.cet, a.total_tax_cost, a.net_result]
    avec = [b.tax_owed, b.cet, b.total_tax_cost, b.net_result]

    x = np.arange(len(labels))
    fig, ax = plt.subplots()
    ax.bar(x - 0.2, np.nan_to_num(sans), width=0.4, label="Sans SCOP")
    ax.bar(x + 0.2, np.nan_to_num(avec), width=0.4, label="Avec SCOP")
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=15)
    ax.set_ylabel("EUR")
    ax.legend()
    st.pyplot(fig)


def plot_xy(df: pd.DataFrame, xcol: str, ycols: list[str], title: str):
    fig, ax = plt.subplots()
    for c in ycols:
        ax.plot(df[xcol], df[c], label=c)
    ax.set_title(title)
    ax.set_xlabel(xcol)
    ax.legend()
    st.pyplot(fig)


# ----------------------------
# App
# ----------------------------
def main():
    st.set_page_config(page_title="Simulateur SCOP", layout="wide")
    st.title("Simulateur d'Avantages Fiscaux SCOP")
    st.caption("Évaluez l'impact du statut SCOP sur la rentabilité de votre entreprise.")

    st.sidebar.header("Paramètres de simulation")
    fiscal_result = st.sidebar.number_input(
        "Résultat fiscal prévisionnel (€)", value=float(DEFAULT_FISCAL_RESULT), step=1000.0
    )
    cet = st.sidebar.number_input(
        "Montant annuel de la CET actuelle (€)", min_value=0.0, value=float(DEFAULT_CET), step=500.0
    )

    use_reduced = st.sidebar.checkbox("Activer le taux d'IS réduit", value=False)
    ceiling, reduced_rate = 0.0, 0.0
    if use_reduced:
        ceiling = st.sidebar.number_input(
            "Plafond d'assiette au taux réduit (€)",
            min_value=0.0,
            value=float(IS_PME.reduced_rate_ceiling),
            step=500.0,
        )
        reduced_rate = st.sidebar.number_input(
            "Taux d'IS réduit (%)", min_value=0.0, max_value=100.0,
            value=float(IS_PME.reduced_rate), step=0.1,
        )
    normal_rate = st.sidebar.number_input(
        "Taux d'IS normal (%)", min_value=0.0, max_value=100.0,
        value=float(IS_NORMAL.normal_rate), step=0.1,
    )

    st.sidebar.subheader("Affectation du résultat")
    alloc = current_allocation(st.session_state)
    max_participation = 100.0 - ALLOCATION_FLOORS["reserves"] - ALLOCATION_FLOORS["dividends"]
    max_reserves = 100.0 - ALLOCATION_FLOORS["participation"] - ALLOCATION_FLOORS["dividends"]
    max_dividends = 100.0 - ALLOCATION_FLOORS["participation"] - ALLOCATION_FLOORS["reserves"]

    part = st.sidebar.slider(
        "Participation Salariés (%)", ALLOCATION_FLOORS["participation"], max_participation,
        float(alloc.participation), 1.0,
    )
    if part != alloc.participation:
        alloc = on_allocation_change(st.session_state, "participation", part)
    res = st.sidebar.slider(
        "Réserves Impartageables (%)", ALLOCATION_FLOORS["reserves"], max_reserves,
        float(alloc.reserves), 1.0,
    )
    if res != alloc.reserves:
        alloc = on_allocation_change(st.session_state, "reserves", res)
    div = st.sidebar.slider(
        "Dividendes (%)", ALLOCATION_FLOORS["dividends"], max_dividends,
        float(alloc.dividends), 1.0,
    )
    if div != alloc.dividends:
        alloc = on_allocation_change(st.session_state, "dividends", div)
    st.sidebar.caption(
        f"Participation {format_percentage(alloc.participation)} · "
        f"Réserves {format_percentage(alloc.reserves)} · "
        f"Dividendes {format_percentage(alloc.dividends)}"
    )

    inputs = SimulationInputs(
        fiscal_result=float(fiscal_result),
        cet=float(cet),
        normal_rate=float(normal_rate),
        reduced_rate_ceiling=float(ceiling),
        reduced_rate=float(reduced_rate),
        **alloc.as_inputs_kwargs(),
    )
    result = solve(inputs)

    tab1, tab2, tab3 = st.tabs(["Résultats comparatifs", "Calculateur IS", "Sensibilité"])

    with tab1:
        if not result.with_regime.converged:
            st.warning(
                f"Le calcul SCOP n'a pas convergé après {result.with_regime.iterations} itérations : "
                "les montants affichés sont la dernière estimation."
            )
        if not result.with_regime.is_valid():
            st.error("Données invalides : certains montants ne peuvent pas être calculés.")

        k1, k2, k3 = st.columns(3)
        k1.metric("Économie d'IS", format_currency(result.savings.tax))
        k2.metric("Économie de CET", format_currency(result.savings.cet))
        k3.metric("Gain Fiscal Total Annuel", format_currency(result.savings.total))

        st.dataframe(format_table(comparison_table(result)), use_container_width=True)
        plot_comparison(result)

    with tab2:
        st.subheader("Calculateur d'Impôt sur les Sociétés (IS)")
        base = st.number_input("Résultat imposable (€)", min_value=0.0, value=100000.0, step=1000.0, key="calc_base")
        c1, c2 = st.columns(2)
        calc_ceiling = c1.number_input(
            "Plafond IS au taux réduit (€)", min_value=0.0, value=float(IS_PME.reduced_rate_ceiling),
            key="calc_ceiling",
        )
        calc_rate = c2.number_input(
            "Taux d'IS réduit (%)", min_value=0.0, max_value=100.0, value=float(IS_PME.reduced_rate),
            key="calc_rate",
        )
        bd = tax_breakdown(base, calc_ceiling, calc_rate, normal_rate)
        st.metric("Impôt sur les Sociétés Total", format_currency(bd.total))
        st.text(bd.detail)

    with tab3:
        st.subheader("Économies selon le résultat fiscal")
        lo, hi = st.slider("Plage de résultat fiscal (€)", 0, 1_000_000, (0, 300_000), 10_000)
        n = st.number_input("Nombre de points", min_value=2, max_value=200, value=31)
        df_sweep = sweep_fiscal_result(inputs, np.linspace(lo, hi, int(n)))
        if not df_sweep["converged"].all():
            st.warning("Certains scénarios n'ont pas convergé.")
        st.dataframe(df_sweep, use_container_width=True)
        plot_xy(df_sweep, "fiscal_result", ["tax_savings", "total_savings"], "Économies")
        st.download_button(
            "Exporter (CSV)", df_sweep.to_csv(index=False).encode("utf-8"), "sweep_scop.csv", "text/csv"
        )


if __name__ == "__main__":
    main()
