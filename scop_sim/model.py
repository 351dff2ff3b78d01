from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from scop_sim.regimes import TaxParameters


# ----------------------------
# Solver constants
# ----------------------------

TOLERANCE = 0.01      # EUR
DAMPING = 0.6
MAX_ROUNDS = 100

STRATEGIES = ("auto", "closed_form", "fixed_point")


# ----------------------------
# Helpers
# ----------------------------

def _pct(x: float) -> float:
    return float(x) / 100.0


def format_currency(value) -> str:
    """fr-FR euros without decimals: 42500.0 -> '42 500 €'; NaN / None -> 'N/A'."""
    if value is None:
        return "N/A"
    try:
        v = float(value)
    except (TypeError, ValueError):
        return "N/A"
    if not np.isfinite(v):
        return "N/A"
    return f"{v:,.0f}".replace(",", " ") + " €"


def format_percentage(rate: float) -> str:
    return f"{rate:g}%"


# ----------------------------
# Progressive IS
# ----------------------------

def compute_tax(
    base: float,
    ceiling: float,
    reduced_rate: float,
    normal_rate: float,
) -> float:
    """
    IS with an optional reduced-rate bracket.

    The first `ceiling` euros of base are taxed at `reduced_rate`, the excess
    at `normal_rate`. A ceiling or reduced rate <= 0 disables the bracket.
    Rates are percentages. A base <= 0 owes nothing; NaN in, NaN out.
    """
    args = np.asarray([base, ceiling, reduced_rate, normal_rate], dtype=float)
    if np.isnan(args).any():
        return float("nan")

    base = float(base)
    if base <= 0:
        return 0.0

    if ceiling > 0 and reduced_rate > 0:
        reduced_slice = min(base, float(ceiling))
        normal_slice = max(0.0, base - float(ceiling))
        tax = reduced_slice * _pct(reduced_rate) + normal_slice * _pct(normal_rate)
    else:
        tax = base * _pct(normal_rate)

    return max(0.0, tax)


@dataclass(frozen=True)
class TaxBreakdown:
    reduced_slice: float
    reduced_tax: float
    normal_slice: float
    normal_tax: float
    total: float
    detail: str


def tax_breakdown(
    base: float,
    ceiling: float,
    reduced_rate: float,
    normal_rate: float,
) -> TaxBreakdown:
    """Slice-by-slice view of `compute_tax`, with a French explanation text."""
    total = compute_tax(base, ceiling, reduced_rate, normal_rate)
    if np.isnan(total):
        nan = float("nan")
        return TaxBreakdown(nan, nan, nan, nan, nan, "Calcul impossible : données invalides")

    base = max(0.0, float(base))
    lines = ["Calcul détaillé de l'IS :"]

    if base > 0 and ceiling > 0 and reduced_rate > 0:
        reduced_slice = min(base, float(ceiling))
        normal_slice = max(0.0, base - float(ceiling))
        reduced_tax = reduced_slice * _pct(reduced_rate)
        normal_tax = normal_slice * _pct(normal_rate)
        lines.append(
            f"• Montant soumis au taux réduit : {format_currency(reduced_slice)} × "
            f"{format_percentage(reduced_rate)} = {format_currency(reduced_tax)}"
        )
        if normal_slice > 0:
            lines.append(
                f"• Montant soumis au taux normal : {format_currency(normal_slice)} × "
                f"{format_percentage(normal_rate)} = {format_currency(normal_tax)}"
            )
    else:
        reduced_slice = reduced_tax = 0.0
        normal_slice = base
        normal_tax = total
        lines.append("• Aucun taux réduit applicable")
        lines.append(
            f"• Montant total soumis au taux normal : {format_currency(normal_slice)} × "
            f"{format_percentage(normal_rate)} = {format_currency(normal_tax)}"
        )

    lines.append(f"• Total IS = {format_currency(total)}")

    return TaxBreakdown(
        reduced_slice=reduced_slice,
        reduced_tax=reduced_tax,
        normal_slice=normal_slice,
        normal_tax=normal_tax,
        total=total,
        detail="\n".join(lines),
    )


# ----------------------------
# Data structures
# ----------------------------

@dataclass(frozen=True)
class SimulationInputs:
    fiscal_result: float           # résultat fiscal avant affectation (EUR)
    cet: float                     # contribution économique territoriale (EUR)
    normal_rate: float             # %
    participation_pct: float
    reserves_pct: float
    dividends_pct: float
    reduced_rate_ceiling: float = 0.0
    reduced_rate: float = 0.0

    @property
    def gross_result(self) -> float:
        """Fiscal result with the CET added back (the cooperative is exempt)."""
        return float(self.fiscal_result) + float(self.cet)

    @property
    def has_reduced_bracket(self) -> bool:
        return self.reduced_rate_ceiling > 0 and self.reduced_rate > 0

    def tax(self, base: float) -> float:
        return compute_tax(base, self.reduced_rate_ceiling, self.reduced_rate, self.normal_rate)


def inputs_from_parameters(
    params: TaxParameters,
    fiscal_result: float,
    cet: float,
    participation_pct: float,
    reserves_pct: float,
    dividends_pct: float,
) -> SimulationInputs:
    return SimulationInputs(
        fiscal_result=float(fiscal_result),
        cet=float(cet),
        normal_rate=params.normal_rate,
        reduced_rate_ceiling=params.reduced_rate_ceiling,
        reduced_rate=params.reduced_rate,
        participation_pct=float(participation_pct),
        reserves_pct=float(reserves_pct),
        dividends_pct=float(dividends_pct),
    )


@dataclass(frozen=True)
class ScenarioResult:
    fiscal_result: float
    taxable_base_before_deductions: float
    participation_deduction: float
    reserves_deduction: float
    taxable_base: float
    tax_owed: float
    cet: float
    total_tax_cost: float
    net_result: float

    # SCOP only
    participation_base: Optional[float] = None
    participation_amount: Optional[float] = None
    reserves_amount: Optional[float] = None
    dividends_amount: Optional[float] = None
    converged: bool = True
    iterations: int = 0

    def is_valid(self) -> bool:
        """False when a NaN input contaminated the figures."""
        values = [
            getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("converged", "iterations")
        ]
        arr = np.asarray([v for v in values if v is not None], dtype=float)
        return not bool(np.isnan(arr).any())


@dataclass(frozen=True)
class SavingsSummary:
    tax: float
    cet: float
    total: float


@dataclass(frozen=True)
class SimulationResult:
    without_regime: ScenarioResult
    with_regime: ScenarioResult
    savings: SavingsSummary


@dataclass(frozen=True)
class SolverState:
    """
    One round of the fixed-point resolver: the damped participation
    deduction and the reserves deduction, base, tax and net it implies.
    """
    taxable_base: float
    participation_deduction: float
    reserves_deduction: float
    tax_owed: float
    net_after_tax: float


# ----------------------------
# Sans SCOP
# ----------------------------

def solve_without_regime(inputs: SimulationInputs) -> ScenarioResult:
    fr = float(inputs.fiscal_result)
    cet = float(inputs.cet)
    tax = inputs.tax(fr)
    return ScenarioResult(
        fiscal_result=fr,
        taxable_base_before_deductions=fr,
        participation_deduction=0.0,
        reserves_deduction=0.0,
        taxable_base=fr,
        tax_owed=tax,
        cet=cet,
        total_tax_cost=tax + cet,
        net_result=fr - tax - cet,
    )


# ----------------------------
# Avec SCOP
# ----------------------------
#
# G = fiscal result + CET, R = min(G * r, G * p) and B0 = G - R.
# The participation is assessed on B0 minus the tax it shields:
#
#     P = p * (B0 - [T(B0) - T(B0 - P)])
#
# Under a flat rate t the shield is t * P, which gives the closed form
# P = p * B0 / (1 + p * t). With the reduced bracket the shield is
# piecewise linear and the relation is iterated instead. Both strategies
# solve this one relation.

def _regime_tax(inputs: SimulationInputs, base: float) -> float:
    # A break-even or loss-making year owes no IS, whatever the CET add-back.
    if inputs.fiscal_result <= 0:
        return 0.0
    return inputs.tax(base)


def _reserves_capped(inputs: SimulationInputs) -> float:
    gross = inputs.gross_result
    return float(np.minimum(gross * _pct(inputs.reserves_pct), gross * _pct(inputs.participation_pct)))


def _participation_base(inputs: SimulationInputs, participation: float) -> float:
    """B0 minus the tax shielded by deducting `participation`."""
    b0 = inputs.gross_result - _reserves_capped(inputs)
    shield = _regime_tax(inputs, b0) - _regime_tax(inputs, b0 - participation)
    return b0 - shield


def _taxable_base(inputs: SimulationInputs, participation_deduction: float, reserves_deduction: float) -> float:
    if inputs.fiscal_result <= 0:
        return 0.0
    return inputs.gross_result - participation_deduction - reserves_deduction


def _assemble_with_regime(
    inputs: SimulationInputs,
    participation_base: float,
    converged: bool,
    iterations: int,
) -> ScenarioResult:
    gross = inputs.gross_result
    participation = participation_base * _pct(inputs.participation_pct)
    reserves_deduction = float(np.minimum(_reserves_capped(inputs), participation))
    base = _taxable_base(inputs, participation, reserves_deduction)
    tax = _regime_tax(inputs, base)
    net = gross - tax
    return ScenarioResult(
        fiscal_result=float(inputs.fiscal_result),
        taxable_base_before_deductions=gross,
        participation_deduction=participation,
        reserves_deduction=reserves_deduction,
        taxable_base=base,
        tax_owed=tax,
        cet=0.0,
        total_tax_cost=tax,
        net_result=net,
        participation_base=participation_base,
        participation_amount=participation,
        reserves_amount=net * _pct(inputs.reserves_pct),
        dividends_amount=net * _pct(inputs.dividends_pct),
        converged=converged,
        iterations=iterations,
    )


def solve_closed_form(inputs: SimulationInputs) -> ScenarioResult:
    """
    Flat-rate resolution:

        P = (G - R) * p / (1 + p * t)

    with t = 0 when the fiscal result is not positive. Only exact when the
    reduced bracket is off.
    """
    p = _pct(inputs.participation_pct)
    t = 0.0 if inputs.fiscal_result <= 0 else _pct(inputs.normal_rate)

    b0 = inputs.gross_result - _reserves_capped(inputs)
    denom = 1.0 + p * t
    participation_base = b0 / denom if denom != 0 else float("nan")

    res = _assemble_with_regime(inputs, participation_base, True, 0)
    return replace(res, converged=res.is_valid())


def fixed_point_step(
    inputs: SimulationInputs,
    state: SolverState,
    damping: float = DAMPING,
) -> Tuple[SolverState, float]:
    """
    Runs one damped round and returns (next_state, residual).

    residual = candidate participation - current deduction, so the
    candidate is `state.participation_deduction + residual`.
    """
    candidate = _participation_base(inputs, state.participation_deduction) * _pct(inputs.participation_pct)
    delta = candidate - state.participation_deduction

    deduction = state.participation_deduction + damping * delta
    reserves = float(np.minimum(_reserves_capped(inputs), deduction))
    base = _taxable_base(inputs, deduction, reserves)
    tax = _regime_tax(inputs, base)
    nxt = SolverState(
        taxable_base=base,
        participation_deduction=deduction,
        reserves_deduction=reserves,
        tax_owed=tax,
        net_after_tax=inputs.gross_result - tax,
    )
    return nxt, delta


def solve_fixed_point(
    inputs: SimulationInputs,
    tolerance: float = TOLERANCE,
    damping: float = DAMPING,
    max_rounds: int = MAX_ROUNDS,
) -> ScenarioResult:
    """
    Damped fixed-point resolution of the participation <-> tax circularity.

    Needed when the reduced bracket makes the tax non-linear in the base.
    Never raises on numeric content: an exhausted round budget or a NaN
    residual returns the last estimate with converged=False.
    """
    if not 0 < damping <= 1:
        raise ValueError(f"damping must be in (0, 1], got {damping}")
    if max_rounds < 1:
        raise ValueError(f"max_rounds must be >= 1, got {max_rounds}")

    gross = inputs.gross_result
    tax = _regime_tax(inputs, _taxable_base(inputs, 0.0, 0.0))
    state = SolverState(
        taxable_base=_taxable_base(inputs, 0.0, 0.0),
        participation_deduction=0.0,
        reserves_deduction=0.0,
        tax_owed=tax,
        net_after_tax=gross - tax,
    )

    converged = False
    rounds = 0
    for _ in range(max_rounds):
        rounds += 1
        nxt, delta = fixed_point_step(inputs, state, damping)
        if not np.isfinite(delta):
            break
        if abs(delta) <= tolerance:
            converged = True
            break
        state = nxt

    # The accepted participation is the candidate of the last deduction, and
    # every allocation is derived from that single participation base.
    participation_base = _participation_base(inputs, state.participation_deduction)
    return _assemble_with_regime(inputs, participation_base, converged, rounds)


def solve_with_regime(
    inputs: SimulationInputs,
    strategy: str = "auto",
    tolerance: float = TOLERANCE,
    damping: float = DAMPING,
    max_rounds: int = MAX_ROUNDS,
) -> ScenarioResult:
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown strategy='{strategy}'. Use one of {STRATEGIES}.")

    if strategy == "closed_form" or (strategy == "auto" and not inputs.has_reduced_bracket):
        return solve_closed_form(inputs)
    return solve_fixed_point(inputs, tolerance=tolerance, damping=damping, max_rounds=max_rounds)


# ----------------------------
# Comparison
# ----------------------------

def compute_savings(without_regime: ScenarioResult, with_regime: ScenarioResult) -> SavingsSummary:
    tax = without_regime.tax_owed - with_regime.tax_owed
    cet = without_regime.cet
    return SavingsSummary(tax=tax, cet=cet, total=tax + cet)


def solve(inputs: SimulationInputs, strategy: str = "auto") -> SimulationResult:
    """
    Returns:
      SimulationResult(without_regime, with_regime, savings)
    """
    without = solve_without_regime(inputs)
    with_ = solve_with_regime(inputs, strategy=strategy)
    return SimulationResult(
        without_regime=without,
        with_regime=with_,
        savings=compute_savings(without, with_),
    )


def comparison_table(result: SimulationResult) -> pd.DataFrame:
    """Line items side by side, as shown in the results table."""
    a = result.without_regime
    b = result.with_regime
    nan = np.nan

    rows = [
        ("Résultat fiscal avant affectation", a.fiscal_result, b.fiscal_result),
        ("Contribution Économique (CET)", a.cet, b.cet),
        ("Base imposable avant déductions", a.taxable_base_before_deductions, b.taxable_base_before_deductions),
        ("Participation Salariés", nan, b.participation_amount),
        ("Réserves Impartageables", nan, b.reserves_amount),
        ("Dividendes", nan, b.dividends_amount),
        ("Déduction Participation", a.participation_deduction, -b.participation_deduction),
        ("Déduction Réserves (PPI)", a.reserves_deduction, -b.reserves_deduction),
        ("Base imposable à l'IS", a.taxable_base, b.taxable_base),
        ("Impôt sur les Sociétés (IS)", a.tax_owed, b.tax_owed),
        ("Coût Fiscal Total", a.total_tax_cost, b.total_tax_cost),
        ("Résultat Net Après IS", a.net_result, b.net_result),
    ]
    return pd.DataFrame(rows, columns=["Indicateur", "Sans SCOP", "Avec SCOP"])


def savings_indicators(result: SimulationResult) -> Dict[str, Any]:
    a = result.without_regime
    b = result.with_regime
    return {
        "fiscal_result": a.fiscal_result,
        "tax_without": a.tax_owed,
        "tax_with": b.tax_owed,
        "total_cost_without": a.total_tax_cost,
        "total_cost_with": b.total_tax_cost,
        "net_without": a.net_result,
        "net_with": b.net_result,
        "tax_savings": result.savings.tax,
        "cet_savings": result.savings.cet,
        "total_savings": result.savings.total,
        "converged": b.converged,
        "iterations": b.iterations,
    }
