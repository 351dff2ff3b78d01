from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Iterable

import pandas as pd

from scop_sim.model import SimulationInputs, savings_indicators, solve

logger = logging.getLogger(__name__)

SWEEP_COLUMNS = [
    "fiscal_result",
    "tax_without",
    "tax_with",
    "net_without",
    "net_with",
    "tax_savings",
    "cet_savings",
    "total_savings",
    "converged",
    "iterations",
]


def sweep_field(
    inputs: SimulationInputs,
    field: str,
    values: Iterable[float],
    strategy: str = "auto",
) -> pd.DataFrame:
    """
    Re-solves `inputs` for each value of one input field and returns the
    indicators per scenario (one row per value, swept column first).
    """
    names = {f.name for f in fields(SimulationInputs)}
    if field not in names:
        raise ValueError(f"Unknown input field '{field}'. Use one of {sorted(names)}.")

    rows = []
    for v in values:
        scenario = replace(inputs, **{field: float(v)})
        ind = savings_indicators(solve(scenario, strategy=strategy))
        if not ind["converged"]:
            logger.warning(
                "SCOP solver did not converge for %s=%s after %d rounds",
                field, v, ind["iterations"],
            )
        ind[field] = float(v)
        rows.append(ind)

    cols = [field] + [c for c in SWEEP_COLUMNS if c != field]
    if not rows:
        return pd.DataFrame(columns=cols)
    return pd.DataFrame(rows)[cols]


def sweep_fiscal_result(
    inputs: SimulationInputs,
    fiscal_results: Iterable[float],
    strategy: str = "auto",
) -> pd.DataFrame:
    """Runs the comparison for a grid of fiscal results."""
    return sweep_field(inputs, "fiscal_result", fiscal_results, strategy=strategy)
