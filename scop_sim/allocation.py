# scop_sim/allocation.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from scop_sim.regimes import ALLOCATION_FLOORS, DEFAULT_ALLOCATION

# Order in which the other shares give back (or take) the difference.
ADJUSTMENT_QUEUE = ("dividends", "reserves", "participation")


@dataclass(frozen=True)
class Allocation:
    participation: float
    reserves: float
    dividends: float

    @property
    def total(self) -> float:
        return self.participation + self.reserves + self.dividends

    def as_dict(self) -> Dict[str, float]:
        return {
            "participation": self.participation,
            "reserves": self.reserves,
            "dividends": self.dividends,
        }

    def as_inputs_kwargs(self) -> Dict[str, float]:
        return {
            "participation_pct": self.participation,
            "reserves_pct": self.reserves,
            "dividends_pct": self.dividends,
        }


def default_allocation() -> Allocation:
    return Allocation(**DEFAULT_ALLOCATION)


def rebalance_allocation(
    current: Allocation,
    name: str,
    value: float,
    floors: Dict[str, float] = ALLOCATION_FLOORS,
) -> Allocation:
    """
    Sets one share and moves the others so that the three still sum to 100.

    - `value` is clamped between its floor and 100 minus the other floors
    - the opposite change is spread over dividends, then reserves, then
      participation (skipping `name`), never pushing one below its floor
    - whatever keeps the sum off 100 is absorbed by dividends
    """
    if name not in floors:
        raise ValueError(f"Unknown allocation '{name}'. Use one of {sorted(floors)}.")

    nxt = current.as_dict()
    original = nxt[name]

    other_floors = sum(v for k, v in floors.items() if k != name)
    clamped = max(floors[name], min(float(value), 100.0 - other_floors))

    nxt[name] = clamped
    remaining = -(clamped - original)

    for key in ADJUSTMENT_QUEUE:
        if key == name:
            continue
        if remaining == 0:
            break
        available = nxt[key] - floors[key]
        if remaining > 0:
            change = remaining
        else:
            change = -min(abs(remaining), max(0.0, available))
        nxt[key] += change
        remaining -= change

    gap = 100.0 - sum(nxt.values())
    if abs(gap) > 1e-9:
        nxt["dividends"] += gap

    return Allocation(**nxt)
