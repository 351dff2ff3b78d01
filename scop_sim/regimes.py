# scop_sim/regimes.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class TaxParameters:
    name: str
    normal_rate: float              # IS taux normal (%)
    reduced_rate_ceiling: float     # plafond d'assiette au taux réduit (EUR), 0 = désactivé
    reduced_rate: float             # IS taux réduit (%)

    @property
    def has_reduced_bracket(self) -> bool:
        return self.reduced_rate_ceiling > 0 and self.reduced_rate > 0


IS_NORMAL = TaxParameters(
    name="NORMAL",
    normal_rate=25.0,
    reduced_rate_ceiling=0.0,
    reduced_rate=0.0,
)

IS_PME = TaxParameters(
    name="PME",
    normal_rate=25.0,
    reduced_rate_ceiling=42500.0,   # valeur standard
    reduced_rate=15.0,
)


def default_tax_parameters(code: str) -> TaxParameters:
    """
    Presets IS:
      - NORMAL : 25% sur la totalité
      - PME    : 15% jusqu'à 42 500 EUR, 25% au-delà
    """
    c = code.strip().upper()
    if c == "NORMAL":
        return IS_NORMAL
    if c == "PME":
        return IS_PME
    raise ValueError(f"Unknown tax parameters code='{code}'. Use NORMAL or PME.")


# Planchers légaux d'affectation du résultat SCOP (%)
ALLOCATION_FLOORS: Dict[str, float] = {
    "participation": 25.0,
    "reserves": 16.0,
    "dividends": 0.0,
}

DEFAULT_ALLOCATION: Dict[str, float] = {
    "participation": 45.0,
    "reserves": 45.0,
    "dividends": 10.0,
}

DEFAULT_FISCAL_RESULT = 100000.0
DEFAULT_CET = 5000.0
