from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from scop_sim.model import comparison_table, inputs_from_parameters, solve
from scop_sim.regimes import (
    DEFAULT_ALLOCATION,
    DEFAULT_CET,
    DEFAULT_FISCAL_RESULT,
    default_tax_parameters,
)
from scop_sim.simulations import sweep_fiscal_result

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Simulateur d'avantages fiscaux SCOP")
    p.add_argument(
        "--fiscal_result", type=float, default=DEFAULT_FISCAL_RESULT,
        help="Résultat fiscal prévisionnel (EUR)",
    )
    p.add_argument("--cet", type=float, default=DEFAULT_CET, help="CET annuelle (EUR)")
    p.add_argument(
        "--preset", default="NORMAL", choices=["NORMAL", "PME"], help="IS parameters preset"
    )
    p.add_argument(
        "--normal_rate", type=float, default=None, help="Override IS normal rate (%%)"
    )
    p.add_argument(
        "--reduced_ceiling",
        type=float,
        default=None,
        help="Override reduced-rate ceiling (EUR, 0 disables)",
    )
    p.add_argument(
        "--reduced_rate", type=float, default=None, help="Override IS reduced rate (%%)"
    )

    p.add_argument(
        "--participation", type=float, default=DEFAULT_ALLOCATION["participation"], help="%%"
    )
    p.add_argument("--reserves", type=float, default=DEFAULT_ALLOCATION["reserves"], help="%%")
    p.add_argument("--dividends", type=float, default=DEFAULT_ALLOCATION["dividends"], help="%%")

    p.add_argument("--sweep", action="store_true", help="Run sweep over --values")
    p.add_argument(
        "--values", type=float, nargs="+", default=None, help="Fiscal results for sweep"
    )
    p.add_argument("--out", default=None, help="Output CSV path for sweep")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    return p.parse_args()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    params = default_tax_parameters(args.preset)
    inputs = inputs_from_parameters(
        params,
        fiscal_result=args.fiscal_result,
        cet=args.cet,
        participation_pct=args.participation,
        reserves_pct=args.reserves,
        dividends_pct=args.dividends,
    )
    overrides = {}
    if args.normal_rate is not None:
        overrides["normal_rate"] = args.normal_rate
    if args.reduced_ceiling is not None:
        overrides["reduced_rate_ceiling"] = args.reduced_ceiling
    if args.reduced_rate is not None:
        overrides["reduced_rate"] = args.reduced_rate
    if overrides:
        inputs = replace(inputs, **overrides)
    logger.debug("inputs: %s", inputs)

    if args.sweep:
        if not args.values:
            raise SystemExit("You used --sweep but did not pass --values ...")

        df = sweep_fiscal_result(inputs, args.values)
        print(df.to_string(index=False))

        if args.out:
            out_path = Path(args.out)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(out_path, index=False)
            print(f"\nSaved: {out_path}")
        return

    result = solve(inputs)
    if not result.with_regime.converged:
        logger.warning(
            "SCOP solver did not converge after %d rounds, figures are the last estimate",
            result.with_regime.iterations,
        )

    print(f"--- IS: {params.name} ---")
    print(comparison_table(result).to_string(index=False, float_format=lambda x: f"{x:,.2f}"))

    print("\n--- Économies ---")
    for k, v in [
        ("tax", result.savings.tax),
        ("cet", result.savings.cet),
        ("total", result.savings.total),
    ]:
        print(f"{k}: {v:,.2f}")


if __name__ == "__main__":
    main()
