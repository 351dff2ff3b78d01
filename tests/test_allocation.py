from __future__ import annotations
import pytest
from scop_sim.allocation import Allocation, default_allocation, rebalance_allocation


def _values(a: Allocation) -> tuple:
    return (a.participation, a.reserves, a.dividends)


class TestRebalanceAllocation:
    def test_increase_taken_from_dividends_first(self) -> None:
        a = rebalance_allocation(default_allocation(), "participation", 50.0)
        assert _values(a) == pytest.approx((50.0, 45.0, 5.0))

    def test_increase_spills_over_to_reserves(self) -> None:
        a = rebalance_allocation(default_allocation(), "participation", 60.0)
        assert _values(a) == pytest.approx((60.0, 40.0, 0.0))

    def test_decrease_goes_to_dividends(self) -> None:
        a = rebalance_allocation(default_allocation(), "reserves", 30.0)
        assert _values(a) == pytest.approx((45.0, 30.0, 25.0))

    def test_dividends_change_skips_itself(self) -> None:
        a = rebalance_allocation(default_allocation(), "dividends", 5.0)
        assert _values(a) == pytest.approx((45.0, 50.0, 5.0))

    def test_value_clamped_to_maximum(self) -> None:
        a = rebalance_allocation(default_allocation(), "participation", 95.0)
        assert _values(a) == pytest.approx((84.0, 16.0, 0.0))

    def test_value_clamped_to_floor(self) -> None:
        a = rebalance_allocation(default_allocation(), "participation", 10.0)
        assert _values(a) == pytest.approx((25.0, 45.0, 30.0))

    def test_always_sums_to_100(self) -> None:
        a = default_allocation()
        for name, value in [("participation", 70.0), ("reserves", 20.0), ("dividends", 30.0), ("reserves", 60.0)]:
            a = rebalance_allocation(a, name, value)
            assert a.total == pytest.approx(100.0)
            assert a.participation >= 25.0
            assert a.reserves >= 16.0
            assert a.dividends >= 0.0

    def test_unknown_name_raises(self) -> None:
        with pytest.raises(ValueError):
            rebalance_allocation(default_allocation(), "bonus", 10.0)

    def test_input_not_mutated(self) -> None:
        a = default_allocation()
        rebalance_allocation(a, "participation", 60.0)
        assert _values(a) == (45.0, 45.0, 10.0)

    def test_fractional_value_keeps_exact_total(self) -> None:
        a = rebalance_allocation(default_allocation(), "participation", 25.5)
        assert _values(a) == pytest.approx((25.5, 45.0, 29.5))
        assert a.total == pytest.approx(100.0, abs=1e-9)

    def test_fractional_shares_are_not_rounded(self) -> None:
        a = rebalance_allocation(Allocation(45.25, 45.25, 9.5), "reserves", 40.75)
        assert _values(a) == pytest.approx((45.25, 40.75, 14.0))
        assert a.total == pytest.approx(100.0, abs=1e-9)


def test_as_inputs_kwargs() -> None:
    kw = Allocation(30.0, 50.0, 20.0).as_inputs_kwargs()
    assert kw == {"participation_pct": 30.0, "reserves_pct": 50.0, "dividends_pct": 20.0}
