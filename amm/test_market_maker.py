"""
Engine tests: trading surface of CostFunctionEngine (LMSR) and
LiquiditySensitiveEngine (LS-LMSR).

Solver and risk bound have their own modules; here they only show up
where the engine's surface exposes them.
"""

import dataclasses
import random
import threading
from decimal import Decimal

import pytest

from amm.market_maker import (
    CostFunctionEngine, LiquiditySensitiveEngine, InsufficientShares,
)
from amm.models import Balances, TradeResult, ZERO, ONE


OUTCOMES = ["A", "B", "C", "D"]
NOISE = Decimal("1e-20")


def lmsr(b="80"):
    return CostFunctionEngine(OUTCOMES, Decimal(b))


def ls_lmsr(alpha="0.01", initial_shares="2000"):
    return LiquiditySensitiveEngine(OUTCOMES, Decimal(alpha),
                                    Decimal(initial_shares))


def both_engines():
    return [lmsr(), ls_lmsr()]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestConstruction:

    def test_lmsr_starts_empty(self):
        engine = lmsr()
        assert engine.get_balances() == {o: ZERO for o in OUTCOMES}

    def test_ls_lmsr_seeds_every_outcome(self):
        engine = ls_lmsr()
        assert engine.get_balances() == {o: Decimal("2000") for o in OUTCOMES}
        assert engine.liquidity() == Decimal("80")

    def test_ls_lmsr_snapshots_initial_cost(self):
        engine = ls_lmsr()
        assert engine.initial_cost == engine.cost()
        engine.buy("A", 500)
        assert engine.initial_cost < engine.cost()

    def test_needs_two_outcomes(self):
        with pytest.raises(ValueError):
            CostFunctionEngine(["only"], Decimal("10"))

    def test_rejects_duplicate_outcomes(self):
        with pytest.raises(ValueError):
            LiquiditySensitiveEngine(["A", "A"], Decimal("0.1"))

    @pytest.mark.parametrize("b", ["0", "-5"])
    def test_b_must_be_positive(self, b):
        with pytest.raises(ValueError):
            CostFunctionEngine(OUTCOMES, Decimal(b))

    def test_alpha_must_be_positive(self):
        with pytest.raises(ValueError):
            LiquiditySensitiveEngine(OUTCOMES, ZERO, Decimal("10"))

    def test_initial_shares_non_negative(self):
        with pytest.raises(ValueError):
            LiquiditySensitiveEngine(OUTCOMES, Decimal("0.1"), Decimal("-1"))

    def test_accepts_plain_numbers(self):
        """ints, floats and strings are coerced to Decimal."""
        engine = LiquiditySensitiveEngine(OUTCOMES, 0.01, "2000")
        assert engine.alpha == Decimal("0.01")
        assert engine.initial_shares == Decimal("2000")

    def test_outcome_at_is_one_based(self):
        engine = lmsr()
        assert engine.outcome_at(1) == "A"
        assert engine.outcome_at(4) == "D"
        with pytest.raises(ValueError):
            engine.outcome_at(0)
        with pytest.raises(ValueError):
            engine.outcome_at(5)


class TestFromState:

    def test_takes_balances_as_given(self):
        engine = LiquiditySensitiveEngine.from_state(
            {"yes": Decimal("30"), "no": Decimal("10")}, Decimal("0.05"))
        assert engine.outcomes == ("yes", "no")
        assert engine.get_balances() == {"yes": Decimal("30"),
                                         "no": Decimal("10")}
        assert engine.initial_shares == ZERO
        assert engine.liquidity() == Decimal("2.00")

    def test_zero_state_costs_zero(self):
        engine = LiquiditySensitiveEngine.from_state(
            {"A": 0, "B": 0, "C": 0}, Decimal("0.1"))
        assert engine.cost() == ZERO
        assert engine.initial_cost == ZERO

    def test_flags_bound_non_authoritative(self):
        engine = LiquiditySensitiveEngine.from_state(
            {"A": 100, "B": 50}, Decimal("0.1"))
        assert engine.authoritative is False
        assert ls_lmsr().authoritative is True

    def test_rejects_negative_balances(self):
        with pytest.raises(ValueError):
            LiquiditySensitiveEngine.from_state(
                {"A": 5, "B": -1}, Decimal("0.1"))

    def test_can_trade_after_rebuild(self):
        engine = LiquiditySensitiveEngine.from_state(
            {"A": 100, "B": 100}, Decimal("0.1"))
        assert engine.buy("A", 10) > ZERO
        assert engine.balances["A"] == Decimal("110")


# ---------------------------------------------------------------------------
# Cost and prices
# ---------------------------------------------------------------------------

class TestScenario:
    """outcomes A-D, b = 80."""

    def test_zero_state_cost(self):
        assert abs(lmsr().cost() - Decimal("110.904")) < Decimal("0.001")

    def test_zero_state_max_loss(self):
        assert abs(lmsr().max_loss() - Decimal("110.90")) < Decimal("0.01")

    def test_buying_a_raises_its_price(self):
        engine = lmsr()
        engine.buy("A", 100)
        p = engine.prices()
        assert p["A"] > p["B"]
        assert abs(p["B"] - p["C"]) < NOISE
        assert abs(p["B"] - p["D"]) < NOISE


class TestPrices:

    @pytest.mark.parametrize("engine", both_engines())
    def test_equal_balances_equal_prices(self, engine):
        p = list(engine.prices().values())
        assert all(abs(v - p[0]) < NOISE for v in p)

    def test_prices_are_one_share_cost(self):
        engine = lmsr()
        engine.buy("B", 37)
        for o in OUTCOMES:
            assert engine.prices()[o] == engine.trade_cost(o, 1)

    def test_lmsr_one_share_price_above_instant(self):
        """Discrete next-share cost sits above the gradient (convexity)."""
        engine = lmsr()
        p = engine.prices()["A"]
        assert Decimal("0.25") < p < Decimal("0.26")

    def test_discrete_converges_to_instant_for_large_b(self):
        engine = lmsr(b="100000")
        engine.buy("A", 5000)
        discrete = engine.prices()
        instant = engine.instant_prices()
        for o in OUTCOMES:
            assert abs(discrete[o] - instant[o]) < Decimal("0.0001")

    def test_ls_lmsr_prices_sum_above_one(self):
        engine = ls_lmsr()
        engine.buy("C", 700)
        assert sum(engine.prices().values()) > ONE

    @pytest.mark.parametrize("engine", both_engines())
    def test_prices_after_trade_does_not_mutate(self, engine):
        before = engine.balances
        after = engine.prices_after_trade("A", 250)
        assert engine.balances == before
        assert after["A"] > engine.prices()["A"]

    def test_prices_after_trade_matches_committed_trade(self):
        engine = ls_lmsr()
        preview = engine.prices_after_trade("D", 321)
        engine.buy("D", 321)
        assert preview == engine.prices()

    def test_prices_after_zero_trade_are_current_prices(self):
        engine = lmsr()
        engine.buy("A", 12)
        assert engine.prices_after_trade("B", 0) == engine.prices()


class TestMonotonicity:

    @pytest.mark.parametrize("engine", both_engines())
    def test_trade_cost_non_decreasing(self, engine):
        engine.buy("B", 150)
        sizes = [Decimal(x) for x in ("0", "0.5", "1", "7", "40", "300", "2500")]
        for outcome in OUTCOMES:
            costs = [engine.trade_cost(outcome, s) for s in sizes]
            assert costs == sorted(costs)

    @pytest.mark.parametrize("engine", both_engines())
    def test_zero_trade_costs_nothing(self, engine):
        assert engine.trade_cost("A", 0) == ZERO


# ---------------------------------------------------------------------------
# Trading
# ---------------------------------------------------------------------------

class TestTrading:

    @pytest.mark.parametrize("engine", both_engines())
    def test_buy_returns_cost_delta(self, engine):
        before = engine.cost()
        charged = engine.buy("A", 42)
        assert charged == engine.cost() - before
        assert charged > ZERO

    @pytest.mark.parametrize("engine", both_engines())
    def test_quote_then_commit_agree(self, engine):
        quoted = engine.trade_cost("C", Decimal("17.25"))
        assert engine.buy("C", Decimal("17.25")) == quoted

    @pytest.mark.parametrize("engine", both_engines())
    def test_round_trip(self, engine):
        """buy then sell the same amount: balances restored, AMM not out of pocket."""
        engine.buy("D", 60)
        start = engine.balances
        paid = engine.buy("A", Decimal("88.8"))
        received = engine.sell("A", Decimal("88.8"))
        assert engine.balances == start
        assert received < ZERO
        assert paid + received >= -NOISE

    def test_ls_lmsr_buy_and_sell_take_magnitudes(self):
        engine = ls_lmsr()
        engine.buy("A", -10)
        assert engine.balances["A"] == Decimal("2010")
        engine.sell("A", -4)
        assert engine.balances["A"] == Decimal("2006")

    def test_lmsr_buy_keeps_the_sign(self):
        """A negative LMSR buy sells back and pays out; it never buys more."""
        engine = lmsr()
        engine.buy("A", 10)
        before = engine.cost()
        delta = engine.buy("A", -5)
        assert engine.balances["A"] == Decimal("5")
        assert delta < ZERO
        assert delta == engine.cost() - before

    def test_lmsr_negative_buy_cannot_oversell(self):
        engine = lmsr()
        engine.buy("A", 3)
        with pytest.raises(InsufficientShares):
            engine.buy("A", -4)
        assert engine.balances["A"] == Decimal("3")

    def test_trade_takes_signed_amount(self):
        engine = ls_lmsr()
        assert engine.trade("B", -100) < ZERO
        assert engine.balances["B"] == Decimal("1900")

    def test_fractional_shares(self):
        engine = lmsr()
        engine.buy("A", Decimal("0.125"))
        assert engine.balances["A"] == Decimal("0.125")

    def test_unknown_outcome(self):
        engine = lmsr()
        with pytest.raises(ValueError, match="unknown outcome"):
            engine.buy("Z", 1)
        with pytest.raises(ValueError, match="unknown outcome"):
            engine.trade_cost("Z", 1)
        with pytest.raises(ValueError, match="unknown outcome"):
            engine.max_shares_from_cost("Z", 10)


class TestInsufficientShares:

    def test_cant_sell_more_than_issued(self):
        """Must fail before touching state."""
        engine = lmsr()
        engine.buy("A", 5)
        before = engine.balances
        with pytest.raises(InsufficientShares) as info:
            engine.sell("A", 6)
        assert engine.balances == before
        assert info.value.outcome == "A"
        assert info.value.held == Decimal("5")
        assert info.value.requested == Decimal("6")

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            lmsr().sell("B", 1)

    def test_quote_is_guarded_too(self):
        with pytest.raises(InsufficientShares):
            lmsr().trade_cost("A", -1)

    def test_selling_everything_is_fine(self):
        engine = ls_lmsr()
        engine.sell("A", 2000)
        assert engine.balances["A"] == ZERO


# ---------------------------------------------------------------------------
# Value semantics and concurrency
# ---------------------------------------------------------------------------

class TestValueSemantics:

    def test_preview_returns_next_state(self):
        engine = lmsr()
        result = engine.preview("B", 20)
        assert isinstance(result, TradeResult)
        assert result.balances["B"] == Decimal("20")
        assert engine.balances["B"] == ZERO
        assert result.cost == engine.trade_cost("B", 20)
        assert result.average_price == result.cost / 20

    def test_old_balances_survive_trades(self):
        engine = lmsr()
        snapshot = engine.balances
        engine.buy("A", 9)
        assert snapshot["A"] == ZERO
        assert engine.balances["A"] == Decimal("9")

    def test_balances_are_frozen(self):
        balances = lmsr().balances
        with pytest.raises(dataclasses.FrozenInstanceError):
            balances.shares = (ONE,) * 4
        with pytest.raises(TypeError):
            balances["A"] = ONE

    def test_get_balances_is_a_copy(self):
        engine = lmsr()
        copy = engine.get_balances()
        copy["A"] = Decimal("999")
        assert engine.balances["A"] == ZERO

    def test_cost_of_explicit_state(self):
        engine = lmsr()
        other = Balances.new(OUTCOMES).shift("A", 100)
        assert engine.cost(other) > engine.cost()
        assert engine.balances["A"] == ZERO


class TestConcurrency:

    @pytest.mark.parametrize("engine", both_engines())
    def test_concurrent_buys_all_land(self, engine):
        """8 threads x 25 buys each. No update lost."""
        start = engine.balances["A"]

        def worker():
            for _ in range(25):
                engine.buy("A", 1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.balances["A"] == start + 200

    def test_sequential_buys_get_worse_prices(self):
        engine = lmsr()
        first = engine.buy("A", 50)
        second = engine.buy("A", 50)
        assert second > first


class TestRandomTrading:

    @pytest.mark.parametrize("engine", both_engines())
    def test_cost_tracks_sum_of_deltas(self, engine):
        """Σ trade deltas == C(final) - C(initial), path independent."""
        rng = random.Random(42)
        start = engine.cost()
        total = ZERO
        for _ in range(60):
            outcome = rng.choice(OUTCOMES)
            amount = Decimal(rng.randint(1, 300))
            if rng.random() < 0.3 and engine.balances[outcome] >= amount:
                total += engine.sell(outcome, amount)
            else:
                total += engine.buy(outcome, amount)
        assert abs(total - (engine.cost() - start)) < Decimal("1e-15")
