"""
Cost-function market makers. Own a balance vector, price trades against it.

Two engines share one surface (PricingEngine):
  CostFunctionEngine        LMSR, fixed liquidity b
  LiquiditySensitiveEngine  LS-LMSR, liquidity b(q) = alpha * sum(q)

Every trade is priced as C(after) - C(before). preview() is the pure
transition: it returns the next Balances and the cost without touching
the engine. trade() commits a preview under the engine lock, so two
threads trading on one engine cannot interleave quote and commit.
Read-only queries (cost, prices, trade_cost, the solvers, max_loss)
never mutate and need no lock.

prices() is the discrete cost of the next whole share, trade_cost(o, 1),
not the gradient. instant_prices() is the gradient.

The engine does not move collateral or know who holds what. It only
refuses trades that would push an outcome's balance below zero
(InsufficientShares).
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal

from amm import lmsr
from amm.models import Balances, TradeResult, ZERO, ONE, to_decimal
from amm.risk import RiskBound, lmsr_loss_bound, ls_lmsr_loss_bound
from amm.solver import max_shares


logger = logging.getLogger(__name__)


class InsufficientShares(ValueError):
    """A trade would leave an outcome with a negative balance."""

    def __init__(self, outcome: str, held: Decimal, requested: Decimal):
        self.outcome = outcome
        self.held = held
        self.requested = requested
        super().__init__(
            f"can't sell {requested} {outcome}, only {held} issued")


class PricingEngine(ABC):

    def __init__(self, balances: Balances):
        self._balances = balances
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def outcomes(self) -> tuple:
        return self._balances.outcomes

    @property
    def balances(self) -> Balances:
        return self._balances

    def get_balances(self) -> dict[str, Decimal]:
        return self._balances.as_dict()

    def outcome_at(self, index: int) -> str:
        """Outcome by 1-based index, the way the settlement contract numbers them."""
        if not 1 <= index <= len(self.outcomes):
            raise ValueError(
                f"outcome index {index} out of range 1..{len(self.outcomes)}")
        return self.outcomes[index - 1]

    # ------------------------------------------------------------------
    # Cost function (per engine)
    # ------------------------------------------------------------------

    @abstractmethod
    def cost(self, q: Mapping = None) -> Decimal:
        """C(q). Defaults to the live balances."""

    @abstractmethod
    def instant_prices(self) -> dict[str, Decimal]:
        """Gradient of C at the live balances."""

    @abstractmethod
    def loss_bound(self) -> RiskBound:
        """Worst-case operator loss, with a flag saying whether to trust it."""

    def max_loss(self) -> Decimal:
        return self.loss_bound().value

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    def preview(self, outcome: str, shares) -> TradeResult:
        """
        Price a trade without committing it.

        shares > 0 buys, shares < 0 sells. Raises ValueError for an
        unknown outcome and InsufficientShares if the balance would go
        negative.
        """
        shares = to_decimal(shares)
        before = self._balances
        after = before.shift(outcome, shares)
        if after[outcome] < ZERO:
            raise InsufficientShares(outcome, before[outcome], -shares)
        return TradeResult(
            outcome=outcome,
            shares=shares,
            cost=self.cost(after) - self.cost(before),
            balances=after,
        )

    def trade(self, outcome: str, shares) -> Decimal:
        """Commit a signed trade. Returns the collateral delta."""
        with self._lock:
            result = self.preview(outcome, shares)
            self._balances = result.balances
        logger.debug("trade %s %s cost=%s", result.shares, outcome,
                     result.cost)
        return result.cost

    def buy(self, outcome: str, shares) -> Decimal:
        """Buy |shares|. Returns the collateral charged. LMSR overrides this."""
        return self.trade(outcome, abs(to_decimal(shares)))

    def sell(self, outcome: str, shares) -> Decimal:
        """Sell |shares|. Returns a negative delta: collateral paid back."""
        return self.trade(outcome, -abs(to_decimal(shares)))

    def trade_cost(self, outcome: str, shares) -> Decimal:
        return self.preview(outcome, shares).cost

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def prices(self) -> dict[str, Decimal]:
        """Cost of the next whole share of each outcome."""
        return {o: self.trade_cost(o, ONE) for o in self.outcomes}

    def prices_after_trade(self, outcome: str, shares) -> dict[str, Decimal]:
        """prices() as they would be after a hypothetical trade."""
        q = self.preview(outcome, shares).balances
        base = self.cost(q)
        return {o: self.cost(q.shift(o, ONE)) - base for o in self.outcomes}

    def _price_after(self, outcome: str, shares: Decimal) -> Decimal:
        q = self.preview(outcome, shares).balances
        return self.cost(q.shift(outcome, ONE)) - self.cost(q)

    # ------------------------------------------------------------------
    # Inverse queries
    # ------------------------------------------------------------------

    def max_shares_from_cost(self, outcome: str, budget,
                             precision=None) -> Decimal:
        """Most shares of outcome that cost at most budget."""
        self._check_outcome(outcome)
        return max_shares(lambda dq: self.trade_cost(outcome, dq),
                          budget, precision=precision)

    def max_shares_from_price(self, outcome: str, target_price,
                              precision=None) -> Decimal:
        """Most shares of outcome that keep its next-share price <= target."""
        self._check_outcome(outcome)
        return max_shares(lambda dq: self._price_after(outcome, dq),
                          target_price, precision=precision)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_outcome(self, outcome: str) -> None:
        if outcome not in self.outcomes:
            raise ValueError(f"unknown outcome: {outcome}")


class CostFunctionEngine(PricingEngine):
    """LMSR with fixed liquidity b. Max loss b * ln(n), known up front."""

    def __init__(self, outcomes, b):
        b = to_decimal(b)
        if b <= ZERO:
            raise ValueError(f"b must be positive, got {b}")
        super().__init__(Balances.new(outcomes))
        self.b = b

    def buy(self, outcome: str, shares) -> Decimal:
        """Add shares as given: a negative amount sells, and can't oversell."""
        return self.trade(outcome, to_decimal(shares))

    def cost(self, q: Mapping = None) -> Decimal:
        return lmsr.cost(self._balances if q is None else q, self.b)

    def instant_prices(self) -> dict[str, Decimal]:
        return lmsr.prices(self._balances, self.b)

    def loss_bound(self) -> RiskBound:
        return lmsr_loss_bound(self.b, len(self.outcomes))


class LiquiditySensitiveEngine(PricingEngine):
    """
    LS-LMSR. Liquidity grows with volume: b(q) = alpha * sum(q).

    initial_shares seeds every outcome so b starts above zero; it is
    the operator's subsidy. initial_cost = C(seeded balances) is the
    zero point for collateral collected.

    Engines built with from_state() don't know the seed, so their loss
    bound comes back with authoritative=False.
    """

    def __init__(self, outcomes, alpha, initial_shares=ZERO):
        alpha = to_decimal(alpha)
        initial_shares = to_decimal(initial_shares)
        if alpha <= ZERO:
            raise ValueError(f"alpha must be positive, got {alpha}")
        if initial_shares < ZERO:
            raise ValueError(
                f"initial shares must be non-negative, got {initial_shares}")
        super().__init__(Balances.new(outcomes, fill=initial_shares))
        self.alpha = alpha
        self.initial_shares = initial_shares
        self.initial_cost = self.cost()
        self.authoritative = True

    @classmethod
    def from_state(cls, balances: Mapping, alpha) -> "LiquiditySensitiveEngine":
        """
        Rebuild from existing balances (e.g. read off-chain from the
        settlement contract). The seed is unknown and taken as 0, so
        max_loss() is an estimate, not a bound.
        """
        state = Balances.from_mapping(balances)
        negative = [o for o, v in state.items() if v < ZERO]
        if negative:
            raise ValueError(f"negative balances for outcomes: {negative}")
        engine = cls(state.outcomes, alpha)
        engine._balances = state
        engine.authoritative = False
        return engine

    def liquidity(self, q: Mapping = None) -> Decimal:
        return lmsr.liquidity(self._balances if q is None else q, self.alpha)

    def cost(self, q: Mapping = None) -> Decimal:
        return lmsr.ls_cost(self._balances if q is None else q, self.alpha)

    def instant_prices(self) -> dict[str, Decimal]:
        return lmsr.ls_prices(self._balances, self.alpha)

    def loss_bound(self) -> RiskBound:
        return ls_lmsr_loss_bound(self)
