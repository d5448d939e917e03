"""
Risk bound: the most the market operator can lose, used to size the
subsidy the settlement layer deposits at market creation.

LMSR has a closed form, b * ln(n), valid for any trading path.

LS-LMSR has none. Its bound is found by pushing the largest outcome
until its next-share price saturates, then comparing everything the
market could have collected with what that outcome would pay out:

    1. max_outcome = largest balance (first in outcome order on ties)
    2. extra       = floor(max_shares_from_price(max_outcome, saturation))
    3. extra_in    = trade_cost(max_outcome, extra)
    4. payout      = q[max_outcome] + extra - initial_shares
    5. collected   = cost() - initial_cost + extra_in
    6. loss        = |min(collected - payout, 0)|

Step 4 only means something if initial_shares is the real seed. An
engine rebuilt with from_state() doesn't know it, so its bound is
flagged authoritative=False and required_subsidy() refuses it.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from amm import lmsr
from amm.config import SATURATION_PRICE
from amm.models import ZERO, to_decimal


@dataclass(frozen=True)
class RiskBound:
    """
    value: worst-case loss in collateral units (>= 0)
    authoritative: False when the engine can't know its own seed
    method: "closed_form" (LMSR) or "saturation_search" (LS-LMSR)
    """
    value: Decimal
    authoritative: bool
    method: str


def lmsr_loss_bound(b: Decimal, n: int) -> RiskBound:
    return RiskBound(value=lmsr.max_loss(b, n), authoritative=True,
                     method="closed_form")


def ls_lmsr_max_loss(engine, saturation_price=None) -> Decimal:
    """Steps 1-6 above, against a LiquiditySensitiveEngine."""
    if saturation_price is None:
        saturation_price = SATURATION_PRICE
    saturation_price = to_decimal(saturation_price)

    q = engine.balances
    # max() keeps the first maximal key, i.e. outcome order on ties
    max_outcome = max(q, key=q.__getitem__)

    extra = engine.max_shares_from_price(max_outcome, saturation_price)
    extra = extra.to_integral_value(rounding=ROUND_FLOOR)
    extra_collected = engine.trade_cost(max_outcome, extra)

    max_payout = q[max_outcome] + extra - engine.initial_shares

    collected = engine.cost() - engine.initial_cost
    max_collected = collected + extra_collected

    return abs(min(max_collected - max_payout, ZERO))


def ls_lmsr_loss_bound(engine, saturation_price=None) -> RiskBound:
    return RiskBound(value=ls_lmsr_max_loss(engine, saturation_price),
                     authoritative=engine.authoritative,
                     method="saturation_search")


def required_subsidy(engine) -> Decimal:
    """
    Collateral to deposit so the operator can always pay out.
    Raises ValueError if the engine's bound is only an estimate.
    """
    bound = engine.loss_bound()
    if not bound.authoritative:
        raise ValueError(
            "loss bound is not authoritative (engine built from state "
            "without its initial shares); can't size a subsidy from it")
    return bound.value
