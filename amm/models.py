"""
Value types shared by the engines.

Balances is the share-balance vector q: outcome -> shares issued.
It is immutable. A trade never edits a Balances in place; it builds
the next one (see Balances.shift), and the engine swaps it in.

All quantities are Decimal. Anything else coming in from a caller goes
through to_decimal first.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal


ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str to Decimal. Floats go through str() so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


@dataclass(frozen=True)
class Balances(Mapping):
    """
    Immutable share-balance vector, iterated in outcome order.

    outcomes and shares are parallel tuples. Behaves as a read-only
    mapping, so balances["A"], dict(balances) and balances.items() work.
    """
    outcomes: tuple
    shares: tuple

    @staticmethod
    def new(outcomes, fill=ZERO) -> "Balances":
        outcomes = tuple(outcomes)
        if len(outcomes) < 2:
            raise ValueError(
                f"a market needs at least 2 outcomes, got {len(outcomes)}")
        if len(set(outcomes)) != len(outcomes):
            raise ValueError(f"duplicate outcomes: {list(outcomes)}")
        fill = to_decimal(fill)
        return Balances(outcomes=outcomes,
                        shares=tuple(fill for _ in outcomes))

    @staticmethod
    def from_mapping(balances: Mapping) -> "Balances":
        """Build from any outcome -> quantity mapping, keeping its order."""
        base = Balances.new(balances.keys())
        return Balances(
            outcomes=base.outcomes,
            shares=tuple(to_decimal(balances[o]) for o in base.outcomes),
        )

    # Mapping protocol

    def __getitem__(self, outcome: str) -> Decimal:
        try:
            return self.shares[self.outcomes.index(outcome)]
        except ValueError:
            raise KeyError(outcome) from None

    def __iter__(self):
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    # Transitions

    def shift(self, outcome: str, delta: Decimal) -> "Balances":
        """New vector with delta added to one outcome."""
        if outcome not in self.outcomes:
            raise ValueError(f"unknown outcome: {outcome}")
        i = self.outcomes.index(outcome)
        shares = list(self.shares)
        shares[i] = shares[i] + to_decimal(delta)
        return Balances(outcomes=self.outcomes, shares=tuple(shares))

    def total(self) -> Decimal:
        return sum(self.shares, ZERO)

    def as_dict(self) -> dict[str, Decimal]:
        return dict(zip(self.outcomes, self.shares))


@dataclass(frozen=True)
class TradeResult:
    """
    A priced trade that may or may not have been committed.

    shares > 0 is a buy, shares < 0 a sell.
    cost is C(after) - C(before): positive when the trader pays,
    negative when the trader receives collateral back.
    """
    outcome: str
    shares: Decimal
    cost: Decimal
    balances: Balances

    @property
    def average_price(self) -> Decimal:
        if self.shares == ZERO:
            return ZERO
        return self.cost / self.shares
