"""
Inverse solver. Neither cost function can be inverted in closed form
for a single outcome, so "how many shares for X collateral" and "how
many shares to move the price to P" are answered numerically.

Both questions are the same search: the largest dq >= 0 with
probe(dq) <= target, for a probe that is non-decreasing in dq.

    expand:  high = 1, double while probe(high) < target
    bisect:  keep probe(low) <= target, shrink [low, high] until
             high - low <= precision, return low

low starts at 0 and only ever moves to points that passed the probe,
so the answer never overshoots the target. A target at or below
probe(0) (e.g. budget <= 0) returns 0.

Both phases share one iteration budget. A probe that never reaches the
target (an LMSR price target >= 1, or a non-monotone probe) raises
SolverDidNotConverge instead of spinning forever.
"""

import logging
from decimal import Decimal, localcontext
from typing import Callable, Optional

from amm.config import (
    DECIMAL_PRECISION, SOLVER_PRECISION, SOLVER_MAX_ITERATIONS,
)
from amm.models import ZERO, ONE, to_decimal


logger = logging.getLogger(__name__)

TWO = Decimal("2")


class SolverDidNotConverge(RuntimeError):
    """Iteration budget exhausted. Carries the last bracket for diagnosis."""

    def __init__(self, phase: str, iterations: int,
                 low: Decimal, high: Decimal):
        self.phase = phase
        self.iterations = iterations
        self.low = low
        self.high = high
        super().__init__(
            f"solver did not converge during {phase} after "
            f"{iterations} iterations (bracket [{low}, {high}])")


def max_shares(probe: Callable[[Decimal], Decimal], target,
               precision: Optional[Decimal] = None,
               max_iterations: Optional[int] = None) -> Decimal:
    """
    Largest dq >= 0 with probe(dq) <= target, to within precision shares.

    probe must be non-decreasing in dq. precision is an absolute width
    on the share quantity, not on the probe's output.
    """
    target = to_decimal(target)
    precision = SOLVER_PRECISION if precision is None else to_decimal(precision)
    if max_iterations is None:
        max_iterations = SOLVER_MAX_ITERATIONS
    if precision <= ZERO:
        raise ValueError(f"precision must be positive, got {precision}")

    low = ZERO
    high = ONE
    iterations = 0

    # Expand high until the probe reaches the target
    while probe(high) < target:
        iterations += 1
        if iterations >= max_iterations:
            logger.warning("expansion gave up at high=%s target=%s",
                           high, target)
            raise SolverDidNotConverge("expansion", iterations, low, high)
        low = high
        high *= TWO

    # low was the last point below target (or 0); bisect between them
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        while high - low > precision:
            mid = (low + high) / TWO
            if mid == low or mid == high:
                # bracket is one ulp wide at this precision
                break
            iterations += 1
            if iterations >= max_iterations:
                logger.warning("bisection gave up at [%s, %s]", low, high)
                raise SolverDidNotConverge("bisection", iterations, low, high)
            if probe(mid) > target:
                high = mid
            else:
                low = mid

    logger.debug("max_shares target=%s -> %s (%d iterations)",
                 target, low, iterations)
    return low
