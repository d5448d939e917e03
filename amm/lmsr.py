"""
LMSR and LS-LMSR cost functions. Pure math, no state.

All functions take Decimal inputs and return Decimal outputs.
The engines (market_maker.py) own the balance vector and call in here.

Notation:
    q: mapping outcome -> shares issued (e.g. {"A": Decimal, "B": Decimal})
    b: Decimal, LMSR liquidity parameter (max loss = b * ln(n))
    alpha: Decimal, LS-LMSR liquidity sensitivity, b(q) = alpha * sum(q)

exp and ln are Decimal.exp() / Decimal.ln(), which are correctly
rounded. Evaluated at config.DECIMAL_PRECISION digits, every result is
reproducible bit for bit, independent of the platform's float libm.
"""

from collections.abc import Mapping
from decimal import Decimal, localcontext

from amm.config import DECIMAL_PRECISION
from amm.models import ZERO, ONE


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _log_sum_exp(values: list[Decimal], scale: Decimal) -> Decimal:
    """
    scale * ln(Σ e^(v / scale)), shifted by max(v) so no exponent is
    positive. e^(huge) would overflow the context; e^(-huge) is just 0.
    """
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        m = max(values)
        total = sum(((v - m) / scale).exp() for v in values)
        return m + scale * total.ln()


def _softmax(values: list[Decimal], scale: Decimal) -> list[Decimal]:
    """e^(v_i / scale) / Σ e^(v_j / scale), max-shifted."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        m = max(values)
        exps = [((v - m) / scale).exp() for v in values]
        total = sum(exps)
        return [e / total for e in exps]


# ---------------------------------------------------------------------------
# LMSR
# ---------------------------------------------------------------------------

def cost(q: Mapping, b: Decimal) -> Decimal:
    """
    Cost function: C(q) = b * ln(Σ e^(q_i / b))

    Total collateral the market maker holds for balances q. At q = 0
    this is b * ln(n), the subsidy. Trade prices are always
    C(after) - C(before).
    """
    return _log_sum_exp(list(q.values()), b)


def prices(q: Mapping, b: Decimal) -> dict[str, Decimal]:
    """
    Instantaneous prices, p_i = e^(q_i / b) / Σ e^(q_j / b).

    The gradient of cost(). Always sums to 1. The engines' prices()
    are the discrete one-share cost instead; for large b the two agree.
    """
    return dict(zip(q.keys(), _softmax(list(q.values()), b)))


def max_loss(b: Decimal, n: int) -> Decimal:
    """Maximum market maker loss: b * ln(n). The required initial funding."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        return b * Decimal(n).ln()


# ---------------------------------------------------------------------------
# LS-LMSR
# ---------------------------------------------------------------------------

def liquidity(q: Mapping, alpha: Decimal) -> Decimal:
    """b(q) = alpha * Σ q_i. Recomputed from q, never stored."""
    return alpha * sum(q.values(), ZERO)


def ls_cost(q: Mapping, alpha: Decimal) -> Decimal:
    """
    C(q) = b(q) * ln(Σ e^(q_i / b(q)))

    Zero when Σ q_i = 0: there is no liquidity to divide by, and the
    limit of C along any ray into the origin is 0.
    """
    b = liquidity(q, alpha)
    if b == ZERO:
        return ZERO
    return _log_sum_exp(list(q.values()), b)


def ls_prices(q: Mapping, alpha: Decimal) -> dict[str, Decimal]:
    """
    Instantaneous LS-LMSR prices (gradient of ls_cost):

        ∂C/∂q_k = p_k + alpha * (ln Σ e^(q_j / b) - Σ p_j q_j / b)

    with p the softmax of q / b. These sum to 1 + alpha * H(p) >= 1,
    the market maker's built-in spread.

    At Σ q = 0 the gradient depends on direction (C is homogeneous of
    degree one); we return its value along the uniform ray,
    1/n + alpha * ln(n).
    """
    values = list(q.values())
    n = len(values)
    b = liquidity(q, alpha)
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        if b == ZERO:
            uniform = ONE / n + alpha * Decimal(n).ln()
            return {o: uniform for o in q.keys()}
        p = _softmax(values, b)
        m = max(values)
        log_sum = m / b + sum(((v - m) / b).exp() for v in values).ln()
        weighted = sum(pi * v for pi, v in zip(p, values)) / b
        spread = alpha * (log_sum - weighted)
        return {o: pi + spread for o, pi in zip(q.keys(), p)}
