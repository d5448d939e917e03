#!/usr/bin/env python3
"""
Pricing engine CLI. Every invocation: build engine → run command → print.

Usage:
    python3 -m amm.cli prices
    python3 -m amm.cli quote OUTCOME SHARES
    python3 -m amm.cli max-shares OUTCOME --budget 50
    python3 -m amm.cli max-shares OUTCOME --price 0.6
    python3 -m amm.cli max-loss
    python3 -m amm.cli simulate --trades 10 --seed 7

Market options (before the command):
    --model lmsr|ls-lmsr   --outcomes A,B,C,D
    --b 80   --alpha 0.01   --initial-shares 2000
    --balances A=10,B=4,...   start from existing balances

Output: JSON, one line. {"ok": true, ...} or {"ok": false, "error": "..."}
Logs go to stderr, level from AMM_LOG_LEVEL.
"""

import argparse
import json
import logging
import random
import sys
from decimal import Decimal, InvalidOperation

from amm.config import LOG_LEVEL
from amm.market_maker import CostFunctionEngine, LiquiditySensitiveEngine


logger = logging.getLogger("amm.cli")

DEFAULT_OUTCOMES = "A,B,C,D"


def reply(data):
    print(json.dumps(data))


def _str_map(values: dict) -> dict:
    return {k: str(v) for k, v in values.items()}


def _decimal(text: str) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from None


def parse_balances(text: str) -> dict[str, Decimal]:
    """'A=10,B=4.5' -> {"A": Decimal("10"), "B": Decimal("4.5")}"""
    balances = {}
    for item in text.split(","):
        outcome, sep, amount = item.partition("=")
        if not sep or not outcome.strip():
            raise ValueError(f"bad balance entry: {item!r} (want OUTCOME=AMOUNT)")
        try:
            balances[outcome.strip()] = Decimal(amount.strip())
        except InvalidOperation:
            raise ValueError(f"bad balance amount: {amount!r}") from None
    return balances


def build_engine(args):
    """
    LS-LMSR with --balances goes through from_state(). LMSR has no
    such constructor, so its balances are replayed as buys.
    """
    outcomes = [o.strip() for o in args.outcomes.split(",")]
    if args.model == "ls-lmsr":
        if args.balances:
            return LiquiditySensitiveEngine.from_state(
                parse_balances(args.balances), args.alpha)
        return LiquiditySensitiveEngine(outcomes, args.alpha,
                                        args.initial_shares)
    if args.balances:
        balances = parse_balances(args.balances)
        engine = CostFunctionEngine(list(balances), args.b)
        for outcome, amount in balances.items():
            engine.buy(outcome, amount)
        return engine
    return CostFunctionEngine(outcomes, args.b)


def describe(engine) -> dict:
    bound = engine.loss_bound()
    info = {"outcomes": list(engine.outcomes),
            "balances": _str_map(engine.get_balances()),
            "prices": _str_map(engine.prices()),
            "max_loss": str(bound.value),
            "authoritative": bound.authoritative}
    if isinstance(engine, LiquiditySensitiveEngine):
        info.update(model="ls-lmsr", alpha=str(engine.alpha),
                    b=str(engine.liquidity()))
    else:
        info.update(model="lmsr", b=str(engine.b))
    return info


def cmd_prices(engine, args):
    return {"ok": True, "prices": _str_map(engine.prices()),
            "instant_prices": _str_map(engine.instant_prices())}


def cmd_quote(engine, args):
    result = engine.preview(args.outcome, args.shares)
    return {"ok": True, "outcome": result.outcome,
            "shares": str(result.shares),
            "cost": str(result.cost),
            "average_price": str(result.average_price),
            "balances": _str_map(result.balances.as_dict()),
            "prices_after": _str_map(
                engine.prices_after_trade(args.outcome, result.shares))}


def cmd_max_shares(engine, args):
    if args.budget is not None:
        shares = engine.max_shares_from_cost(
            args.outcome, args.budget, precision=args.precision)
    else:
        shares = engine.max_shares_from_price(
            args.outcome, args.price, precision=args.precision)
    return {"ok": True, "outcome": args.outcome, "shares": str(shares),
            "cost": str(engine.trade_cost(args.outcome, shares))}


def cmd_max_loss(engine, args):
    bound = engine.loss_bound()
    return {"ok": True, "max_loss": str(bound.value),
            "authoritative": bound.authoritative,
            "method": bound.method}


def cmd_simulate(engine, args):
    """
    Same random buys against an LS-LMSR and an LMSR market with the
    same outcomes, then an optional even round on the LS-LMSR market.
    """
    outcomes = [o.strip() for o in args.outcomes.split(",")]
    ls = LiquiditySensitiveEngine(outcomes, args.alpha, args.initial_shares)
    fixed = CostFunctionEngine(outcomes, args.b)

    rng = random.Random(args.seed)
    max_amount = max(int(args.initial_shares / 2), 1)
    trades = []
    for _ in range(args.trades):
        outcome = rng.choice(outcomes)
        amount = Decimal(rng.randint(1, max_amount))
        trades.append({"outcome": outcome, "shares": str(amount),
                       "ls_lmsr_cost": str(ls.buy(outcome, amount)),
                       "lmsr_cost": str(fixed.buy(outcome, amount))})

    if args.even_amount:
        for outcome in outcomes:
            ls.buy(outcome, args.even_amount)

    logger.info("simulated %d trades over %s", len(trades), outcomes)
    return {"ok": True, "trades": trades,
            "ls_lmsr": describe(ls), "lmsr": describe(fixed)}


def main(argv=None):
    parser = argparse.ArgumentParser(description="LMSR / LS-LMSR pricing engine")
    parser.add_argument("--model", choices=["lmsr", "ls-lmsr"],
                        default="lmsr")
    parser.add_argument("--outcomes", default=DEFAULT_OUTCOMES,
                        help="Comma-separated outcome names")
    parser.add_argument("--b", type=_decimal, default=Decimal("80"),
                        help="LMSR liquidity parameter (default 80)")
    parser.add_argument("--alpha", type=_decimal, default=Decimal("0.01"),
                        help="LS-LMSR liquidity sensitivity (default 0.01)")
    parser.add_argument("--initial-shares", type=_decimal,
                        default=Decimal("2000"),
                        help="LS-LMSR seed per outcome (default 2000)")
    parser.add_argument("--balances", default=None,
                        help="Existing balances, e.g. A=10,B=4")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("prices")

    p = sub.add_parser("quote")
    p.add_argument("outcome")
    p.add_argument("shares", type=_decimal, help="Signed: negative sells")

    p = sub.add_parser("max-shares")
    p.add_argument("outcome")
    target = p.add_mutually_exclusive_group(required=True)
    target.add_argument("--budget", type=_decimal)
    target.add_argument("--price", type=_decimal)
    p.add_argument("--precision", type=_decimal, default=None)

    sub.add_parser("max-loss")

    p = sub.add_parser("simulate")
    p.add_argument("--trades", type=int, default=10)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--even-amount", type=_decimal, default=Decimal("100"),
                   help="Shares per outcome in the closing even round (0 to skip)")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=LOG_LEVEL, stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    commands = {
        "prices": cmd_prices,
        "quote": cmd_quote,
        "max-shares": cmd_max_shares,
        "max-loss": cmd_max_loss,
        "simulate": cmd_simulate,
    }

    try:
        engine = build_engine(args)
        reply(commands[args.command](engine, args))
    except Exception as e:
        logger.debug("command %s failed", args.command, exc_info=True)
        reply({"ok": False, "error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
