from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

import numpy as np

from ..config import Strategy

MOMENTUM_LOOKBACK = 3
TACTICAL_WINDOW = 6
TACTICAL_TARGET_VOL = 0.05
SMART_BETA_NOISE = 0.05


@dataclass(frozen=True)
class StrategyContext:
    month: int
    prices: Sequence[float]        # signal price history, prices[0..month]
    nominal_amount: float
    cumulative_invested: float = 0.0  # cash invested through the previous month
    portfolio_value: float = 0.0    # holdings at this month's prices, before contributing
    rng: Optional[np.random.Generator] = None


def momentum(prices, month: int, lookback: int = MOMENTUM_LOOKBACK) -> float:
    if month <= lookback:
        return 0.0
    base = prices[month - lookback]
    return (prices[month] - base) / base


def decline(prices, month: int) -> float:
    if month <= 1:
        return 0.0
    prev = prices[month - 1]
    return (prev - prices[month]) / prev


def recent_volatility(prices, month: int, window: int = TACTICAL_WINDOW) -> Optional[float]:
    """Sample stdev of the last `window` simple returns, None while history is too short."""
    if month <= window:
        return None
    px = np.asarray(prices[month - window:month + 1], dtype=float)
    rets = px[1:] / px[:-1] - 1.0
    return float(rets.std(ddof=1))


def _dca(ctx: StrategyContext) -> float:
    return ctx.nominal_amount


def _value_averaging(ctx: StrategyContext) -> float:
    target = ctx.cumulative_invested + ctx.nominal_amount * ctx.month
    return target - ctx.portfolio_value


def _momentum(ctx: StrategyContext) -> float:
    return ctx.nominal_amount * (1.0 + momentum(ctx.prices, ctx.month))


def _contrarian(ctx: StrategyContext) -> float:
    return ctx.nominal_amount * (1.0 + 2.0 * max(0.0, decline(ctx.prices, ctx.month)))


def _smart_beta(ctx: StrategyContext) -> float:
    factor = 2.0 * momentum(ctx.prices, ctx.month)
    if ctx.rng is not None and ctx.month > MOMENTUM_LOOKBACK:
        factor += ctx.rng.uniform(-SMART_BETA_NOISE, SMART_BETA_NOISE)
    return ctx.nominal_amount * (1.0 + 0.5 * factor)


def _tactical(ctx: StrategyContext) -> float:
    vol = recent_volatility(ctx.prices, ctx.month)
    if vol is None:
        return ctx.nominal_amount
    return ctx.nominal_amount * (1.0 + 5.0 * (TACTICAL_TARGET_VOL - vol))


STRATEGY_TABLE: Dict[Strategy, Callable[[StrategyContext], float]] = {
    Strategy.DCA: _dca,
    Strategy.VALUE_AVERAGING: _value_averaging,
    Strategy.MOMENTUM: _momentum,
    Strategy.CONTRARIAN: _contrarian,
    Strategy.SMART_BETA: _smart_beta,
    Strategy.TACTICAL: _tactical,
}


def evaluate_contribution(strategy, ctx: StrategyContext) -> float:
    """Cash to invest this month under `strategy`; never negative."""
    if ctx.month >= len(ctx.prices):
        raise ValueError(f"Price history ends before month {ctx.month}")
    amount = STRATEGY_TABLE[Strategy.parse(strategy)](ctx)
    if not np.isfinite(amount):
        return 0.0
    return max(0.0, float(amount))
