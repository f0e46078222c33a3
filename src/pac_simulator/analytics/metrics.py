import logging
import warnings
from dataclasses import asdict, dataclass
from typing import Optional, Sequence

import numpy as np

from ..config import MetricsConfig
from ..errors import DegenerateResultWarning

logger = logging.getLogger(__name__)

# relative threshold below which a dispersion is treated as rounding noise
VOL_TOLERANCE = 1e-10


@dataclass(frozen=True)
class MetricsSummary:
    total_invested: float
    final_value: float
    total_return: float          # currency
    cumulative_return: float     # %
    volatility: float            # % (monthly)
    max_drawdown: float          # %, <= 0
    sharpe_ratio: float
    calmar_ratio: float
    win_rate: float              # %
    best_month: float            # %
    worst_month: float           # %
    annualized_return: float     # %
    sortino_ratio: float = 0.0
    var_95: float = 0.0          # %
    cvar_95: float = 0.0         # %
    money_weighted_return: float = 0.0  # % annualized IRR of the cash flows
    avg_positive_month: float = 0.0
    avg_negative_month: float = 0.0
    beta: Optional[float] = None           # vs benchmark, None without one
    alpha: Optional[float] = None          # % (monthly)
    tracking_error: Optional[float] = None  # % (monthly)
    information_ratio: Optional[float] = None
    correlation: Optional[float] = None

    def as_dict(self):
        """camelCase keys, as the UI summary cards expect them."""
        def camel(name):
            head, *rest = name.split("_")
            return head + "".join(p.capitalize() for p in rest)
        return {camel(k): v for k, v in asdict(self).items()}


def _finite(x) -> float:
    x = float(x)
    return x if np.isfinite(x) else 0.0


def _negligible(x: float, scale: float = 1.0) -> bool:
    """True when x is rounding noise relative to scale."""
    return abs(x) <= VOL_TOLERANCE * max(1.0, abs(scale))


def monthly_risk_free(annual_pct: float) -> float:
    """Monthly equivalent (in %) of an annual rate given in %."""
    return ((1.0 + annual_pct / 100.0) ** (1.0 / 12.0) - 1.0) * 100.0


def volatility(returns) -> float:
    """Sample stdev (ddof 1); rounding-level dispersion is reported as 0."""
    r = np.asarray(returns, dtype=float)
    if r.size < 2:
        return 0.0
    vol = _finite(r.std(ddof=1))
    return 0.0 if _negligible(vol, r.mean()) else vol


def sharpe_ratio(returns, rf_m: float = 0.0) -> float:
    r = np.asarray(returns, dtype=float)
    vol = volatility(r)
    if r.size == 0 or vol == 0:
        return 0.0
    return _finite((r.mean() - rf_m) / vol)


def sortino_ratio(returns, rf_m: float = 0.0) -> float:
    r = np.asarray(returns, dtype=float)
    below = r[r < rf_m]
    if r.size == 0 or below.size == 0 or volatility(r) == 0:
        return 0.0
    downside = np.sqrt(((below - rf_m) ** 2).sum() / r.size)
    if _negligible(downside, rf_m):
        return 0.0
    return _finite((r.mean() - rf_m) / downside)


def max_drawdown(values) -> float:
    """Deepest peak-to-trough decline of `values`, as a negative percentage."""
    x = np.asarray(values, dtype=float)
    if x.size < 2:
        return 0.0
    peak = np.maximum.accumulate(x)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peak > 0, (x - peak) / peak, 0.0)
    return _finite(min(dd.min(), 0.0) * 100.0)


def wealth_index(returns) -> np.ndarray:
    """Growth of 1 unit under the monthly % returns, contributions excluded."""
    r = np.asarray(returns, dtype=float)
    return np.concatenate([[1.0], np.cumprod(1.0 + r / 100.0)])


def value_at_risk(returns, confidence: float = 0.95) -> float:
    r = np.sort(np.asarray(returns, dtype=float))
    if r.size == 0:
        return 0.0
    idx = int(np.floor((1.0 - confidence) * r.size))
    return _finite(r[idx])


def conditional_value_at_risk(returns, confidence: float = 0.95) -> float:
    r = np.sort(np.asarray(returns, dtype=float))
    if r.size == 0:
        return 0.0
    idx = int(np.floor((1.0 - confidence) * r.size))
    return _finite(r[:idx + 1].mean())


def annualized_return(final_value: float, total_invested: float, months: int) -> float:
    if months <= 0 or total_invested <= 0 or final_value <= 0:
        return 0.0
    return _finite(((final_value / total_invested) ** (12.0 / months) - 1.0) * 100.0)


def money_weighted_return(contributions, final_value: float) -> float:
    """Annualized IRR (in %) of monthly contributions against the final value."""
    import numpy_financial as npf
    flows = -np.asarray(contributions, dtype=float)
    if flows.size < 2 or not np.any(flows):
        return 0.0
    flows[-1] += final_value
    irr_m = npf.irr(flows)
    if not np.isfinite(irr_m):
        return 0.0
    return _finite(((1.0 + irr_m) ** 12 - 1.0) * 100.0)


# -- relative to a benchmark (monthly % returns aligned with the portfolio's) --

def _aligned(returns, benchmark):
    r = np.asarray(returns, dtype=float)
    b = np.asarray(benchmark, dtype=float)
    if r.shape != b.shape:
        raise ValueError(f"Benchmark has {b.size} returns, portfolio has {r.size}")
    return r, b


def covariance(returns, benchmark) -> float:
    r, b = _aligned(returns, benchmark)
    if r.size < 2:
        return 0.0
    return _finite(np.cov(r, b, ddof=1)[0, 1])


def correlation(returns, benchmark) -> float:
    r, b = _aligned(returns, benchmark)
    vr, vb = volatility(r), volatility(b)
    if vr == 0 or vb == 0:
        return 0.0
    return _finite(covariance(r, b) / (vr * vb))


def beta(returns, benchmark) -> float:
    """Covariance over benchmark variance; 1 when the benchmark does not move."""
    r, b = _aligned(returns, benchmark)
    vb = volatility(b)
    if vb == 0:
        return 1.0
    return _finite(covariance(r, b) / vb ** 2)


def alpha(returns, benchmark, rf_m: float = 0.0) -> float:
    """Jensen's alpha, in monthly %."""
    r, b = _aligned(returns, benchmark)
    if r.size == 0:
        return 0.0
    return _finite(r.mean() - (rf_m + beta(r, b) * (b.mean() - rf_m)))


def tracking_error(returns, benchmark) -> float:
    r, b = _aligned(returns, benchmark)
    return volatility(r - b)


def information_ratio(returns, benchmark) -> float:
    r, b = _aligned(returns, benchmark)
    te = tracking_error(r, b)
    if te == 0:
        return 0.0
    return _finite((r - b).mean() / te)


def compute_metrics(series: Sequence, cfg: MetricsConfig = MetricsConfig(),
                    investment_period: Optional[int] = None,
                    benchmark_returns: Optional[Sequence[float]] = None) -> MetricsSummary:
    """Reduce a completed snapshot series to its summary statistics.

    Returns are the snapshots' monthly_return values after month 0. Drawdown is
    measured on the contribution-free wealth index of those returns, so new cash
    cannot hide a market decline. The Sharpe and Sortino ratios subtract the
    monthly equivalent of cfg.risk_free_annual_pct. Fewer than two monthly
    returns emits DegenerateResultWarning and reports the ratios as 0.

    With `benchmark_returns` (monthly %, one per month after month 0) the
    summary also carries beta, alpha, tracking error, information ratio and
    correlation; without it those fields are None.
    """
    if not series:
        warnings.warn("Empty series, all metrics reported as 0", DegenerateResultWarning, stacklevel=2)
        return MetricsSummary(*([0.0] * 12))

    last = series[-1]
    months = last.month if investment_period is None else investment_period
    returns = np.array([s.monthly_return for s in series[1:]], dtype=float)
    if returns.size < 2:
        warnings.warn(
            f"Only {returns.size} monthly return(s); ratio metrics reported as 0",
            DegenerateResultWarning,
            stacklevel=2,
        )

    total_invested = float(last.total_invested)
    final_value = float(last.total_value)
    cumulative = float(last.cumulative_return)
    rf_m = monthly_risk_free(cfg.risk_free_annual_pct)

    mdd = max_drawdown(wealth_index(returns))
    calmar = _finite(cumulative / abs(mdd)) if mdd != 0 else 0.0
    positives = returns[returns > 0]
    negatives = returns[returns < 0]

    relative = {}
    if benchmark_returns is not None:
        bench = np.asarray(benchmark_returns, dtype=float)
        relative = dict(
            beta=beta(returns, bench),
            alpha=alpha(returns, bench, rf_m),
            tracking_error=tracking_error(returns, bench),
            information_ratio=information_ratio(returns, bench),
            correlation=correlation(returns, bench),
        )

    summary = MetricsSummary(
        total_invested=total_invested,
        final_value=final_value,
        total_return=final_value - total_invested,
        cumulative_return=cumulative,
        volatility=volatility(returns),
        max_drawdown=mdd,
        sharpe_ratio=sharpe_ratio(returns, rf_m),
        calmar_ratio=calmar,
        win_rate=_finite(positives.size / returns.size * 100.0) if returns.size else 0.0,
        best_month=_finite(returns.max()) if returns.size else 0.0,
        worst_month=_finite(returns.min()) if returns.size else 0.0,
        annualized_return=annualized_return(final_value, total_invested, months),
        sortino_ratio=sortino_ratio(returns, rf_m) if returns.size >= 2 else 0.0,
        var_95=value_at_risk(returns),
        cvar_95=conditional_value_at_risk(returns),
        money_weighted_return=money_weighted_return([s.monthly_investment for s in series], final_value),
        avg_positive_month=_finite(positives.mean()) if positives.size else 0.0,
        avg_negative_month=_finite(negatives.mean()) if negatives.size else 0.0,
        **relative,
    )
    logger.debug("Metrics: final=%.2f invested=%.2f vol=%.4f mdd=%.4f",
                 final_value, total_invested, summary.volatility, summary.max_drawdown)
    return summary
