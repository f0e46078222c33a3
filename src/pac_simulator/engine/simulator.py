import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from ..analytics.metrics import MetricsSummary, compute_metrics
from ..config import MetricsConfig, PriceModelConfig, SimulationConfig, Strategy
from ..errors import ConfigurationError
from ..sampling.price_paths import PricePathGenerator
from .strategies import StrategyContext, evaluate_contribution

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class PortfolioSnapshot:
    month: int
    total_value: float
    total_invested: float
    monthly_investment: float
    monthly_return: float      # %
    cumulative_return: float   # %


@dataclass(frozen=True)
class SimulationResult:
    config: SimulationConfig
    series: List[PortfolioSnapshot]
    metrics: MetricsSummary
    price_paths: Dict[str, np.ndarray] = field(default_factory=dict, repr=False, compare=False)

    def to_frame(self, start_date=None) -> pd.DataFrame:
        """Series as a DataFrame indexed by month, or by month-start dates from `start_date`."""
        df = pd.DataFrame([asdict(s) for s in self.series])
        if start_date is None:
            return df.set_index("month")
        df.index = pd.date_range(pd.Timestamp(start_date), periods=len(df), freq="MS", name="date")
        return df


class PACSimulator:
    """Walks a periodic investment plan month by month over fixed price paths.

    The strategy signal is the price path of the first allocated asset.
    Each month's cash is split by weight / 100, so allocations that do not
    total 100 leave the remainder uninvested (and not counted as invested).
    """

    def __init__(self, config: SimulationConfig, metrics_cfg: MetricsConfig = MetricsConfig()):
        self.config = config.validate()
        self.metrics_cfg = metrics_cfg
        self.assets = config.allocated_assets()
        self.w = np.array([config.etf_allocation[a] for a in self.assets], dtype=float) / 100.0
        if abs(config.total_weight - 100.0) > WEIGHT_TOLERANCE:
            logger.warning("Allocation totals %.2f%%, contributions are scaled by weight/100",
                           config.total_weight)

    def _checked_path(self, name: str, path: Sequence[float]) -> np.ndarray:
        T = self.config.investment_period
        path = np.asarray(path, dtype=float)
        if path.shape[0] < T + 1:
            raise ConfigurationError(
                f"Price path for {name!r} has {path.shape[0]} points, need {T + 1}", reason="short_price_path"
            )
        if not np.all(path[:T + 1] > 0):
            raise ConfigurationError(f"Price path for {name!r} has non-positive prices",
                                     reason="invalid_price_path")
        return path[:T + 1]

    def _price_matrix(self, price_paths: Mapping[str, Sequence[float]]) -> np.ndarray:
        missing = [a for a in self.assets if a not in price_paths]
        if missing:
            raise ConfigurationError(f"No price path for allocated asset(s): {', '.join(missing)}",
                                     reason="missing_price_path")
        return np.vstack([self._checked_path(a, price_paths[a]) for a in self.assets])

    def run(self, price_paths: Mapping[str, Sequence[float]],
            rng: Optional[np.random.Generator] = None,
            benchmark_path: Optional[Sequence[float]] = None) -> SimulationResult:
        """Walk the plan over `price_paths` (asset id -> months + 1 prices).

        Strategies see the plan in nominal terms: invested cash and holdings are
        divided by the invested share (total weight / 100) before the strategy is
        evaluated, and the cash it returns is scaled back by that share when it
        is split across the assets. With automatic rebalancing the holdings are
        reset to the target weights every `rebalance_every_months` months, after
        that month's contribution.
        """
        cfg = self.config
        P = self._price_matrix(price_paths)  # (N, T+1)
        bench_returns = None
        if benchmark_path is not None:
            b = self._checked_path("benchmark", benchmark_path)
            bench_returns = (b[1:] / b[:-1] - 1.0) * 100.0
        blend = self.w / self.w.sum()
        signal = P[0]
        invested_share = cfg.total_weight / 100.0
        step = cfg.rebalance_every_months

        shares = np.zeros(len(self.assets))
        invested = 0.0
        series = []
        for m in range(cfg.investment_period + 1):
            px = P[:, m]
            if m == 0:
                cash = cfg.initial_amount
                ret = 0.0
            else:
                ctx = StrategyContext(
                    month=m,
                    prices=signal[:m + 1],
                    nominal_amount=cfg.monthly_amount,
                    cumulative_invested=invested / invested_share,
                    portfolio_value=float(shares @ px) / invested_share,
                    rng=rng,
                )
                cash = evaluate_contribution(cfg.strategy, ctx)
                ret = float(blend @ (px / P[:, m - 1] - 1.0)) * 100.0

            shares += cash * self.w / px
            contributed = cash * invested_share
            invested += contributed
            value = float(shares @ px)
            if step and m > 0 and m % step == 0:
                shares = value * blend / px
                logger.debug("Rebalanced to target weights at month %d (value=%.2f)", m, value)
            cumulative = (value - invested) / invested * 100.0 if invested > 0 else 0.0
            series.append(PortfolioSnapshot(
                month=m,
                total_value=value,
                total_invested=invested,
                monthly_investment=contributed,
                monthly_return=ret,
                cumulative_return=cumulative,
            ))

        metrics = compute_metrics(series, self.metrics_cfg, investment_period=cfg.investment_period,
                                  benchmark_returns=bench_returns)
        logger.info("%s run over %d months: invested=%.2f final=%.2f",
                    cfg.strategy.value, cfg.investment_period, metrics.total_invested, metrics.final_value)
        paths = {a: P[i] for i, a in enumerate(self.assets)}
        return SimulationResult(config=cfg, series=series, metrics=metrics, price_paths=paths)


def _with_benchmark(generator: PricePathGenerator, paths: Dict[str, np.ndarray], benchmark: Optional[str],
                    months: int) -> Optional[np.ndarray]:
    if benchmark is None:
        return None
    if benchmark not in paths:
        paths.update(generator.generate([benchmark], months))
    return paths[benchmark]


def run_simulation(config: SimulationConfig, price_model: PriceModelConfig = PriceModelConfig(),
                   rng: Optional[np.random.Generator] = None,
                   metrics_cfg: MetricsConfig = MetricsConfig(),
                   benchmark: Optional[str] = None) -> SimulationResult:
    """Generate synthetic price paths for the allocated ETFs and run the plan over them.

    `benchmark` names a catalog ETF whose path drives the benchmark-relative
    metrics; it is drawn after the allocated assets so their paths do not change.
    """
    sim = PACSimulator(config, metrics_cfg)
    rng = rng if rng is not None else np.random.default_rng(price_model.seed)
    generator = PricePathGenerator(price_model, rng=rng)
    paths = generator.generate(sim.assets, config.investment_period)
    bench = _with_benchmark(generator, paths, benchmark, config.investment_period)
    return sim.run(paths, rng=rng, benchmark_path=bench)


def compare_strategies(config: SimulationConfig, strategies: Sequence,
                       price_model: PriceModelConfig = PriceModelConfig(),
                       metrics_cfg: MetricsConfig = MetricsConfig(),
                       benchmark: Optional[str] = None) -> Dict[Strategy, SimulationResult]:
    """Run several strategies over one shared set of price paths.

    Every run draws from its own child stream of the seed, so results do not
    depend on the order or number of strategies compared.
    """
    parsed = [Strategy.parse(s) for s in strategies]
    if not parsed:
        raise ConfigurationError("No strategies to compare", reason="no_strategies")
    root = np.random.SeedSequence(price_model.seed)
    path_seq, run_seq = root.spawn(2)
    strategy_seqs = dict(zip(Strategy, run_seq.spawn(len(Strategy))))
    sim = PACSimulator(config, metrics_cfg)
    generator = PricePathGenerator(price_model, rng=np.random.default_rng(path_seq))
    paths = generator.generate(sim.assets, config.investment_period)
    bench = _with_benchmark(generator, paths, benchmark, config.investment_period)

    results = {}
    for strategy in parsed:
        cfg = replace(config, strategy=strategy)
        rng = np.random.default_rng(strategy_seqs[strategy])
        results[strategy] = PACSimulator(cfg, metrics_cfg).run(paths, rng=rng, benchmark_path=bench)
    return results


def run_backtest(config: SimulationConfig, prices_m: pd.DataFrame,
                 metrics_cfg: MetricsConfig = MetricsConfig(),
                 rng: Optional[np.random.Generator] = None,
                 price_model: PriceModelConfig = PriceModelConfig(),
                 benchmark: Optional[str] = None) -> SimulationResult:
    """Run the plan over the most recent historical month-end closes.

    `prices_m` columns are asset ids or their catalog tickers. Without `rng`,
    strategy noise is seeded from `price_model.seed`.
    """
    from ..data.fetchers import price_paths_from_history

    sim = PACSimulator(config, metrics_cfg)
    wanted = sim.assets if benchmark is None else list(dict.fromkeys([*sim.assets, benchmark]))
    paths = price_paths_from_history(prices_m, wanted, config.investment_period)
    bench = paths.get(benchmark) if benchmark is not None else None
    rng = rng if rng is not None else np.random.default_rng(price_model.seed)
    return sim.run(paths, rng=rng, benchmark_path=bench)
