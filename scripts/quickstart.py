import logging

from pac_simulator.config import INITIAL_CONFIG, PriceModelConfig, Strategy
from pac_simulator.engine.simulator import compare_strategies, run_simulation


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # 1) Plan: 10k lump sum, 500/month for 5 years, 60/20/15/5 allocation, quarterly rebalance
    cfg = INITIAL_CONFIG
    model = PriceModelConfig(shock="gaussian", seed=42)

    # 2) Single run
    res = run_simulation(cfg, model, benchmark="sp500")
    m = res.metrics

    def eur(x): return f"EUR {x:,.0f}"
    def pct(x): return f"{x:+.2f}%"
    print(f"=== PAC simulation ({cfg.strategy.value}, {cfg.investment_period} months) ===")
    print(f"Invested:          {eur(m.total_invested)}")
    print(f"Final value:       {eur(m.final_value)}")
    print(f"Cumulative return: {pct(m.cumulative_return)}")
    print(f"Annualized return: {pct(m.annualized_return)}")
    print(f"Volatility (m):    {m.volatility:.2f}%")
    print(f"Max drawdown:      {m.max_drawdown:.2f}%")
    print(f"Sharpe / Calmar:   {m.sharpe_ratio:.2f} / {m.calmar_ratio:.2f}")
    print(f"Beta vs S&P 500:   {m.beta:.2f} (catalog {cfg.catalog_beta():.2f})")
    print(res.to_frame(start_date="2025-01-01").tail(6))

    # 3) Strategy comparison over the same price paths
    print("\n=== Strategy comparison ===")
    results = compare_strategies(cfg, [Strategy.DCA, Strategy.VALUE_AVERAGING, Strategy.CONTRARIAN, Strategy.TACTICAL], model)
    for strategy, r in results.items():
        print(f"{strategy.value:>16}: invested {eur(r.metrics.total_invested)}"
              f" -> {eur(r.metrics.final_value)} ({pct(r.metrics.cumulative_return)})")


if __name__ == "__main__":
    main()
