import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple

import numpy as np

from ..config import ETF_CATALOG, EtfInfo, PriceModelConfig, RiskTier
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

BASE_PRICE = 100.0

# risk tier -> (monthly trend, monthly volatility)
RISK_PARAMS: Dict[RiskTier, Tuple[float, float]] = {
    RiskTier.LOW: (0.003, 0.02),
    RiskTier.MEDIUM: (0.007, 0.04),
    RiskTier.HIGH: (0.007, 0.05),
    RiskTier.VERY_HIGH: (0.009, 0.06),
}

# keeps prices strictly positive under extreme gaussian draws
MIN_GROWTH = 1e-4


def generate_price_path(months: int, risk, rng: np.random.Generator, shock: str = "gaussian",
                        params: Optional[Tuple[float, float]] = None, expense: float = 0.0) -> np.ndarray:
    """Synthetic monthly price path of length months + 1 starting at BASE_PRICE.

    price[i] = price[i-1] * (1 + trend + U - expense / 1200)
      gaussian: U = volatility * N(0, 1)
      uniform:  U = (V - 0.5) * volatility, V ~ U[0, 1)
    `params` overrides the (trend, volatility) pair looked up from the risk tier.
    `expense` is an annual TER in percent, deducted as expense / 12 each month.
    """
    months = int(months)
    if months < 0:
        raise ValueError(f"months must be >= 0, got {months}")
    trend, vol = params if params is not None else RISK_PARAMS[RiskTier(risk)]

    if shock == "gaussian":
        shocks = vol * rng.standard_normal(months)
    elif shock == "uniform":
        shocks = (rng.random(months) - 0.5) * vol
    else:
        raise ValueError(f"Unknown shock distribution: {shock}")

    growth = np.maximum(1.0 + trend + shocks - expense / 1200.0, MIN_GROWTH)
    return np.cumprod(np.concatenate([[BASE_PRICE], growth]))


class PricePathGenerator:
    """Generates one path per asset from a single seeded random stream."""

    def __init__(self, cfg: PriceModelConfig = PriceModelConfig(), rng: Optional[np.random.Generator] = None,
                 catalog: Mapping[str, EtfInfo] = ETF_CATALOG):
        self.cfg = cfg
        self.rng = rng if rng is not None else np.random.default_rng(cfg.seed)
        self.catalog = catalog

    def generate(self, asset_ids: Iterable[str], months: int) -> Dict[str, np.ndarray]:
        paths = {}
        for asset_id in asset_ids:
            info = self.catalog.get(asset_id)
            if info is None:
                raise ConfigurationError(f"Unknown asset: {asset_id!r}", reason="unknown_asset")
            expense = info.expense if self.cfg.apply_expense else 0.0
            paths[asset_id] = generate_price_path(months, info.risk, self.rng, shock=self.cfg.shock, expense=expense)
            logger.debug("Generated %d-month %s path for %s (last=%.2f)",
                         months, info.risk.value, asset_id, paths[asset_id][-1])
        return paths
