import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Literal, Mapping, Optional

from .errors import ConfigurationError


class Strategy(str, Enum):
    DCA = "dca"
    VALUE_AVERAGING = "value_averaging"
    MOMENTUM = "momentum"
    CONTRARIAN = "contrarian"
    SMART_BETA = "smart_beta"
    TACTICAL = "tactical"

    @classmethod
    def parse(cls, value) -> "Strategy":
        """Accepts 'dca', 'DCA' or a Strategy member."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown strategy: {value!r}", reason="unknown_strategy") from None


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


@dataclass(frozen=True)
class EtfInfo:
    asset_id: str
    name: str
    ticker: str       # Yahoo Finance symbol
    expense: float    # TER, percent per year
    risk: RiskTier
    beta: float = 1.0


ETF_CATALOG: Dict[str, EtfInfo] = {
    e.asset_id: e
    for e in (
        EtfInfo("world_equity", "FTSE Developed World UCITS ETF", "VWCE.DE", 0.22, RiskTier.HIGH, 0.98),
        EtfInfo("sp500", "S&P 500 UCITS ETF", "VUAA.DE", 0.07, RiskTier.HIGH, 1.00),
        EtfInfo("europe", "FTSE Developed Europe UCITS ETF", "VEUR.AS", 0.12, RiskTier.MEDIUM, 0.85),
        EtfInfo("bonds", "Global Aggregate Bond UCITS ETF", "VAGF.DE", 0.10, RiskTier.LOW, 0.05),
        EtfInfo("emerging", "FTSE Emerging Markets UCITS ETF", "VFEM.AS", 0.22, RiskTier.VERY_HIGH, 1.15),
        EtfInfo("real_estate", "Global Real Estate UCITS ETF", "VGRE.DE", 0.25, RiskTier.MEDIUM, 0.75),
    )
}

# rebalance frequency -> months between rebalances
REBALANCE_MONTHS: Dict[str, Optional[int]] = {
    "monthly": 1,
    "quarterly": 3,
    "semiannual": 6,
    "annual": 12,
    "never": None,
}


@dataclass(frozen=True)
class SimulationConfig:
    initial_amount: float                 # lump sum at month 0
    monthly_amount: float                 # nominal contribution
    investment_period: int                # months after month 0
    strategy: Strategy = Strategy.DCA
    etf_allocation: Mapping[str, float] = field(default_factory=dict)  # asset id -> percent
    automatic_rebalance: bool = False
    rebalance_frequency: str = "quarterly"

    def __post_init__(self):
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        object.__setattr__(self, "etf_allocation", dict(self.etf_allocation))
        object.__setattr__(self, "rebalance_frequency", str(self.rebalance_frequency).strip().lower())

    @classmethod
    def from_dict(cls, payload: Mapping) -> "SimulationConfig":
        """Build from the camelCase payload posted by the front-end; UI-only keys are ignored."""
        try:
            return cls(
                initial_amount=float(payload.get("initialAmount", 0.0)),
                monthly_amount=float(payload.get("monthlyAmount", 0.0)),
                investment_period=int(payload["investmentPeriod"]),
                strategy=payload.get("strategy") or Strategy.DCA,
                etf_allocation={k: float(v) for k, v in (payload.get("etfAllocation") or {}).items()},
                automatic_rebalance=bool(payload.get("automaticRebalance", False)),
                rebalance_frequency=payload.get("rebalanceFrequency") or "quarterly",
            )
        except KeyError as e:
            raise ConfigurationError(f"Missing field: {e.args[0]}", reason="missing_field") from None
        except ConfigurationError:
            raise
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed configuration: {e}", reason="malformed") from None

    @property
    def total_weight(self) -> float:
        return float(sum(self.etf_allocation.values()))

    @property
    def rebalance_every_months(self) -> Optional[int]:
        """Months between rebalances, None when automatic rebalancing is off."""
        if not self.automatic_rebalance:
            return None
        return REBALANCE_MONTHS[self.rebalance_frequency]

    def allocated_assets(self):
        """Asset ids with a positive weight, in allocation order."""
        return [a for a, w in self.etf_allocation.items() if w > 0]

    def catalog_beta(self, catalog: Mapping[str, EtfInfo] = None) -> float:
        """Weight-blended catalog beta of the allocated ETFs."""
        catalog = ETF_CATALOG if catalog is None else catalog
        assets = self.allocated_assets()
        unknown = [a for a in assets if a not in catalog]
        if unknown:
            raise ConfigurationError(f"Unknown asset(s): {', '.join(unknown)}", reason="unknown_asset")
        total = sum(self.etf_allocation[a] for a in assets)
        return sum(catalog[a].beta * self.etf_allocation[a] for a in assets) / total

    def validate(self) -> "SimulationConfig":
        if self.initial_amount < 0 or self.monthly_amount < 0:
            raise ConfigurationError("Amounts must be non-negative", reason="negative_amount")
        if isinstance(self.investment_period, bool) or not isinstance(self.investment_period, numbers.Integral):
            raise ConfigurationError(
                f"Investment period must be a whole number of months, got {self.investment_period!r}",
                reason="invalid_period",
            )
        if self.investment_period < 0:
            raise ConfigurationError("Investment period must be >= 0 months", reason="negative_period")
        for asset_id, w in self.etf_allocation.items():
            if not 0 <= w <= 100:
                raise ConfigurationError(
                    f"Weight for {asset_id!r} must be within 0..100, got {w}", reason="invalid_weight"
                )
        if self.total_weight <= 0:
            raise ConfigurationError("Total allocation weight is zero", reason="zero_allocation")
        if self.rebalance_frequency not in REBALANCE_MONTHS:
            raise ConfigurationError(
                f"Unknown rebalance frequency: {self.rebalance_frequency!r}", reason="invalid_rebalance_frequency"
            )
        return self


@dataclass(frozen=True)
class PriceModelConfig:
    shock: Literal["gaussian", "uniform"] = "gaussian"
    seed: Optional[int] = 42
    apply_expense: bool = True   # deduct each ETF's TER monthly from its synthetic path


@dataclass(frozen=True)
class MetricsConfig:
    risk_free_annual_pct: float = 2.0   # annual rate, percent


INITIAL_CONFIG = SimulationConfig(
    initial_amount=10_000.0,
    monthly_amount=500.0,
    investment_period=60,
    strategy=Strategy.DCA,
    etf_allocation={"world_equity": 60, "bonds": 20, "emerging": 15, "real_estate": 5},
    automatic_rebalance=True,
    rebalance_frequency="quarterly",
)
