import io
import logging
from typing import Dict, Iterable, Mapping

import numpy as np
import pandas as pd
import yfinance as yf

from ..config import ETF_CATALOG, EtfInfo
from ..errors import ConfigurationError
from ..sampling.price_paths import BASE_PRICE
from .cache import key_path

logger = logging.getLogger(__name__)

FRED_URLS = (
    "https://fred.stlouisfed.org/series/{sid}/downloaddata/{sid}.csv&frequency=m",
    "https://fred.stlouisfed.org/graph/fredgraph.csv?id={sid}&frequency=m",
)


def _cache_read(path):
    if path.exists():
        return pd.read_csv(path, index_col=0, parse_dates=True)
    return None


def _cache_write(df, path):
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path)


def extract_close_frame(data, tickers):
    """Close (or Adj Close) prices with one column per ticker from a yfinance download."""
    if isinstance(data, pd.DataFrame) and isinstance(data.columns, pd.MultiIndex):
        lvl0 = set(data.columns.get_level_values(0))
        if "Close" in lvl0:
            return data["Close"].copy()
        if "Adj Close" in lvl0:
            return data["Adj Close"].copy()
        for fld in ("Close", "Adj Close"):
            try:
                return data.xs(fld, level=1, axis=1).copy()
            except KeyError:
                pass
    if isinstance(data, pd.DataFrame):
        for fld in ("Close", "Adj Close"):
            if fld in data.columns:
                return data[[fld]].rename(columns={fld: tickers[0]}).copy()
    raise RuntimeError(f"Could not find Close/Adj Close columns. Columns={getattr(data, 'columns', None)}")


def fetch_prices_monthly(tickers, start=None, end=None):
    """Download daily auto-adjusted prices from Yahoo and resample to month-end."""
    tickers = list(tickers)
    path = key_path("yahoo", f"{','.join(sorted(tickers))}|{start}|{end}")
    cached = _cache_read(path)
    if cached is not None:
        logger.info("Monthly prices for %s read from cache %s", tickers, path)
        return cached

    logger.info("Downloading from Yahoo Finance: %s", tickers)
    kwargs = {"start": start, "end": end} if start or end else {"period": "max"}
    data = yf.download(
        tickers,
        auto_adjust=True,
        progress=False,
        interval="1d",
        group_by="column",
        **kwargs,
    )
    px_daily = extract_close_frame(data, tickers)
    present = [t for t in tickers if t in px_daily.columns]
    if not present:
        raise RuntimeError("None of the requested tickers returned price data.")
    monthly = px_daily[present].resample("ME").last().dropna(how="all")
    _cache_write(monthly, path)
    return monthly


def fetch_fred_series(series_id, start=None, end=None):
    """Monthly FRED series via the public CSV endpoints (no API key), cached."""
    import requests, certifi

    path = key_path("fred", f"{series_id}|{start}|{end}")
    cached = _cache_read(path)
    if cached is not None:
        return cached

    sess = requests.Session()
    # ignore proxy environment variables
    sess.trust_env = False
    headers = {"User-Agent": "pac-simulator/0.1"}

    last_exc = None
    for url in (u.format(sid=series_id) for u in FRED_URLS):
        try:
            r = sess.get(
                url,
                timeout=30,
                verify=certifi.where(),
                headers=headers,
                allow_redirects=True,
                proxies={"http": None, "https": None},
            )
            r.raise_for_status()
            df = pd.read_csv(io.StringIO(r.text))
            if "observation_date" not in df.columns:
                raise ValueError("CSV missing observation_date column")
            df["observation_date"] = pd.to_datetime(df["observation_date"])

            if series_id not in df.columns:
                value_cols = [c for c in df.columns if c != "observation_date"]
                if not value_cols:
                    raise ValueError("CSV missing value column")
                df = df.rename(columns={value_cols[0]: series_id})

            df[series_id] = pd.to_numeric(df[series_id], errors="coerce")
            df = df.dropna(subset=[series_id]).set_index("observation_date")[[series_id]]
            if start is not None:
                df = df[df.index >= pd.to_datetime(start)]
            if end is not None:
                df = df[df.index <= pd.to_datetime(end)]

            df = df.resample("ME").last()
            _cache_write(df, path)
            return df
        except (requests.RequestException, ValueError) as e:
            logger.warning("FRED request %s failed: %s", url, e)
            last_exc = e

    raise RuntimeError(f"Failed to fetch FRED series {series_id}: {last_exc}")


def fetch_risk_free_rate(series_id: str = "TB3MS") -> float:
    """Latest annual risk-free rate in percent, for MetricsConfig."""
    s = fetch_fred_series(series_id)[series_id].dropna()
    if s.empty:
        raise RuntimeError(f"FRED series {series_id} returned no observations")
    return float(s.iloc[-1])


def price_paths_from_history(prices_m: pd.DataFrame, asset_ids: Iterable[str], months: int,
                             catalog: Mapping[str, EtfInfo] = ETF_CATALOG) -> Dict[str, np.ndarray]:
    """Rebase the last months + 1 common month-end closes of each asset to BASE_PRICE.

    Columns may be named by asset id or by the asset's catalog ticker.
    """
    columns = {}
    for asset_id in asset_ids:
        if asset_id in prices_m.columns:
            columns[asset_id] = asset_id
        elif asset_id in catalog and catalog[asset_id].ticker in prices_m.columns:
            columns[asset_id] = catalog[asset_id].ticker
        else:
            raise ConfigurationError(f"No price history for {asset_id!r}", reason="missing_price_path")

    px = prices_m.sort_index()[list(dict.fromkeys(columns.values()))].dropna(how="any")
    if len(px) < months + 1:
        raise ConfigurationError(
            f"{len(px)} common months of history, need {months + 1}", reason="short_price_history"
        )
    px = px.iloc[-(months + 1):]
    return {a: (px[col] / px[col].iloc[0] * BASE_PRICE).to_numpy(dtype=float) for a, col in columns.items()}
