import numpy as np
import pandas as pd
import pytest

from pac_simulator.data import fetchers
from pac_simulator.data.fetchers import (
    extract_close_frame,
    fetch_prices_monthly,
    fetch_risk_free_rate,
    price_paths_from_history,
)
from pac_simulator.errors import ConfigurationError


@pytest.fixture
def cache_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("PAC_SIMULATOR_CACHE_DIR", str(tmp_path / "cache"))
    return tmp_path / "cache"


def _daily(tickers, days=120):
    idx = pd.date_range("2024-01-01", periods=days, freq="D")
    cols = pd.MultiIndex.from_product([["Close", "Volume"], tickers])
    data = np.column_stack(
        [np.linspace(100.0, 130.0, days) * (i + 1) for i in range(len(tickers))]
        + [np.full(days, 1e6) for _ in tickers]
    )
    return pd.DataFrame(data, index=idx, columns=cols)


def test_extract_close_frame_multiindex():
    frame = extract_close_frame(_daily(["VWCE.DE", "VAGF.DE"]), ["VWCE.DE", "VAGF.DE"])
    assert list(frame.columns) == ["VWCE.DE", "VAGF.DE"]


def test_extract_close_frame_single_ticker():
    df = pd.DataFrame({"Close": [1.0, 2.0]}, index=pd.date_range("2024-01-01", periods=2))
    frame = extract_close_frame(df, ["VWCE.DE"])
    assert list(frame.columns) == ["VWCE.DE"]


def test_extract_close_frame_unknown_layout():
    with pytest.raises(RuntimeError):
        extract_close_frame(pd.DataFrame({"Open": [1.0]}), ["X"])


def test_fetch_prices_monthly_resamples_and_caches(cache_dir, monkeypatch):
    calls = []

    def fake_download(tickers, **kwargs):
        calls.append(tickers)
        return _daily(tickers)

    monkeypatch.setattr(fetchers.yf, "download", fake_download)
    first = fetch_prices_monthly(["VWCE.DE", "VAGF.DE"])
    assert len(first) == 4  # Jan..Apr 2024
    assert list(first.columns) == ["VWCE.DE", "VAGF.DE"]
    assert first.index.is_month_end.all()

    second = fetch_prices_monthly(["VWCE.DE", "VAGF.DE"])
    assert len(calls) == 1
    assert np.allclose(second.to_numpy(), first.to_numpy())
    assert any(cache_dir.iterdir())


def test_fetch_prices_monthly_no_data(cache_dir, monkeypatch):
    monkeypatch.setattr(fetchers.yf, "download", lambda tickers, **kw: _daily(["OTHER"]))
    with pytest.raises(RuntimeError):
        fetch_prices_monthly(["VWCE.DE"])


def test_fetch_risk_free_rate_takes_latest(monkeypatch):
    idx = pd.date_range("2024-01-31", periods=3, freq="ME")
    frame = pd.DataFrame({"TB3MS": [5.2, 5.1, 4.9]}, index=idx)
    monkeypatch.setattr(fetchers, "fetch_fred_series", lambda sid: frame)
    assert fetch_risk_free_rate() == pytest.approx(4.9)


def test_price_paths_from_history_rebases_last_months():
    idx = pd.date_range("2023-01-31", periods=10, freq="ME")
    prices = pd.DataFrame(
        {"VWCE.DE": np.arange(10, 20, dtype=float), "bonds": np.arange(50, 60, dtype=float)},
        index=idx,
    )
    paths = price_paths_from_history(prices, ["world_equity", "bonds"], 4)
    assert paths["world_equity"].tolist() == pytest.approx([100.0, 100 * 16 / 15, 100 * 17 / 15,
                                                           100 * 18 / 15, 100 * 19 / 15])
    assert paths["bonds"][0] == 100.0
    assert len(paths["bonds"]) == 5


def test_price_paths_from_history_errors():
    idx = pd.date_range("2023-01-31", periods=3, freq="ME")
    prices = pd.DataFrame({"bonds": [1.0, 2.0, 3.0]}, index=idx)
    with pytest.raises(ConfigurationError) as exc:
        price_paths_from_history(prices, ["bonds"], 12)
    assert exc.value.reason == "short_price_history"
    with pytest.raises(ConfigurationError) as exc:
        price_paths_from_history(prices, ["sp500"], 2)
    assert exc.value.reason == "missing_price_path"
