import numpy as np
import pytest

from pac_simulator.config import Strategy
from pac_simulator.engine.strategies import StrategyContext, evaluate_contribution, recent_volatility


def _ctx(prices, month=None, **kw):
    month = len(prices) - 1 if month is None else month
    return StrategyContext(month=month, prices=prices, nominal_amount=500.0, **kw)


def test_dca_constant():
    for prices in ([100.0, 80.0], [100.0, 150.0, 90.0, 200.0]):
        assert evaluate_contribution(Strategy.DCA, _ctx(prices)) == 500.0


def test_momentum_uses_three_month_lookback():
    prices = [100.0, 100.0, 100.0, 100.0, 110.0]
    assert evaluate_contribution("momentum", _ctx(prices)) == pytest.approx(550.0)
    # month 3 has no full lookback yet
    assert evaluate_contribution("momentum", _ctx(prices[:4])) == 500.0


def test_momentum_never_negative():
    prices = [100.0, 100.0, 100.0, 100.0, 1.0]
    assert evaluate_contribution("momentum", _ctx(prices)) == pytest.approx(500.0 * 0.01)
    prices = [100.0, 300.0, 300.0, 300.0, 0.5]
    assert evaluate_contribution("momentum", _ctx(prices, month=4)) >= 0.0


def test_contrarian_buys_more_after_decline():
    assert evaluate_contribution("contrarian", _ctx([100.0, 100.0, 90.0])) == pytest.approx(600.0)
    assert evaluate_contribution("contrarian", _ctx([100.0, 100.0, 110.0])) == 500.0
    assert evaluate_contribution("contrarian", _ctx([100.0, 50.0])) == 500.0


def test_value_averaging_tops_up_to_target():
    ctx = _ctx([100.0, 100.0, 100.0], cumulative_invested=10_000.0, portfolio_value=10_200.0)
    assert evaluate_contribution("value_averaging", ctx) == pytest.approx(800.0)


def test_value_averaging_skips_when_above_target():
    ctx = _ctx([100.0, 100.0, 100.0], cumulative_invested=10_000.0, portfolio_value=12_000.0)
    assert evaluate_contribution(Strategy.VALUE_AVERAGING, ctx) == 0.0


def test_value_averaging_target_grows_with_month():
    ctx = _ctx([100.0, 100.0, 100.0], cumulative_invested=10_500.0, portfolio_value=10_500.0)
    assert evaluate_contribution("value_averaging", ctx) == pytest.approx(1_000.0)


def test_smart_beta_without_noise():
    prices = [100.0, 100.0, 100.0, 100.0, 110.0]
    assert evaluate_contribution("smart_beta", _ctx(prices)) == pytest.approx(550.0)


def test_smart_beta_noise_is_small():
    prices = [100.0, 100.0, 100.0, 100.0, 110.0]
    rng = np.random.default_rng(0)
    for _ in range(50):
        amount = evaluate_contribution("smart_beta", _ctx(prices, rng=rng))
        assert 537.5 - 1e-9 <= amount <= 562.5 + 1e-9


def test_tactical_neutral_until_six_months_of_history():
    prices = [100.0, 150.0, 80.0, 120.0, 90.0, 130.0, 100.0]
    assert evaluate_contribution("tactical", _ctx(prices)) == 500.0


def test_tactical_scales_with_recent_volatility():
    flat = [100.0] * 8
    assert recent_volatility(flat, 7) == 0.0
    assert evaluate_contribution("tactical", _ctx(flat)) == pytest.approx(625.0)

    wild = [100.0, 200.0] * 4
    assert evaluate_contribution("tactical", _ctx(wild)) == 0.0


def test_month_beyond_history_rejected():
    with pytest.raises(ValueError):
        evaluate_contribution("dca", _ctx([100.0, 101.0], month=5))


def test_rest_spelling_accepted():
    assert Strategy.parse("VALUE_AVERAGING") is Strategy.VALUE_AVERAGING


class _LowestDraw:
    def uniform(self, low, high):
        return low


def test_negative_amount_clamped_to_zero():
    # momentum -99.5% plus the lowest noise draw puts the raw amount below zero
    prices = [100.0, 100.0, 100.0, 100.0, 0.5]
    assert evaluate_contribution("smart_beta", _ctx(prices, rng=_LowestDraw())) == 0.0
