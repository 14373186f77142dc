"""
Moving average crossover strategy tests.
"""

import pytest

from tradesim.models.results import PortfolioSnapshot, PositionSnapshot
from tradesim.models.signals import SignalAction
from tradesim.strategies.ma_cross import MovingAverageCrossStrategy

FLAT = PortfolioSnapshot(cash=100000.0, total_value=100000.0, positions_value=0.0)
HOLDING = PortfolioSnapshot(
    cash=99000.0,
    total_value=100000.0,
    positions_value=1000.0,
    positions={"AAPL": PositionSnapshot(
        symbol="AAPL", quantity=100, average_price=10.0, current_price=10.0,
        market_value=1000.0, unrealized_pnl=0.0, unrealized_pnl_percent=0.0
    )}
)


def _feed(strategy, bars, portfolio):
    return [strategy.generate_signals({bar.symbol: bar}, portfolio) for bar in bars]


def test_buy_on_cross_above(make_bars):
    strategy = MovingAverageCrossStrategy(fast_window=2, slow_window=3)

    emitted = _feed(strategy, make_bars("AAPL", [10.0, 10.0, 10.0, 10.0, 12.0]), FLAT)

    assert emitted[:4] == [[], [], [], []]
    signal = emitted[4][0]
    assert signal.action == SignalAction.BUY
    assert signal.symbol == "AAPL"
    assert signal.strategy_id == "ma_cross"
    assert signal.strength == pytest.approx(1.0)
    assert signal.quantity is None


def test_no_buy_while_holding(make_bars):
    strategy = MovingAverageCrossStrategy(fast_window=2, slow_window=3)

    emitted = _feed(strategy, make_bars("AAPL", [10.0, 10.0, 10.0, 10.0, 12.0]), HOLDING)

    assert emitted[4] == []


def test_sell_on_cross_below(make_bars):
    strategy = MovingAverageCrossStrategy(fast_window=2, slow_window=3)
    bars = make_bars("AAPL", [10.0, 10.0, 10.0, 12.0, 8.0, 6.0])

    emitted = _feed(strategy, bars, HOLDING)

    signal = emitted[-1][0]
    assert signal.action == SignalAction.SELL
    assert signal.quantity == 100
    assert signal.strength < 0


def test_symbol_filter_and_reset(make_bars):
    strategy = MovingAverageCrossStrategy(fast_window=2, slow_window=3, symbols=["MSFT"])

    _feed(strategy, make_bars("AAPL", [10.0] * 5), FLAT)
    assert strategy.get_state()["symbols_tracked"] == []

    _feed(strategy, make_bars("MSFT", [10.0] * 5), FLAT)
    assert strategy.get_state()["symbols_tracked"] == ["MSFT"]

    strategy.reset()
    assert strategy.closes == {}


def test_invalid_windows():
    with pytest.raises(ValueError, match="smaller than slow_window"):
        MovingAverageCrossStrategy(fast_window=5, slow_window=5)
