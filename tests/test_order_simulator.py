"""
Execution pricing tests for the spread, slippage models and commission.
"""

import pytest

from tradesim.core.order_simulator import OrderSimulator
from tradesim.models.config import SlippageModel
from tradesim.models.signals import SignalAction


def test_half_spread_without_slippage():
    simulator = OrderSimulator(SlippageModel.PERCENTAGE, 0.0)

    assert simulator.calculate_execution_price(100.0, SignalAction.BUY) == pytest.approx(100.005)
    assert simulator.calculate_execution_price(100.0, SignalAction.SELL) == pytest.approx(99.995)


def test_fixed_slippage_is_absolute():
    simulator = OrderSimulator(SlippageModel.FIXED, 0.05)

    assert simulator.calculate_execution_price(100.0, SignalAction.BUY) == pytest.approx(100.055)
    assert simulator.calculate_execution_price(100.0, SignalAction.SELL) == pytest.approx(99.945)


def test_percentage_slippage_scales_with_price():
    simulator = OrderSimulator(SlippageModel.PERCENTAGE, 0.001)

    assert simulator.calculate_execution_price(100.0, SignalAction.BUY) == pytest.approx(100.005 * 1.001)
    assert simulator.calculate_execution_price(100.0, SignalAction.SELL) == pytest.approx(99.995 * 0.999)


def test_market_impact_is_asymmetric():
    simulator = OrderSimulator(SlippageModel.MARKET_IMPACT, 0.001)

    buy_slippage = simulator.calculate_slippage(100.0, SignalAction.BUY)
    sell_slippage = simulator.calculate_slippage(100.0, SignalAction.SELL)

    assert buy_slippage == pytest.approx(0.12)
    assert sell_slippage == pytest.approx(0.08)
    assert simulator.calculate_execution_price(100.0, SignalAction.BUY) == pytest.approx(100.005 + 100.005 * 0.0012)


def test_sell_price_never_negative():
    simulator = OrderSimulator(SlippageModel.FIXED, 5.0)

    assert simulator.calculate_execution_price(1.0, SignalAction.SELL) == 0.0


def test_commission_flat_plus_bps():
    simulator = OrderSimulator(commission=1.0, commission_bps=10.0)

    assert simulator.calculate_commission(100, 50.0) == pytest.approx(1.0 + 5000.0 * 0.001)
    assert OrderSimulator().calculate_commission(100, 50.0) == 0.0


def test_pricing_is_deterministic():
    first = OrderSimulator(SlippageModel.MARKET_IMPACT, 0.002)
    second = OrderSimulator(SlippageModel.MARKET_IMPACT, 0.002)

    prices = [first.calculate_execution_price(p, SignalAction.BUY) for p in (10.0, 55.5, 300.25)]
    assert prices == [second.calculate_execution_price(p, SignalAction.BUY) for p in (10.0, 55.5, 300.25)]
