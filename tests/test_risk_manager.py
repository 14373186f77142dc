"""
Risk controller tests: circuit breaker, limit checks, sizing, alerts and metrics.
"""

from datetime import datetime, timedelta

import pytest

from tradesim.core.events import EventQueue, RiskAlertEvent
from tradesim.core.risk_manager import STOP_LOSS_STRATEGY_ID, RiskManager
from tradesim.core.risk_model import StaticRiskModel
from tradesim.models.config import RiskLimits
from tradesim.models.results import TradeSide
from tradesim.models.risk import (
    ControllerState, RiskAction, Severity, StrategyStatistics, ViolationType
)
from tradesim.models.signals import SignalAction

STRONG_STATS = StrategyStatistics(trades=50, win_rate=0.9, avg_win_percent=5.0, avg_loss_percent=1.0)


def _violation_types(result):
    return [v.type for v in result.violations]


def _loss_session(make_trade, limits=None, exit_price=79.0):
    """Buy 100 @ 100 then sell at ``exit_price``."""
    manager = RiskManager(limits or RiskLimits(max_daily_loss=0.02), initial_capital=100000.0)
    manager.on_trade_executed(make_trade(quantity=100, price=100.0))
    manager.on_trade_executed(make_trade(side=TradeSide.SELL, quantity=100, price=exit_price))
    return manager


# ----------------------------------------------------------------------
# Circuit breaker
# ----------------------------------------------------------------------

def test_daily_loss_breach_halts_trading(make_trade, make_signal):
    manager = _loss_session(make_trade)
    assert manager.portfolio.total_value == pytest.approx(97900.0)

    result = manager.pre_trade_check(make_signal(), 10, 100.0)

    assert not result.allowed
    violation = result.violations[0]
    assert violation.type == ViolationType.DAILY_LOSS_LIMIT
    assert violation.severity == Severity.CRITICAL
    assert violation.action == RiskAction.HALT_TRADING
    assert violation.current_value == pytest.approx(2.1)
    assert violation.limit == pytest.approx(2.0)
    assert manager.state == ControllerState.HALTED
    assert manager.trading_halted


def test_daily_loss_exactly_at_limit_halts(make_trade, make_signal):
    manager = _loss_session(make_trade, exit_price=80.0)

    result = manager.pre_trade_check(make_signal(), 10, 100.0)

    assert not result.allowed
    assert _violation_types(result) == [ViolationType.DAILY_LOSS_LIMIT]


def test_daily_loss_warning_below_limit(make_trade, make_signal):
    manager = _loss_session(make_trade, exit_price=81.0)

    result = manager.pre_trade_check(make_signal(), 10, 100.0)

    assert result.allowed
    assert result.violations == []
    assert any("Approaching daily loss limit" in w for w in result.warnings)
    assert manager.state == ControllerState.ACTIVE


def test_halt_is_sticky_until_reset(make_trade, make_signal):
    manager = _loss_session(make_trade)
    manager.pre_trade_check(make_signal(), 10, 100.0)

    # Recovered equity does not lift the halt
    manager.portfolio.cash += 10000.0
    for action in (SignalAction.BUY, SignalAction.SELL, SignalAction.BUY):
        result = manager.pre_trade_check(make_signal(action=action), 10, 100.0)
        assert not result.allowed
        assert _violation_types(result) == [ViolationType.TRADING_HALTED]
        assert result.violations[0].severity == Severity.CRITICAL

    manager.reset_daily_limits(as_of=datetime(2024, 1, 2))

    result = manager.pre_trade_check(make_signal(), 10, 100.0)
    assert result.allowed
    assert manager.state == ControllerState.ACTIVE
    assert manager.daily_start_equity == pytest.approx(manager.portfolio.total_value)


def test_drawdown_breach_halts(make_trade, make_signal):
    manager = RiskManager(RiskLimits(max_daily_loss=0.5, max_drawdown=0.05), initial_capital=100000.0)
    manager.on_trade_executed(make_trade(quantity=100, price=100.0))
    manager.mark_to_market({"AAPL": 40.0}, datetime(2024, 1, 1, 12))

    result = manager.pre_trade_check(make_signal(action=SignalAction.SELL), 100, 40.0)

    assert not result.allowed
    assert _violation_types(result) == [ViolationType.MAX_DRAWDOWN]
    assert result.violations[0].current_value == pytest.approx(6.0)
    assert manager.halt_reason == "Maximum drawdown exceeded"


def test_invalid_inputs_raise(make_signal):
    manager = RiskManager()

    with pytest.raises(ValueError, match="proposed_quantity must be positive"):
        manager.pre_trade_check(make_signal(), 0, 100.0)
    with pytest.raises(ValueError, match="current_price must be positive"):
        manager.pre_trade_check(make_signal(), 10, 0.0)


# ----------------------------------------------------------------------
# Limit checks
# ----------------------------------------------------------------------

def test_position_size_violation_reduces(make_signal):
    manager = RiskManager(initial_capital=100000.0)

    result = manager.pre_trade_check(make_signal(), 200, 100.0)

    assert result.allowed
    assert _violation_types(result) == [ViolationType.POSITION_SIZE_LIMIT]
    violation = result.violations[0]
    assert violation.severity == Severity.HIGH
    assert violation.action == RiskAction.REDUCE_POSITION
    assert violation.current_value == pytest.approx(20.0)
    # Kelly fallback: 2% of equity
    assert result.adjusted_quantity == 20


def test_sell_only_faces_halt_checks(make_trade, make_signal):
    manager = RiskManager(initial_capital=100000.0)
    manager.on_trade_executed(make_trade(quantity=900, price=100.0))

    result = manager.pre_trade_check(make_signal(action=SignalAction.SELL), 900, 100.0)

    assert result.allowed
    assert result.violations == []
    assert result.adjusted_quantity == 900


def test_sector_concentration_caps_to_headroom(make_trade, make_signal):
    model = StaticRiskModel(sectors={"AAPL": "Tech", "MSFT": "Tech"}, strategy_stats={"test": STRONG_STATS})
    manager = RiskManager(initial_capital=100000.0, risk_model=model)
    manager.on_trade_executed(make_trade(symbol="MSFT", quantity=250, price=100.0))

    result = manager.pre_trade_check(make_signal(), 100, 100.0)

    assert result.allowed
    assert _violation_types(result) == [ViolationType.SECTOR_CONCENTRATION]
    assert result.violations[0].severity == Severity.MEDIUM
    assert result.violations[0].current_value == pytest.approx(35.0)
    assert result.adjusted_quantity == 50


def test_sector_warning_near_limit(make_trade, make_signal):
    model = StaticRiskModel(sectors={"AAPL": "Tech", "MSFT": "Tech"})
    manager = RiskManager(initial_capital=100000.0, risk_model=model)
    manager.on_trade_executed(make_trade(symbol="MSFT", quantity=200, price=100.0))

    result = manager.pre_trade_check(make_signal(), 50, 100.0)

    assert result.allowed
    assert result.violations == []
    assert any("High sector concentration in Tech" in w for w in result.warnings)


def test_correlation_is_warning_and_shrinks_size(make_trade, make_signal):
    model = StaticRiskModel(correlations={("AAPL", "MSFT"): 0.8}, strategy_stats={"test": STRONG_STATS})
    manager = RiskManager(initial_capital=100000.0, risk_model=model)
    manager.on_trade_executed(make_trade(symbol="MSFT", quantity=100, price=100.0))

    result = manager.pre_trade_check(make_signal(), 100, 100.0)

    assert result.allowed
    assert _violation_types(result) == [ViolationType.HIGH_CORRELATION]
    violation = result.violations[0]
    assert violation.severity == Severity.MEDIUM
    assert violation.action == RiskAction.WARNING
    assert violation.current_value == pytest.approx(0.8)
    assert result.adjusted_quantity == 50


def test_leverage_violation(make_trade, make_signal):
    manager = RiskManager(
        RiskLimits(max_leverage=0.5, max_position_size=1.0, max_sector_exposure=1.0),
        initial_capital=100000.0
    )
    manager.on_trade_executed(make_trade(quantity=400, price=100.0))

    result = manager.pre_trade_check(make_signal(symbol="MSFT"), 150, 100.0)

    assert result.allowed
    assert _violation_types(result) == [ViolationType.LEVERAGE_LIMIT]
    assert result.violations[0].current_value == pytest.approx(0.55)
    assert result.adjusted_quantity == 20


def test_no_headroom_rejects(make_trade, make_signal):
    manager = RiskManager(RiskLimits(max_position_size=0.10), initial_capital=100000.0)
    manager.on_trade_executed(make_trade(quantity=100, price=100.0))

    result = manager.pre_trade_check(make_signal(), 10, 100.0)

    assert not result.allowed
    assert _violation_types(result) == [ViolationType.POSITION_SIZE_LIMIT]
    assert any("No headroom" in w for w in result.warnings)
    assert manager.state == ControllerState.ACTIVE


# ----------------------------------------------------------------------
# Sizing
# ----------------------------------------------------------------------

def test_kelly_fraction():
    stats = StrategyStatistics(trades=20, win_rate=0.6, avg_win_percent=2.5, avg_loss_percent=-1.5)

    assert RiskManager.kelly_fraction(stats) == pytest.approx(0.09)


def test_kelly_fraction_bounds():
    losing = StrategyStatistics(trades=20, win_rate=0.2, avg_win_percent=1.0, avg_loss_percent=2.0)
    no_losses = StrategyStatistics(trades=20, win_rate=1.0, avg_win_percent=3.0, avg_loss_percent=0.0)
    no_wins = StrategyStatistics(trades=20, win_rate=0.0, avg_win_percent=0.0, avg_loss_percent=2.0)

    assert RiskManager.kelly_fraction(losing) == 0.0
    assert RiskManager.kelly_fraction(no_losses) == 0.25
    assert RiskManager.kelly_fraction(no_wins) == 0.0


def test_kelly_sizing_with_strategy_history(make_signal):
    stats = StrategyStatistics(trades=20, win_rate=0.6, avg_win_percent=2.5, avg_loss_percent=-1.5)
    model = StaticRiskModel(strategy_stats={"momentum": stats})
    manager = RiskManager(initial_capital=100000.0, risk_model=model)

    result = manager.pre_trade_check(make_signal(strategy_id="momentum"), 100, 100.0)

    assert result.allowed
    assert result.adjusted_quantity == 90


def test_kelly_sizing_capped_by_position_limit(make_signal):
    stats = StrategyStatistics(trades=20, win_rate=0.6, avg_win_percent=2.5, avg_loss_percent=-1.5)
    model = StaticRiskModel(strategy_stats={"momentum": stats})
    manager = RiskManager(RiskLimits(max_position_size=0.05), initial_capital=100000.0, risk_model=model)

    result = manager.pre_trade_check(make_signal(strategy_id="momentum"), 100, 100.0)

    assert _violation_types(result) == [ViolationType.POSITION_SIZE_LIMIT]
    assert result.adjusted_quantity == 50


def test_kelly_falls_back_with_short_history(make_signal):
    stats = StrategyStatistics(trades=5, win_rate=0.9, avg_win_percent=5.0, avg_loss_percent=1.0)
    manager = RiskManager(initial_capital=100000.0, risk_model=StaticRiskModel(strategy_stats={"test": stats}))

    assert manager.calculate_risk_adjusted_size(make_signal(), 100, 100.0) == 20


def test_volatility_sizing_caps_quantity(make_signal):
    model = StaticRiskModel(atr={"AAPL": 10.0}, strategy_stats={"test": STRONG_STATS})
    manager = RiskManager(initial_capital=100000.0, risk_model=model)

    assert manager.calculate_risk_adjusted_size(make_signal(), 150, 100.0) == 50


def test_minimum_notional_floor(make_trade, make_signal):
    model = StaticRiskModel(correlations={("AAPL", "MSFT"): 1.0})
    manager = RiskManager(initial_capital=100000.0, risk_model=model)
    manager.on_trade_executed(make_trade(symbol="MSFT", quantity=10, price=100.0))

    # 3 * (1 - 0.625) rounds down to 1, the $100 floor lifts it to 2
    assert manager.calculate_risk_adjusted_size(make_signal(), 3, 50.0) == 2
    # The floor never exceeds the proposed quantity
    assert manager.calculate_risk_adjusted_size(make_signal(), 1, 50.0) == 1


def test_statistics_derived_from_ledger(make_trade):
    manager = RiskManager(initial_capital=100000.0)
    manager.on_trade_executed(make_trade(quantity=10, price=100.0))
    manager.on_trade_executed(make_trade(side=TradeSide.SELL, quantity=10, price=110.0))
    manager.on_trade_executed(make_trade(quantity=10, price=100.0))
    manager.on_trade_executed(make_trade(side=TradeSide.SELL, quantity=10, price=95.0))

    stats = manager.strategy_statistics("test")

    assert stats.trades == 2
    assert stats.win_rate == pytest.approx(0.5)
    assert stats.avg_win_percent == pytest.approx(10.0)
    assert stats.avg_loss_percent == pytest.approx(5.0)
    assert manager.strategy_statistics("other") is None


# ----------------------------------------------------------------------
# Alerts, stop losses, status and metrics
# ----------------------------------------------------------------------

def test_one_alert_per_violation_is_published(make_trade, make_signal):
    queue = EventQueue()
    received = []
    queue.register_handler("RiskAlertEvent", received.append)
    manager = RiskManager(initial_capital=100000.0, event_queue=queue)

    manager.pre_trade_check(make_signal(), 200, 100.0)
    manager.pre_trade_check(make_signal(), 300, 100.0)

    assert [a.id for a in manager.alerts] == ["A000001", "A000002"]
    assert all(a.type == ViolationType.POSITION_SIZE_LIMIT for a in manager.alerts)
    assert queue.process_events() == 2
    assert all(isinstance(e, RiskAlertEvent) for e in received)
    assert received[0].alert.symbol == "AAPL"


def test_reset_prunes_old_alerts(make_signal):
    manager = RiskManager(initial_capital=100000.0)
    day = datetime(2024, 1, 1)
    manager.pre_trade_check(make_signal(timestamp=day), 200, 100.0)
    manager.pre_trade_check(make_signal(timestamp=day + timedelta(days=2)), 200, 100.0)

    manager.reset_daily_limits(as_of=day + timedelta(days=2, hours=1))

    assert len(manager.alerts) == 1
    assert manager.alerts[0].timestamp == day + timedelta(days=2)
    assert manager.prune_alerts(timedelta(hours=0), day + timedelta(days=3)) == 1
    assert manager.alerts == []


def test_stop_loss_signals(make_trade):
    manager = RiskManager(initial_capital=100000.0)
    manager.on_trade_executed(make_trade(symbol="AAPL", quantity=100, price=100.0))
    manager.on_trade_executed(make_trade(symbol="MSFT", quantity=10, price=100.0))
    timestamp = datetime(2024, 1, 5)
    manager.mark_to_market({"AAPL": 85.0, "MSFT": 95.0}, timestamp)

    signals = manager.check_stop_losses(timestamp)

    assert len(signals) == 1
    signal = signals[0]
    assert signal.symbol == "AAPL"
    assert signal.action == SignalAction.SELL
    assert signal.quantity == 100
    assert signal.strategy_id == STOP_LOSS_STRATEGY_ID
    assert manager.alerts[-1].type == ViolationType.STOP_LOSS
    assert manager.alerts[-1].severity == Severity.HIGH


def test_risk_status_after_halt(make_trade, make_signal):
    manager = _loss_session(make_trade)
    manager.pre_trade_check(make_signal(), 10, 100.0)

    status = manager.get_risk_status()

    assert not status.trading_allowed
    assert status.state == ControllerState.HALTED
    assert status.daily_pnl_pct == pytest.approx(-2.1)
    assert status.current_drawdown_pct == pytest.approx(2.1)
    assert status.risk_score == pytest.approx(2.1 / 10 * 40 + 2.1 / 2 * 30)
    assert [a.type for a in status.alerts] == [ViolationType.DAILY_LOSS_LIMIT]


def test_risk_metrics_refresh_after_trade(make_trade):
    model = StaticRiskModel(sectors={"AAPL": "Tech"}, betas={"AAPL": 1.5}, volatility=0.02)
    manager = RiskManager(initial_capital=100000.0, risk_model=model)

    manager.on_trade_executed(make_trade(quantity=100, price=100.0))
    metrics = manager.risk_metrics

    assert metrics.daily_var == pytest.approx(100000.0 * 0.02 * 1.645)
    assert metrics.beta == pytest.approx(0.15)
    assert metrics.sector_exposure == pytest.approx({"Tech": 0.1})
    assert metrics.concentration_risk == pytest.approx(0.01)
    assert metrics.correlation == 0.0
    assert metrics.current_drawdown == 0.0
