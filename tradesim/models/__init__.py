"""
Data models for the simulation engine and risk controller.
"""

from .config import (
    AppConfig, BacktestConfig, LoggingConfig, RiskLimits, SlippageModel,
    StrategyConfig, UnresolvedPositionPolicy
)
from .market_data import MarketDataPoint
from .signals import Signal, SignalAction
from .results import (
    BacktestResult, BacktestStatistics, DrawdownPoint, EquityPoint, PerformanceMetrics,
    PortfolioSnapshot, PositionSnapshot, Trade, TradeSide
)
from .risk import (
    ControllerState, RiskAction, RiskAlert, RiskCheckResult, RiskMetrics, RiskStatus,
    RiskViolation, Severity, StrategyStatistics, ViolationType
)

__all__ = [
    "AppConfig",
    "BacktestConfig",
    "LoggingConfig",
    "RiskLimits",
    "SlippageModel",
    "StrategyConfig",
    "UnresolvedPositionPolicy",
    "MarketDataPoint",
    "Signal",
    "SignalAction",
    "BacktestResult",
    "BacktestStatistics",
    "DrawdownPoint",
    "EquityPoint",
    "PerformanceMetrics",
    "PortfolioSnapshot",
    "PositionSnapshot",
    "Trade",
    "TradeSide",
    "ControllerState",
    "RiskAction",
    "RiskAlert",
    "RiskCheckResult",
    "RiskMetrics",
    "RiskStatus",
    "RiskViolation",
    "Severity",
    "StrategyStatistics",
    "ViolationType",
]
