# tradesim/core/__init__.py
"""
Core simulation and risk components.
"""

from .backtest_engine import BacktestEngine
from .errors import ConfigurationError, DataValidationError, TradesimError
from .events import Event, EventQueue, MarketDataEvent, PortfolioEvent, RiskAlertEvent, TradeEvent
from .metrics import MetricsCalculator
from .order_simulator import OrderSimulator
from .portfolio import Portfolio, Position
from .risk_manager import RiskManager
from .risk_model import HistoricalRiskModel, RiskModel, StaticRiskModel

__all__ = [
    "BacktestEngine",
    "ConfigurationError",
    "DataValidationError",
    "TradesimError",
    "Event",
    "EventQueue",
    "MarketDataEvent",
    "PortfolioEvent",
    "RiskAlertEvent",
    "TradeEvent",
    "MetricsCalculator",
    "OrderSimulator",
    "Portfolio",
    "Position",
    "RiskManager",
    "HistoricalRiskModel",
    "RiskModel",
    "StaticRiskModel",
]
