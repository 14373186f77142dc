# tradesim/__init__.py
"""
Backtest simulation engine with portfolio-level risk controls.
"""

from .core.backtest_engine import BacktestEngine
from .core.risk_manager import RiskManager
from .models.config import BacktestConfig, RiskLimits
from .models.results import BacktestResult

__version__ = "0.1.0"

__all__ = [
    "BacktestEngine",
    "RiskManager",
    "BacktestConfig",
    "RiskLimits",
    "BacktestResult",
]
