# tradesim/strategies/__init__.py
"""
Trading strategies.
"""
from .base_strategy import BaseStrategy
from .ma_cross import MovingAverageCrossStrategy

__all__ = [
    "BaseStrategy",
    "MovingAverageCrossStrategy",
]
