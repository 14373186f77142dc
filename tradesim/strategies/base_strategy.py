# tradesim/strategies/base_strategy.py
"""
Base strategy interface for backtesting.
"""
from abc import ABC, abstractmethod
from typing import Dict, List
from ..models.market_data import MarketDataPoint
from ..models.results import PortfolioSnapshot, Trade
from ..models.signals import Signal


class BaseStrategy(ABC):
    """
    Base strategy interface that all strategies must implement.

    The engine calls ``generate_signals`` once per simulation step with the
    bars available at that timestamp and a read-only portfolio snapshot.
    """

    def __init__(self, name: str = "BaseStrategy"):
        """
        Initialize strategy.

        Args:
            name: Strategy name, used as ``strategy_id`` on signals
        """
        self.name = name

    def reset(self) -> None:
        """Clear internal state before a new run."""
        pass

    @abstractmethod
    def generate_signals(self, bars: Dict[str, MarketDataPoint], portfolio: PortfolioSnapshot) -> List[Signal]:
        """
        Produce signals for the current step.

        Args:
            bars: Symbol to bar mapping for symbols trading at this timestamp
            portfolio: Portfolio state after mark-to-market

        Returns:
            Signals to act on; HOLD signals are ignored
        """
        pass

    def on_trade_executed(self, trade: Trade) -> None:
        """
        Handle execution notification.

        Args:
            trade: Trade as recorded in the ledger
        """
        # Default implementation does nothing
        pass

    def on_day_end(self, portfolio: PortfolioSnapshot) -> None:
        """
        Called after the equity point of each step is recorded.

        Args:
            portfolio: Portfolio state at the end of the step
        """
        pass
