# tradesim/strategies/ma_cross.py
"""
Moving average crossover strategy.
"""
import logging
from typing import Dict, List, Optional, Sequence
import pandas as pd
from .base_strategy import BaseStrategy
from ..models.market_data import MarketDataPoint
from ..models.results import PortfolioSnapshot
from ..models.signals import Signal, SignalAction

logger = logging.getLogger(__name__)


class MovingAverageCrossStrategy(BaseStrategy):
    """
    Buys when the fast simple moving average crosses above the slow one and
    closes the position when it crosses back below.

    Signal strength scales with the gap between the averages relative to the
    slow average, so a decisive cross trades larger than a marginal one.
    """

    def __init__(
        self,
        fast_window: int = 10,
        slow_window: int = 30,
        symbols: Optional[Sequence[str]] = None,
        confidence: float = 1.0,
        name: str = "ma_cross"
    ):
        """
        Initialize strategy.

        Args:
            fast_window: Bars in the fast average
            slow_window: Bars in the slow average
            symbols: Symbols to trade, all symbols when None
            confidence: Confidence attached to every signal
            name: Strategy identifier
        """
        super().__init__(name)
        if fast_window <= 0 or fast_window >= slow_window:
            raise ValueError("fast_window must be positive and smaller than slow_window")

        self.fast_window = fast_window
        self.slow_window = slow_window
        self.symbols = set(symbols) if symbols else None
        self.confidence = confidence
        self.closes: Dict[str, List[float]] = {}

    def reset(self) -> None:
        self.closes = {}

    def generate_signals(self, bars: Dict[str, MarketDataPoint], portfolio: PortfolioSnapshot) -> List[Signal]:
        signals = []
        for symbol, bar in bars.items():
            if self.symbols is not None and symbol not in self.symbols:
                continue

            history = self.closes.setdefault(symbol, [])
            history.append(bar.close)
            if len(history) > self.slow_window + 1:
                del history[0]
            if len(history) < self.slow_window + 1:
                continue

            signal = self._crossover_signal(symbol, bar, history, portfolio)
            if signal is not None:
                signals.append(signal)

        return signals

    def _crossover_signal(
        self,
        symbol: str,
        bar: MarketDataPoint,
        history: List[float],
        portfolio: PortfolioSnapshot
    ) -> Optional[Signal]:
        closes = pd.Series(history)
        fast = closes.rolling(self.fast_window).mean()
        slow = closes.rolling(self.slow_window).mean()

        previous_gap = fast.iloc[-2] - slow.iloc[-2]
        current_gap = fast.iloc[-1] - slow.iloc[-1]
        strength = min(1.0, abs(current_gap) / slow.iloc[-1] * 50) if slow.iloc[-1] > 0 else 1.0
        strength = max(strength, 0.1)

        if previous_gap <= 0 < current_gap and not portfolio.has_position(symbol):
            logger.debug(f"{symbol}: fast MA crossed above slow MA at {bar.timestamp}")
            return Signal(
                timestamp=bar.timestamp,
                symbol=symbol,
                action=SignalAction.BUY,
                strength=strength,
                confidence=self.confidence,
                strategy_id=self.name,
                reasoning=f"SMA{self.fast_window} crossed above SMA{self.slow_window}"
            )

        if previous_gap >= 0 > current_gap and portfolio.has_position(symbol):
            logger.debug(f"{symbol}: fast MA crossed below slow MA at {bar.timestamp}")
            return Signal(
                timestamp=bar.timestamp,
                symbol=symbol,
                action=SignalAction.SELL,
                strength=-strength,
                confidence=self.confidence,
                strategy_id=self.name,
                reasoning=f"SMA{self.fast_window} crossed below SMA{self.slow_window}",
                quantity=portfolio.positions[symbol].quantity
            )

        return None

    def get_state(self) -> dict:
        """
        Get current strategy state.

        Returns:
            Strategy state dictionary
        """
        return {
            'name': self.name,
            'fast_window': self.fast_window,
            'slow_window': self.slow_window,
            'symbols_tracked': sorted(self.closes)
        }
