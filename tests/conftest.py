from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from tradesim.models.config import BacktestConfig
from tradesim.models.market_data import MarketDataPoint
from tradesim.models.results import PortfolioSnapshot, Trade, TradeSide
from tradesim.models.signals import Signal, SignalAction
from tradesim.strategies.base_strategy import BaseStrategy


START = datetime(2024, 1, 1)


def _make_bars(
    symbol: str,
    closes: Sequence[float],
    start: datetime = START,
    step: timedelta = timedelta(days=1),
    spread: float = 1.0,
) -> List[MarketDataPoint]:
    return [
        MarketDataPoint(
            symbol=symbol,
            timestamp=start + i * step,
            open=close,
            high=close + spread,
            low=max(0.0, close - spread),
            close=close,
            volume=1000,
        )
        for i, close in enumerate(closes)
    ]


class ScriptedStrategy(BaseStrategy):
    """Emits pre-planned signals keyed by step number (1-based)."""

    def __init__(self, plan: Optional[Dict[int, List[dict]]] = None, name: str = "scripted"):
        super().__init__(name)
        self.plan = plan or {}
        self.step = 0
        self.executed: List[Trade] = []
        self.day_ends = 0

    def reset(self) -> None:
        self.step = 0
        self.executed = []
        self.day_ends = 0

    def generate_signals(self, bars: Dict[str, MarketDataPoint], portfolio: PortfolioSnapshot) -> List[Signal]:
        self.step += 1
        timestamp = next(iter(bars.values())).timestamp
        signals = []
        for spec in self.plan.get(self.step, []):
            params = {"strength": 1.0, "confidence": 1.0, "strategy_id": self.name}
            params.update(spec)
            signals.append(Signal(timestamp=timestamp, **params))
        return signals

    def on_trade_executed(self, trade: Trade) -> None:
        self.executed.append(trade)

    def on_day_end(self, portfolio: PortfolioSnapshot) -> None:
        self.day_ends += 1


@pytest.fixture
def make_bars() -> Callable[..., List[MarketDataPoint]]:
    return _make_bars


@pytest.fixture
def scripted_strategy() -> Callable[..., ScriptedStrategy]:
    return ScriptedStrategy


@pytest.fixture
def backtest_config() -> Callable[..., BacktestConfig]:
    def factory(days: int = 10, **overrides) -> BacktestConfig:
        params = {
            "start_date": START,
            "end_date": START + timedelta(days=days),
            "initial_capital": 100000.0,
        }
        params.update(overrides)
        return BacktestConfig(**params)

    return factory


@pytest.fixture
def make_trade() -> Callable[..., Trade]:
    counter = {"n": 0}

    def factory(
        symbol: str = "AAPL",
        side: TradeSide = TradeSide.BUY,
        quantity: float = 100,
        price: float = 100.0,
        timestamp: datetime = START,
        strategy_id: str = "test",
        commission: float = 0.0,
    ) -> Trade:
        counter["n"] += 1
        return Trade(
            id=f"X{counter['n']:04d}",
            symbol=symbol,
            side=side,
            quantity=quantity,
            entry_price=price,
            entry_time=timestamp,
            exit_price=price if side == TradeSide.SELL else None,
            exit_time=timestamp if side == TradeSide.SELL else None,
            commission=commission,
            strategy_id=strategy_id,
        )

    return factory


@pytest.fixture
def make_signal() -> Callable[..., Signal]:
    def factory(
        symbol: str = "AAPL",
        action: SignalAction = SignalAction.BUY,
        strategy_id: str = "test",
        timestamp: datetime = START,
        **kwargs,
    ) -> Signal:
        params = {"strength": 1.0, "confidence": 1.0}
        params.update(kwargs)
        return Signal(timestamp=timestamp, symbol=symbol, action=action, strategy_id=strategy_id, **params)

    return factory
