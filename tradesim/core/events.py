# tradesim/core/events.py
"""
Observer channel for simulation and risk events.

Events are queued by the engine and risk manager and delivered to handlers
registered on the queue the caller passed in. Nothing is delivered unless a
queue is supplied.
"""

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional
import logging
from ..models.market_data import MarketDataPoint
from ..models.results import EquityPoint, Trade
from ..models.risk import RiskAlert


logger = logging.getLogger(__name__)


class Event(ABC):
    """Base event class."""

    def __init__(self, timestamp: datetime):
        self.timestamp = timestamp
        self.type = self.__class__.__name__

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        pass


class MarketDataEvent(Event):
    """Bars consumed at one simulation step."""

    def __init__(self, timestamp: datetime, bars: Dict[str, MarketDataPoint]):
        super().__init__(timestamp)
        self.bars = bars

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'timestamp': self.timestamp.isoformat(),
            'bars': {symbol: bar.to_dict() for symbol, bar in self.bars.items()}
        }


class TradeEvent(Event):
    """An executed trade as recorded in the ledger."""

    def __init__(self, trade: Trade):
        super().__init__(trade.exit_time or trade.entry_time)
        self.trade = trade

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'timestamp': self.timestamp.isoformat(),
            'trade': self.trade.to_dict()
        }


class PortfolioEvent(Event):
    """Portfolio valuation at the end of a step."""

    def __init__(self, point: EquityPoint):
        super().__init__(point.timestamp)
        self.point = point

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'timestamp': self.timestamp.isoformat(),
            'total_value': self.point.value,
            'cash': self.point.cash,
            'positions_value': self.point.positions_value,
            'drawdown': self.point.drawdown
        }


class RiskAlertEvent(Event):
    """A risk alert appended to the audit log."""

    def __init__(self, alert: RiskAlert):
        super().__init__(alert.timestamp)
        self.alert = alert

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'timestamp': self.timestamp.isoformat(),
            'alert': self.alert.model_dump(mode='json')
        }


class EventQueue:
    """FIFO event queue with per-type handlers."""

    def __init__(self):
        self.events: Deque[Event] = deque()
        self.event_handlers: Dict[str, List[Callable[[Event], None]]] = {}

    def put(self, event: Event) -> None:
        """Add event to queue."""
        self.events.append(event)

    def get(self) -> Optional[Event]:
        """Get next event from queue."""
        try:
            return self.events.popleft()
        except IndexError:
            return None

    def empty(self) -> bool:
        """Check if queue is empty."""
        return len(self.events) == 0

    def clear(self) -> None:
        """Clear all events."""
        self.events.clear()

    def register_handler(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """
        Register event handler.

        Args:
            event_type: Event class name, e.g. ``"TradeEvent"``
            handler: Callable receiving the event
        """
        self.event_handlers.setdefault(event_type, []).append(handler)

    def process_events(self) -> int:
        """
        Deliver all queued events in order.

        Returns:
            Number of events drained
        """
        processed = 0
        while not self.empty():
            event = self.get()
            processed += 1
            for handler in self.event_handlers.get(event.type, []):
                handler(event)
        if processed:
            logger.debug(f"Processed {processed} events")
        return processed
