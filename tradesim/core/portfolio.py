# tradesim/core/portfolio.py
"""
Portfolio management and position tracking.
"""

from typing import Dict, List, Optional
from datetime import datetime
from dataclasses import dataclass, field
import logging
from ..models.results import (
    DrawdownPoint, EquityPoint, PortfolioSnapshot, PositionSnapshot, Trade, TradeSide
)


logger = logging.getLogger(__name__)

QUANTITY_EPSILON = 1e-8


@dataclass
class Position:
    """Position in a single symbol, average-cost basis."""
    symbol: str
    quantity: float = 0.0
    average_price: float = 0.0
    current_price: float = 0.0
    trades: List[Trade] = field(default_factory=list)

    @property
    def market_value(self) -> float:
        """Current market value of position."""
        return self.quantity * self.current_price

    @property
    def cost_basis(self) -> float:
        """Quantity valued at the average price."""
        return self.quantity * self.average_price

    @property
    def unrealized_pnl(self) -> float:
        """Unrealized P&L."""
        if self.quantity == 0:
            return 0.0
        return self.market_value - self.cost_basis

    @property
    def unrealized_pnl_percent(self) -> float:
        """Unrealized P&L as a percentage of cost basis."""
        if self.cost_basis == 0:
            return 0.0
        return self.unrealized_pnl / self.cost_basis * 100

    def update_price(self, price: float) -> None:
        """Update current price."""
        self.current_price = price

    def add(self, quantity: float, price: float) -> None:
        """Average additional units into the position."""
        total_cost = self.cost_basis + quantity * price
        self.quantity += quantity
        self.average_price = total_cost / self.quantity
        if self.current_price == 0:
            self.current_price = price

    def remove(self, quantity: float) -> float:
        """
        Remove units from the position.

        Args:
            quantity: Units to remove, already clamped to the held quantity

        Returns:
            Cost basis of the removed units
        """
        if quantity > self.quantity + QUANTITY_EPSILON:
            raise ValueError(f"Cannot remove {quantity} units of {self.symbol}, only {self.quantity} held")

        cost_basis = quantity * self.average_price
        self.quantity -= quantity
        if abs(self.quantity) < QUANTITY_EPSILON:
            self.quantity = 0.0
        return cost_basis

    def snapshot(self) -> PositionSnapshot:
        """Read-only copy."""
        return PositionSnapshot(
            symbol=self.symbol,
            quantity=self.quantity,
            average_price=self.average_price,
            current_price=self.current_price,
            market_value=self.market_value,
            unrealized_pnl=self.unrealized_pnl,
            unrealized_pnl_percent=self.unrealized_pnl_percent,
            trade_ids=[t.id for t in self.trades]
        )


class Portfolio:
    """
    Ledger of cash, positions and trade history.

    ``total_value`` is derived on every access, so it always equals cash
    plus the market value of the open positions.
    """

    def __init__(self, initial_cash: float = 100000.0):
        """
        Initialize portfolio.

        Args:
            initial_cash: Starting cash amount
        """
        self.initial_cash = initial_cash
        self.cash = initial_cash
        self.positions: Dict[str, Position] = {}
        self.trades: List[Trade] = []

        # Tracking
        self.total_commission = 0.0
        self.equity_curve: List[EquityPoint] = []
        self.drawdown_curve: List[DrawdownPoint] = []
        self.peak_value = initial_cash
        self._drawdown_start: Optional[datetime] = None
        self._trade_counter = 0

        logger.debug(f"Portfolio initialized with {initial_cash:,.2f}")

    @property
    def total_positions_value(self) -> float:
        """Total value of all positions at current prices."""
        return sum(pos.market_value for pos in self.positions.values())

    @property
    def total_value(self) -> float:
        """Cash plus position market value."""
        return self.cash + self.total_positions_value

    @property
    def total_cost_basis(self) -> float:
        """Open positions valued at average cost."""
        return sum(pos.cost_basis for pos in self.positions.values())

    @property
    def closed_trades(self) -> List[Trade]:
        """Trades carrying a realized P&L, in execution order."""
        return [t for t in self.trades if t.realized_pnl is not None]

    def get_position(self, symbol: str) -> Optional[Position]:
        """
        Get position for symbol.

        Args:
            symbol: Symbol to get position for

        Returns:
            Position object or None if no position
        """
        return self.positions.get(symbol)

    def next_trade_id(self) -> str:
        """Sequential trade identifier, unique within this portfolio."""
        self._trade_counter += 1
        return f"T{self._trade_counter:06d}"

    def mark_to_market(self, prices: Dict[str, float]) -> List[str]:
        """
        Update open positions with new closing prices.

        Args:
            prices: Symbol to price mapping for the current step

        Returns:
            Symbols with an open position but no price, which keep their last value
        """
        missing = []
        for symbol, position in self.positions.items():
            price = prices.get(symbol)
            if price is None:
                missing.append(symbol)
                continue
            position.update_price(price)
        return missing

    def apply_trade(self, trade: Trade) -> Trade:
        """
        Apply an executed trade to cash and positions.

        BUY trades are recorded as given. SELL trades are clamped to the held
        quantity and recorded with the position's average cost as entry price
        and the realized P&L filled in.

        Args:
            trade: Executed trade; a SELL may carry its fill in ``exit_price``
                or ``entry_price``

        Returns:
            The trade as recorded in the ledger
        """
        if trade.side == TradeSide.BUY:
            return self._apply_buy(trade)
        return self._apply_sell(trade)

    def _apply_buy(self, trade: Trade) -> Trade:
        self.cash -= trade.quantity * trade.entry_price + trade.commission
        self.total_commission += trade.commission

        position = self.positions.get(trade.symbol)
        if position is None:
            position = Position(trade.symbol, current_price=trade.entry_price)
            self.positions[trade.symbol] = position
        position.add(trade.quantity, trade.entry_price)
        position.trades.append(trade)
        self.trades.append(trade)

        logger.debug(f"Applied BUY {trade.quantity} {trade.symbol} @ {trade.entry_price:.4f}")
        return trade

    def _apply_sell(self, trade: Trade) -> Trade:
        position = self.positions.get(trade.symbol)
        if position is None or position.quantity <= 0:
            raise ValueError(f"No open position in {trade.symbol} to sell")

        fill_price = trade.exit_price if trade.exit_price is not None else trade.entry_price
        exit_time = trade.exit_time or trade.entry_time
        quantity = min(trade.quantity, position.quantity)
        if quantity < trade.quantity:
            logger.debug(f"SELL of {trade.quantity} {trade.symbol} clamped to held {quantity}")

        average_price = position.average_price
        cost_basis = position.remove(quantity)
        proceeds = quantity * fill_price - trade.commission
        realized_pnl = proceeds - cost_basis
        realized_pnl_pct = realized_pnl / cost_basis * 100 if cost_basis > 0 else 0.0

        first_entry = position.trades[0].entry_time if position.trades else exit_time
        recorded = trade.model_copy(update={
            'quantity': quantity,
            'entry_price': average_price,
            'entry_time': first_entry,
            'exit_price': fill_price,
            'exit_time': exit_time,
            'realized_pnl': realized_pnl,
            'realized_pnl_pct': realized_pnl_pct
        })

        self.cash += proceeds
        self.total_commission += trade.commission
        self.trades.append(recorded)

        if position.quantity == 0:
            for open_trade in position.trades:
                if open_trade.side == TradeSide.BUY and open_trade.exit_time is None:
                    open_trade.exit_price = fill_price
                    open_trade.exit_time = exit_time
            del self.positions[trade.symbol]
        else:
            position.trades.append(recorded)

        logger.debug(
            f"Applied SELL {quantity} {trade.symbol} @ {fill_price:.4f}, realized {realized_pnl:.2f}"
        )
        return recorded

    def record_equity(self, timestamp: datetime) -> EquityPoint:
        """
        Append an equity point and, while below the running peak, a drawdown point.

        Args:
            timestamp: Step timestamp

        Returns:
            The recorded equity point
        """
        value = self.total_value
        if value > self.peak_value:
            self.peak_value = value
            self._drawdown_start = None

        drawdown = (self.peak_value - value) / self.peak_value * 100 if self.peak_value > 0 else 0.0
        point = EquityPoint(
            timestamp=timestamp,
            value=value,
            cash=self.cash,
            positions_value=self.total_positions_value,
            drawdown=drawdown
        )
        self.equity_curve.append(point)

        if drawdown > 0:
            if self._drawdown_start is None:
                self._drawdown_start = timestamp
            duration = int((timestamp - self._drawdown_start).total_seconds() // 86400)
            self.drawdown_curve.append(DrawdownPoint(timestamp=timestamp, drawdown=drawdown, duration=duration))

        return point

    def snapshot(self, timestamp: Optional[datetime] = None) -> PortfolioSnapshot:
        """Read-only copy of the current state."""
        return PortfolioSnapshot(
            timestamp=timestamp,
            cash=self.cash,
            total_value=self.total_value,
            positions_value=self.total_positions_value,
            positions={symbol: pos.snapshot() for symbol, pos in self.positions.items()}
        )
