# tradesim/models/results.py
"""
Trade records, curves, performance metrics and the backtest result.
"""

from enum import Enum
from typing import List, Dict, Optional
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
import pandas as pd

from .config import BacktestConfig, UnresolvedPositionPolicy


class TradeSide(str, Enum):
    """Trade side."""
    BUY = "BUY"
    SELL = "SELL"


class Trade(BaseModel):
    """Executed trade.

    A BUY stays open until a SELL takes the position back to zero, at which
    point ``exit_price``/``exit_time`` are set. SELL trades carry the realized
    P&L against the position's average cost.
    """
    id: str = Field(..., description="Trade ID")
    symbol: str = Field(..., description="Trading symbol")
    side: TradeSide = Field(..., description="BUY or SELL")
    quantity: float = Field(..., gt=0, description="Traded quantity")
    entry_price: float = Field(..., description="Fill price (BUY) or average cost (SELL)")
    entry_time: datetime = Field(..., description="Entry timestamp")
    exit_price: Optional[float] = Field(None, description="Exit price")
    exit_time: Optional[datetime] = Field(None, description="Exit timestamp")
    commission: float = Field(default=0.0, description="Commission charged")
    slippage: float = Field(default=0.0, description="Slippage per unit")
    realized_pnl: Optional[float] = Field(None, description="Realized P&L (closing trades only)")
    realized_pnl_pct: Optional[float] = Field(None, description="Realized P&L percentage of cost basis")
    strategy_id: str = Field(..., description="Strategy identifier")

    @property
    def is_closed(self) -> bool:
        """Trade has an exit."""
        return self.exit_time is not None

    @property
    def holding_days(self) -> Optional[float]:
        """Holding period in days."""
        if self.exit_time is None:
            return None
        return (self.exit_time - self.entry_time).total_seconds() / 86400

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return self.model_dump(mode='json')


class EquityPoint(BaseModel):
    """Equity curve point."""
    timestamp: datetime = Field(..., description="Timestamp")
    value: float = Field(..., description="Portfolio value")
    cash: float = Field(..., description="Cash balance")
    positions_value: float = Field(..., description="Market value of open positions")
    drawdown: float = Field(..., description="Drawdown from running peak, percent")


class DrawdownPoint(BaseModel):
    """Drawdown curve point, recorded only while below the running peak."""
    timestamp: datetime = Field(..., description="Timestamp")
    drawdown: float = Field(..., description="Drawdown percentage")
    duration: int = Field(..., description="Days since the drawdown started")


class PerformanceMetrics(BaseModel):
    """Performance metrics for backtest results."""
    total_return: float = Field(..., description="Total return")
    total_return_pct: float = Field(..., description="Total return percentage")
    sharpe_ratio: float = Field(..., description="Sharpe ratio")
    sortino_ratio: float = Field(..., description="Sortino ratio")
    calmar_ratio: float = Field(..., description="Calmar ratio")
    max_drawdown: float = Field(..., description="Maximum drawdown percentage")
    win_rate: float = Field(..., description="Win rate percentage")
    profit_factor: float = Field(..., description="Gross profit / gross loss")
    avg_win: float = Field(..., description="Average winning trade P&L")
    avg_loss: float = Field(..., description="Average losing trade P&L")
    expectancy: float = Field(..., description="Average P&L per closed trade")


class BacktestStatistics(BaseModel):
    """Descriptive statistics of a run."""
    total_days: int = Field(..., description="Calendar days in the configured period")
    trading_days: int = Field(..., description="Simulation steps")
    total_trades: int = Field(..., description="Closed trades")
    avg_trades_per_day: float = Field(..., description="Closed trades per step")
    avg_holding_period: float = Field(..., description="Average holding period in days")
    max_consecutive_wins: int = Field(default=0, description="Maximum consecutive wins")
    max_consecutive_losses: int = Field(default=0, description="Maximum consecutive losses")
    best_trade: Optional[Trade] = Field(None, description="Highest realized P&L")
    worst_trade: Optional[Trade] = Field(None, description="Lowest realized P&L")
    monthly_returns: Dict[str, float] = Field(default_factory=dict, description="YYYY-MM -> return percent")
    annualized_return: float = Field(..., description="Annualized return percentage")
    annualized_volatility: float = Field(..., description="Annualized volatility percentage")
    unresolved_positions: List[str] = Field(default_factory=list, description="Symbols still open at the end")
    unresolved_position_policy: UnresolvedPositionPolicy = Field(
        default=UnresolvedPositionPolicy.MARK_LAST_PRICE, description="Policy applied to open positions"
    )


class PositionSnapshot(BaseModel):
    """Read-only copy of a position."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    quantity: float
    average_price: float
    current_price: float
    market_value: float
    unrealized_pnl: float
    unrealized_pnl_percent: float
    trade_ids: List[str] = Field(default_factory=list)


class PortfolioSnapshot(BaseModel):
    """Read-only copy of the portfolio handed to strategies and returned in results."""
    model_config = ConfigDict(frozen=True)

    timestamp: Optional[datetime] = None
    cash: float
    total_value: float
    positions_value: float
    positions: Dict[str, PositionSnapshot] = Field(default_factory=dict)

    def has_position(self, symbol: str) -> bool:
        """Check for an open position."""
        return symbol in self.positions


class BacktestResult(BaseModel):
    """Complete output of one simulation run."""
    config: BacktestConfig = Field(..., description="Backtest configuration")
    final_portfolio: PortfolioSnapshot = Field(..., description="Portfolio at the final timestamp")
    trades: List[Trade] = Field(default_factory=list, description="All executed trades")
    equity_curve: List[EquityPoint] = Field(default_factory=list, description="Equity curve")
    drawdown_curve: List[DrawdownPoint] = Field(default_factory=list, description="Drawdown curve")
    metrics: PerformanceMetrics = Field(..., description="Performance metrics")
    statistics: BacktestStatistics = Field(..., description="Run statistics")
    warnings: List[str] = Field(default_factory=list, description="Recoverable problems met during the run")

    def to_json(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON."""
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, payload: str) -> 'BacktestResult':
        """Deserialize from JSON."""
        return cls.model_validate_json(payload)

    def save_to_json(self, filepath: str) -> None:
        """Save results to JSON file."""
        Path(filepath).write_text(self.to_json(indent=2), encoding='utf-8')

    @classmethod
    def load_from_json(cls, filepath: str) -> 'BacktestResult':
        """Load results saved with ``save_to_json``."""
        return cls.from_json(Path(filepath).read_text(encoding='utf-8'))

    def save_to_csv(self, filepath: str) -> None:
        """Save trades to CSV file."""
        if self.trades:
            trades_df = pd.DataFrame([trade.to_dict() for trade in self.trades])
            trades_df.to_csv(filepath, index=False)
