# tradesim/core/metrics.py
"""
Performance metrics calculator for backtesting results.

Every method is a pure function of its arguments: calling it twice on the
same curve and trade list gives identical results.
"""

import numpy as np
import pandas as pd
from typing import List, Dict, Optional, Sequence, Tuple
import logging
from ..models.config import BacktestConfig
from ..models.results import BacktestStatistics, EquityPoint, PerformanceMetrics, Trade


logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252
SORTINO_CEILING = 10.0
PROFIT_FACTOR_CEILING = 999.0


def calculate_returns(equity_curve: Sequence[EquityPoint]) -> np.ndarray:
    """Simple returns between consecutive equity points."""
    values = np.array([point.value for point in equity_curve], dtype=float)
    if len(values) < 2:
        return np.array([], dtype=float)
    previous = values[:-1]
    with np.errstate(divide='ignore', invalid='ignore'):
        returns = np.where(previous != 0, (values[1:] - previous) / previous, 0.0)
    return returns


def closed_trades(trades: Sequence[Trade]) -> List[Trade]:
    """Trades with a realized P&L, in the order given."""
    return [t for t in trades if t.realized_pnl is not None]


class MetricsCalculator:
    """
    Calculate performance metrics and run statistics.

    Includes Sharpe, Sortino and Calmar ratios, maximum drawdown and
    trade metrics such as win rate, profit factor and expectancy.
    """

    def __init__(self, risk_free_rate: float = 0.02):
        """
        Initialize metrics calculator.

        Args:
            risk_free_rate: Annual risk-free rate for Sharpe and Sortino
        """
        self.risk_free_rate = risk_free_rate

    def calculate_metrics(
        self,
        equity_curve: Sequence[EquityPoint],
        trades: Sequence[Trade],
        initial_capital: float,
        final_value: Optional[float] = None
    ) -> PerformanceMetrics:
        """
        Calculate performance metrics.

        Args:
            equity_curve: Equity curve points
            trades: All trades; only closed ones enter trade metrics
            initial_capital: Starting capital
            final_value: Ending value, defaults to the last equity point

        Returns:
            PerformanceMetrics object
        """
        if final_value is None:
            final_value = equity_curve[-1].value if equity_curve else initial_capital

        returns = calculate_returns(equity_curve)
        total_return = final_value - initial_capital
        total_return_pct = total_return / initial_capital * 100

        max_drawdown = self.calculate_max_drawdown(equity_curve)
        annualized_return = self.calculate_annualized_return(len(equity_curve), initial_capital, final_value)

        closed = closed_trades(trades)
        winning = [t.realized_pnl for t in closed if t.realized_pnl > 0]
        losing = [t.realized_pnl for t in closed if t.realized_pnl <= 0]

        return PerformanceMetrics(
            total_return=total_return,
            total_return_pct=total_return_pct,
            sharpe_ratio=self.calculate_sharpe_ratio(returns),
            sortino_ratio=self.calculate_sortino_ratio(returns),
            calmar_ratio=self.calculate_calmar_ratio(annualized_return, max_drawdown),
            max_drawdown=max_drawdown,
            win_rate=len(winning) / len(closed) * 100 if closed else 0.0,
            profit_factor=self.calculate_profit_factor(winning, losing),
            avg_win=float(np.mean(winning)) if winning else 0.0,
            avg_loss=float(np.mean(losing)) if losing else 0.0,
            expectancy=float(np.mean([t.realized_pnl for t in closed])) if closed else 0.0
        )

    def calculate_sharpe_ratio(self, returns: np.ndarray) -> float:
        """
        Annualized Sharpe ratio.

        Args:
            returns: Per-step simple returns

        Returns:
            Sharpe ratio, 0 when returns have no dispersion
        """
        if len(returns) == 0:
            return 0.0

        std = float(np.std(returns))
        if std == 0:
            return 0.0

        annualized_return = float(np.mean(returns)) * TRADING_DAYS_PER_YEAR
        annualized_std = std * np.sqrt(TRADING_DAYS_PER_YEAR)
        return float((annualized_return - self.risk_free_rate) / annualized_std)

    def calculate_sortino_ratio(self, returns: np.ndarray) -> float:
        """
        Annualized Sortino ratio using the deviation of negative returns.

        Args:
            returns: Per-step simple returns

        Returns:
            Sortino ratio; a fixed ceiling when no return is negative and
            the mean is positive
        """
        if len(returns) == 0:
            return 0.0

        mean_return = float(np.mean(returns))
        negative = returns[returns < 0]
        if len(negative) == 0:
            return SORTINO_CEILING if mean_return > 0 else 0.0

        downside_std = float(np.std(negative))
        if downside_std == 0:
            return 0.0

        annualized_return = mean_return * TRADING_DAYS_PER_YEAR
        annualized_downside = downside_std * np.sqrt(TRADING_DAYS_PER_YEAR)
        return float((annualized_return - self.risk_free_rate) / annualized_downside)

    def calculate_calmar_ratio(self, annualized_return: float, max_drawdown_pct: float) -> float:
        """
        Calmar ratio (annualized return / max drawdown).

        Args:
            annualized_return: Annualized return percentage
            max_drawdown_pct: Maximum drawdown percentage

        Returns:
            Calmar ratio, with the drawdown floored at one percent
        """
        return annualized_return / max(max_drawdown_pct, 1.0)

    def calculate_max_drawdown(self, equity_curve: Sequence[EquityPoint]) -> float:
        """
        Maximum decline from the running peak, as a percentage.

        Args:
            equity_curve: Equity points

        Returns:
            Maximum drawdown percentage
        """
        if not equity_curve:
            return 0.0

        values = np.array([point.value for point in equity_curve], dtype=float)
        peaks = np.maximum.accumulate(values)
        with np.errstate(divide='ignore', invalid='ignore'):
            drawdowns = np.where(peaks > 0, (peaks - values) / peaks, 0.0)
        return float(drawdowns.max() * 100)

    def calculate_annualized_return(self, periods: int, initial_capital: float, final_value: float) -> float:
        """
        Compound annual return assuming one period per trading day.

        Args:
            periods: Number of equity points
            initial_capital: Starting capital
            final_value: Ending value

        Returns:
            Annualized return percentage
        """
        years = periods / TRADING_DAYS_PER_YEAR
        if years <= 0:
            return 0.0

        growth = final_value / initial_capital
        if growth <= 0:
            return -100.0
        return (growth ** (1 / years) - 1) * 100

    def calculate_annualized_volatility(self, equity_curve: Sequence[EquityPoint]) -> float:
        """Annualized standard deviation of returns, as a percentage."""
        returns = calculate_returns(equity_curve)
        if len(returns) == 0:
            return 0.0
        return float(np.std(returns) * np.sqrt(TRADING_DAYS_PER_YEAR) * 100)

    def calculate_profit_factor(self, winning: List[float], losing: List[float]) -> float:
        """Gross profit over gross loss."""
        gross_profit = sum(winning)
        gross_loss = abs(sum(losing))
        if gross_loss > 0:
            return gross_profit / gross_loss
        return PROFIT_FACTOR_CEILING if gross_profit > 0 else 0.0

    def calculate_consecutive_trades(self, trades: Sequence[Trade]) -> Tuple[int, int]:
        """
        Calculate maximum consecutive wins and losses.

        A single signed counter is carried over the closed trades; a trade
        with zero P&L counts as a loss.

        Args:
            trades: Trades in chronological order

        Returns:
            Tuple of (max_consecutive_wins, max_consecutive_losses)
        """
        streak = 0
        max_wins = 0
        max_losses = 0

        for trade in closed_trades(trades):
            if trade.realized_pnl > 0:
                streak = streak + 1 if streak > 0 else 1
                max_wins = max(max_wins, streak)
            else:
                streak = streak - 1 if streak < 0 else -1
                max_losses = max(max_losses, -streak)

        return max_wins, max_losses

    def calculate_monthly_returns(self, equity_curve: Sequence[EquityPoint]) -> Dict[str, float]:
        """
        Return within each calendar month, from the first to the last point of the month.

        Args:
            equity_curve: Equity points

        Returns:
            Mapping of YYYY-MM to return percentage
        """
        if not equity_curve:
            return {}

        frame = pd.DataFrame({
            'month': [point.timestamp.strftime('%Y-%m') for point in equity_curve],
            'value': [point.value for point in equity_curve]
        })
        grouped = frame.groupby('month', sort=True)['value'].agg(['first', 'last'])

        monthly = {}
        for month, row in grouped.iterrows():
            first = float(row['first'])
            monthly[str(month)] = (float(row['last']) / first - 1) * 100 if first != 0 else 0.0
        return monthly

    def calculate_statistics(
        self,
        config: BacktestConfig,
        equity_curve: Sequence[EquityPoint],
        trades: Sequence[Trade],
        final_value: Optional[float] = None,
        unresolved_positions: Optional[List[str]] = None
    ) -> BacktestStatistics:
        """
        Descriptive statistics over a completed run.

        Args:
            config: Run configuration
            equity_curve: Equity points, one per simulation step
            trades: All trades
            final_value: Ending value used for the annualized return
            unresolved_positions: Symbols still open at the end

        Returns:
            BacktestStatistics object
        """
        if final_value is None:
            final_value = equity_curve[-1].value if equity_curve else config.initial_capital

        closed = closed_trades(trades)
        trading_days = len(equity_curve)
        ranked = sorted(closed, key=lambda t: t.realized_pnl, reverse=True)
        holding = [t.holding_days for t in closed if t.holding_days is not None]
        max_wins, max_losses = self.calculate_consecutive_trades(closed)

        return BacktestStatistics(
            total_days=(config.end_date - config.start_date).days,
            trading_days=trading_days,
            total_trades=len(closed),
            avg_trades_per_day=len(closed) / trading_days if trading_days else 0.0,
            avg_holding_period=float(np.mean(holding)) if holding else 0.0,
            max_consecutive_wins=max_wins,
            max_consecutive_losses=max_losses,
            best_trade=ranked[0] if ranked else None,
            worst_trade=ranked[-1] if ranked else None,
            monthly_returns=self.calculate_monthly_returns(equity_curve),
            annualized_return=self.calculate_annualized_return(trading_days, config.initial_capital, final_value),
            annualized_volatility=self.calculate_annualized_volatility(equity_curve),
            unresolved_positions=list(unresolved_positions or []),
            unresolved_position_policy=config.unresolved_position_policy
        )
