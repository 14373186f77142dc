# tradesim/core/backtest_engine.py
"""
Bar-by-bar backtesting engine.

One simulation step per distinct timestamp across all symbols. Each step is
processed completely (mark-to-market, signals, risk check, execution, curve
recording) before the clock advances.
"""

import time
from contextlib import nullcontext
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence
import logging
from pydantic import ValidationError
from tqdm import tqdm

from ..models.config import BacktestConfig, UnresolvedPositionPolicy
from ..models.market_data import MarketDataPoint
from ..models.results import BacktestResult, Trade, TradeSide
from ..models.signals import Signal, SignalAction
from ..strategies.base_strategy import BaseStrategy
from .errors import ConfigurationError, DataValidationError
from .events import EventQueue, MarketDataEvent, PortfolioEvent, TradeEvent
from .metrics import MetricsCalculator
from .order_simulator import OrderSimulator
from .portfolio import Portfolio
from .risk_manager import RiskManager, whole_units


logger = logging.getLogger(__name__)

BASE_POSITION_FRACTION = 0.10
MAX_POSITION_FRACTION = 0.15
CASH_BUFFER_FRACTION = 0.95


class BacktestEngine:
    """
    Backtesting engine.

    Features:
    - Unified clock over all symbols, filtered to the configured period
    - Deterministic spread, slippage and commission
    - Optional risk manager gating and resizing every order
    - Recoverable problems collected as warnings, never raised

    Instances are independent: each run builds its own portfolio, so
    separate engines can run side by side.
    """

    def __init__(
        self,
        config: BacktestConfig,
        risk_manager: Optional[RiskManager] = None,
        event_queue: Optional[EventQueue] = None
    ):
        """
        Initialize backtest engine.

        Args:
            config: Backtest configuration
            risk_manager: Risk controller consulted before every order
            event_queue: Optional observer channel, drained after each step

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            payload = config if isinstance(config, Mapping) else config.model_dump()
            self.config = BacktestConfig.model_validate(payload)
        except (ValidationError, AttributeError) as e:
            raise ConfigurationError(f"Invalid backtest configuration: {e}") from e

        self.risk_manager = risk_manager
        self.event_queue = event_queue
        self.order_simulator = OrderSimulator(
            slippage_model=self.config.slippage_model,
            slippage_value=self.config.slippage_value,
            commission=self.config.commission,
            commission_bps=self.config.commission_bps
        )
        self.metrics_calculator = MetricsCalculator(risk_free_rate=self.config.risk_free_rate)

        # Run state
        self.portfolio = Portfolio(self.config.initial_capital)
        self.strategy: Optional[BaseStrategy] = None
        self.warnings: List[str] = []
        self.current_time: Optional[datetime] = None
        self.current_step = 0
        self.total_steps = 0
        self.is_running = False
        self._session_date: Optional[date] = None

        logger.info(
            f"Backtest engine initialized: {self.config.start_date.date()} to {self.config.end_date.date()}, "
            f"capital {self.config.initial_capital:,.2f}"
        )

    def run_backtest(
        self,
        strategy: BaseStrategy,
        price_series: Mapping[str, Sequence[MarketDataPoint]]
    ) -> BacktestResult:
        """
        Run complete backtest.

        Args:
            strategy: Object exposing ``generate_signals(bars, portfolio)``
            price_series: Symbol to chronologically ordered bars

        Returns:
            BacktestResult with complete results

        Raises:
            DataValidationError: If a series is out of order, holds bars of
                another symbol, or the strategy emits malformed signals
        """
        series = self._validate_series(price_series)
        timeline = self._build_timeline(series)

        self.portfolio = Portfolio(self.config.initial_capital)
        if self.risk_manager is not None:
            self.risk_manager.bind_portfolio(self.portfolio)
        self.strategy = strategy
        self.warnings = []
        self.current_time = None
        self.current_step = 0
        self.total_steps = len(timeline)
        self._session_date = None

        reset = getattr(strategy, 'reset', None)
        if callable(reset):
            reset()

        if not timeline:
            self._warn(
                f"No market data between {self.config.start_date.isoformat()} and {self.config.end_date.isoformat()}"
            )

        logger.info(f"Starting backtest over {len(timeline)} steps and {len(series)} symbols")
        start_time = time.time()
        self.is_running = True

        try:
            with tqdm(total=len(timeline), desc="Backtesting", disable=not self.config.show_progress) as pbar:
                for timestamp in timeline:
                    self._process_step(timestamp, timeline[timestamp])
                    pbar.update(1)
        finally:
            self.is_running = False

        result = self._generate_results()

        logger.info(
            f"Backtest completed in {time.time() - start_time:.2f}s: {len(self.portfolio.trades)} trades, "
            f"final value {result.final_portfolio.total_value:,.2f}, {len(result.warnings)} warnings"
        )
        return result

    def _validate_series(
        self,
        price_series: Mapping[str, Sequence[MarketDataPoint]]
    ) -> Dict[str, List[MarketDataPoint]]:
        validated = {}
        for symbol, bars in price_series.items():
            checked = []
            previous: Optional[datetime] = None
            for bar in bars:
                if not isinstance(bar, MarketDataPoint):
                    try:
                        bar = MarketDataPoint.model_validate(bar)
                    except ValidationError as e:
                        raise DataValidationError(f"Invalid bar for {symbol}: {e}") from e
                if bar.symbol != symbol:
                    raise DataValidationError(f"Series '{symbol}' contains a bar for '{bar.symbol}'")
                if previous is not None and bar.timestamp <= previous:
                    raise DataValidationError(
                        f"Timestamps for {symbol} are not strictly increasing at {bar.timestamp.isoformat()}"
                    )
                previous = bar.timestamp
                checked.append(bar)
            validated[symbol] = checked
        return validated

    def _build_timeline(
        self,
        series: Dict[str, List[MarketDataPoint]]
    ) -> Dict[datetime, Dict[str, MarketDataPoint]]:
        """Bars grouped by timestamp, sorted, limited to the configured period."""
        steps: Dict[datetime, Dict[str, MarketDataPoint]] = {}
        for symbol, bars in series.items():
            for bar in bars:
                if self.config.start_date <= bar.timestamp <= self.config.end_date:
                    steps.setdefault(bar.timestamp, {})[symbol] = bar
        return {timestamp: steps[timestamp] for timestamp in sorted(steps)}

    def _process_step(self, timestamp: datetime, bars: Dict[str, MarketDataPoint]) -> None:
        """
        Process one timestamp.

        Args:
            timestamp: Step timestamp
            bars: Bars available at this timestamp
        """
        self.current_step += 1
        self.current_time = timestamp

        logger.debug(f"Processing step {self.current_step}: {timestamp} ({len(bars)} bars)")

        # New session
        if self.risk_manager is not None and self.config.reset_risk_limits_daily:
            if self._session_date is not None and timestamp.date() != self._session_date:
                self.risk_manager.reset_daily_limits(as_of=timestamp)
        self._session_date = timestamp.date()

        # Mark to market
        prices = {symbol: bar.close for symbol, bar in bars.items()}
        if self.risk_manager is not None:
            missing = self.risk_manager.mark_to_market(prices, timestamp)
        else:
            missing = self.portfolio.mark_to_market(prices)
        for symbol in missing:
            self._warn(f"{timestamp.isoformat()}: no price for open position {symbol}, carrying last value")

        if self.event_queue is not None:
            self.event_queue.put(MarketDataEvent(timestamp, bars))

        if self.risk_manager is not None and self.config.enforce_stop_loss:
            for signal in self.risk_manager.check_stop_losses(timestamp):
                self._execute_signal(signal, bars)

        # Strategy
        signals: Any = []
        try:
            signals = self.strategy.generate_signals(bars, self.portfolio.snapshot(timestamp))
        except Exception as e:
            logger.error(f"Strategy error at step {self.current_step} ({timestamp}): {e}")
            self.warnings.append(f"{timestamp.isoformat()}: strategy error: {e}")
            signals = []

        for signal in self._coerce_signals(signals):
            if signal.is_actionable:
                self._execute_signal(signal, bars)

        point = self.portfolio.record_equity(timestamp)
        if self.event_queue is not None:
            self.event_queue.put(PortfolioEvent(point))

        on_day_end = getattr(self.strategy, 'on_day_end', None)
        if callable(on_day_end):
            try:
                on_day_end(self.portfolio.snapshot(timestamp))
            except Exception as e:
                logger.error(f"Strategy on_day_end error at {timestamp}: {e}")
                self.warnings.append(f"{timestamp.isoformat()}: strategy error in on_day_end: {e}")

        if self.event_queue is not None:
            self.event_queue.process_events()
        if self.risk_manager is not None and self.risk_manager.event_queue not in (None, self.event_queue):
            self.risk_manager.event_queue.process_events()

    def _coerce_signals(self, signals: Any) -> List[Signal]:
        if signals is None:
            return []
        if isinstance(signals, (Signal, Mapping)):
            signals = [signals]

        coerced = []
        for signal in signals:
            if isinstance(signal, Signal):
                coerced.append(signal)
                continue
            try:
                coerced.append(Signal.model_validate(signal))
            except ValidationError as e:
                raise DataValidationError(f"Strategy returned an invalid signal: {e}") from e
        return coerced

    def _execute_signal(self, signal: Signal, bars: Dict[str, MarketDataPoint]) -> Optional[Trade]:
        """
        Size, risk check and execute a BUY or SELL signal.

        Args:
            signal: Actionable signal
            bars: Bars of the current step

        Returns:
            Recorded trade, or None if the signal was dropped
        """
        timestamp = self.current_time
        bar = bars.get(signal.symbol)
        if bar is None:
            self._warn(f"{timestamp.isoformat()}: no bar for {signal.symbol}, {signal.action.value} signal dropped")
            return None

        if signal.action == SignalAction.BUY:
            if (
                self.config.max_positions is not None
                and signal.symbol not in self.portfolio.positions
                and len(self.portfolio.positions) >= self.config.max_positions
            ):
                self._warn(
                    f"{timestamp.isoformat()}: max positions ({self.config.max_positions}) reached, "
                    f"BUY {signal.symbol} dropped"
                )
                return None
            quantity = signal.quantity or self._default_buy_quantity(signal, bar.close)
        else:
            position = self.portfolio.get_position(signal.symbol)
            if position is None:
                self._warn(f"{timestamp.isoformat()}: no open position in {signal.symbol}, SELL dropped")
                return None
            quantity = min(position.quantity, signal.quantity or self._implied_quantity(signal, bar.close))

        if quantity <= 0:
            self._warn(f"{timestamp.isoformat()}: zero size for {signal.action.value} {signal.symbol}, signal dropped")
            return None

        lock = self.risk_manager.lock if self.risk_manager is not None else nullcontext()
        with lock:
            if self.risk_manager is not None:
                check = self.risk_manager.pre_trade_check(signal, quantity, bar.close)
                for warning in check.warnings:
                    logger.warning(f"{timestamp.isoformat()}: {signal.symbol}: {warning}")
                if not check.allowed:
                    reasons = [v.type.value for v in check.violations if v.blocks_trade] or check.warnings
                    self._warn(
                        f"{timestamp.isoformat()}: {signal.action.value} {signal.symbol} rejected by risk manager: "
                        f"{', '.join(reasons)}"
                    )
                    return None
                if check.adjusted_quantity is not None and check.adjusted_quantity < quantity:
                    logger.debug(f"{signal.symbol}: quantity reduced from {quantity} to {check.adjusted_quantity}")
                    quantity = check.adjusted_quantity

            execution_price = self.order_simulator.calculate_execution_price(bar.close, signal.action)
            commission = self.order_simulator.calculate_commission(quantity, execution_price)

            if signal.action == SignalAction.BUY:
                cost = quantity * execution_price + commission
                if cost > self.portfolio.cash:
                    self._warn(
                        f"{timestamp.isoformat()}: insufficient cash for BUY {quantity} {signal.symbol}: "
                        f"need {cost:,.2f}, have {self.portfolio.cash:,.2f}"
                    )
                    return None

            trade = Trade(
                id=self.portfolio.next_trade_id(),
                symbol=signal.symbol,
                side=TradeSide.BUY if signal.action == SignalAction.BUY else TradeSide.SELL,
                quantity=quantity,
                entry_price=execution_price,
                entry_time=timestamp,
                exit_price=execution_price if signal.action == SignalAction.SELL else None,
                exit_time=timestamp if signal.action == SignalAction.SELL else None,
                commission=commission,
                slippage=abs(execution_price - bar.close),
                strategy_id=signal.strategy_id
            )

            if self.risk_manager is not None:
                recorded = self.risk_manager.on_trade_executed(trade)
            else:
                recorded = self.portfolio.apply_trade(trade)

        logger.debug(
            f"Step {self.current_step}: {recorded.side.value} {recorded.quantity} {recorded.symbol} "
            f"@ {execution_price:.4f} (commission {commission:.2f})"
        )

        if self.event_queue is not None:
            self.event_queue.put(TradeEvent(recorded))

        on_trade_executed = getattr(self.strategy, 'on_trade_executed', None)
        if callable(on_trade_executed):
            try:
                on_trade_executed(recorded)
            except Exception as e:
                logger.error(f"Strategy on_trade_executed error for {recorded.id}: {e}")
                self.warnings.append(f"{timestamp.isoformat()}: strategy error in on_trade_executed: {e}")

        return recorded

    def _default_buy_quantity(self, signal: Signal, reference_price: float) -> float:
        """10% of equity scaled by confidence and strength, within the position and cash caps."""
        total_value = self.portfolio.total_value
        value = total_value * BASE_POSITION_FRACTION * signal.confidence * abs(signal.strength)
        value = min(value, total_value * MAX_POSITION_FRACTION, self.portfolio.cash * CASH_BUFFER_FRACTION)
        return whole_units(value / reference_price)

    def _implied_quantity(self, signal: Signal, reference_price: float) -> float:
        total_value = self.portfolio.total_value
        value = total_value * BASE_POSITION_FRACTION * signal.confidence * abs(signal.strength)
        value = min(value, total_value * MAX_POSITION_FRACTION)
        return whole_units(value / reference_price)

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def _generate_results(self) -> BacktestResult:
        """
        Generate final backtest results.

        Open positions are never liquidated here. Under EXCLUDE they are held
        at cost basis for the return figures.
        """
        unresolved = sorted(self.portfolio.positions)
        final_value = self.portfolio.total_value

        if unresolved and self.config.unresolved_position_policy == UnresolvedPositionPolicy.EXCLUDE:
            final_value = self.portfolio.cash + self.portfolio.total_cost_basis
            self._warn(f"Open positions excluded from returns at cost basis: {', '.join(unresolved)}")
        elif unresolved:
            logger.info(f"Open positions valued at last price: {', '.join(unresolved)}")

        equity_curve = list(self.portfolio.equity_curve)
        trades = list(self.portfolio.trades)

        metrics = self.metrics_calculator.calculate_metrics(
            equity_curve=equity_curve,
            trades=trades,
            initial_capital=self.config.initial_capital,
            final_value=final_value
        )
        statistics = self.metrics_calculator.calculate_statistics(
            config=self.config,
            equity_curve=equity_curve,
            trades=trades,
            final_value=final_value,
            unresolved_positions=unresolved
        )

        return BacktestResult(
            config=self.config,
            final_portfolio=self.portfolio.snapshot(self.current_time),
            trades=trades,
            equity_curve=equity_curve,
            drawdown_curve=list(self.portfolio.drawdown_curve),
            metrics=metrics,
            statistics=statistics,
            warnings=list(self.warnings)
        )

    def get_status(self) -> Dict[str, Any]:
        """
        Get current backtest status.

        Returns:
            Status dictionary
        """
        status = {
            'is_running': self.is_running,
            'current_time': self.current_time.isoformat() if self.current_time else None,
            'current_step': self.current_step,
            'total_steps': self.total_steps,
            'progress_pct': (self.current_step / self.total_steps * 100) if self.total_steps > 0 else 0,
            'trades': len(self.portfolio.trades),
            'open_positions': len(self.portfolio.positions),
            'current_value': self.portfolio.total_value,
            'cash': self.portfolio.cash,
            'warnings': len(self.warnings)
        }
        if self.risk_manager is not None:
            status['risk_state'] = self.risk_manager.state.value
        return status
