# tradesim/core/risk_manager.py
"""
Portfolio-level risk controller.

Every prospective trade passes ``pre_trade_check`` before it is committed.
Breaching the daily loss or drawdown limit moves the controller from ACTIVE
to HALTED, and it stays HALTED until ``reset_daily_limits`` is called.
"""

import math
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import logging
from .events import EventQueue, RiskAlertEvent
from .portfolio import Portfolio, QUANTITY_EPSILON
from .risk_model import RiskModel, StaticRiskModel
from ..models.config import RiskLimits
from ..models.results import Trade
from ..models.risk import (
    ControllerState, RiskAction, RiskAlert, RiskCheckResult, RiskMetrics, RiskStatus,
    RiskViolation, Severity, StrategyStatistics, ViolationType
)
from ..models.signals import Signal, SignalAction


logger = logging.getLogger(__name__)

WARNING_THRESHOLD = 0.8
MIN_KELLY_TRADES = 10
FALLBACK_POSITION_FRACTION = 0.02
KELLY_MULTIPLIER = 0.25
MAX_KELLY_FRACTION = 0.25
RISK_PER_POSITION = 0.01
ATR_STOP_MULTIPLIER = 2.0
FALLBACK_ATR_FRACTION = 0.02
CORRELATION_SHRINK = 0.625
MIN_POSITION_NOTIONAL = 100.0
VAR_Z_95 = 1.645
STOP_LOSS_STRATEGY_ID = "risk.stop_loss"

CheckOutcome = Tuple[Optional[RiskViolation], Optional[str]]


def whole_units(value: float) -> float:
    """Round a quantity down to whole units, tolerating float noise."""
    if value <= 0:
        return 0.0
    return float(math.floor(value + 1e-9))


class RiskManager:
    """
    Stateful gatekeeper for trades.

    Features:
    - Circuit breaker on daily loss and drawdown from peak
    - Position size, sector, correlation and leverage checks
    - Kelly, volatility and correlation-adjusted position sizing
    - Append-only alert log with age-based pruning
    - Risk metrics recomputed after every executed trade

    Checks and commits are serialized through ``lock`` so the HALTED state
    and the shared portfolio have a single writer.
    """

    def __init__(
        self,
        limits: Optional[RiskLimits] = None,
        initial_capital: float = 100000.0,
        portfolio: Optional[Portfolio] = None,
        risk_model: Optional[RiskModel] = None,
        event_queue: Optional[EventQueue] = None
    ):
        """
        Initialize risk manager.

        Args:
            limits: Risk limits, defaults to ``RiskLimits()``
            initial_capital: Starting capital when no portfolio is given
            portfolio: Portfolio to track; a fresh one is created otherwise
            risk_model: Sector, beta, correlation and volatility source
            event_queue: Optional channel receiving ``RiskAlertEvent``
        """
        self.limits = limits or RiskLimits()
        self.risk_model = risk_model or StaticRiskModel()
        self.event_queue = event_queue
        self.lock = threading.RLock()

        self.alerts: List[RiskAlert] = []
        self.risk_metrics = RiskMetrics()
        self._alert_counter = 0

        self.bind_portfolio(portfolio or Portfolio(initial_capital))

    def bind_portfolio(self, portfolio: Portfolio) -> None:
        """
        Track ``portfolio`` from now on and start a fresh session.

        Args:
            portfolio: Portfolio whose trades this manager commits
        """
        with self.lock:
            self.portfolio = portfolio
            self.state = ControllerState.ACTIVE
            self.halt_reason: Optional[str] = None
            self.daily_start_equity = portfolio.total_value
            self.peak_equity = portfolio.total_value
            self.alerts = []
            self._alert_counter = 0
            self.risk_metrics = RiskMetrics()

    @property
    def trading_halted(self) -> bool:
        """True while in the HALTED state."""
        return self.state == ControllerState.HALTED

    # ------------------------------------------------------------------
    # Pre-trade checks
    # ------------------------------------------------------------------

    def pre_trade_check(self, signal: Signal, proposed_quantity: float, current_price: float) -> RiskCheckResult:
        """
        Validate a proposed trade against the risk limits.

        SELL signals only face the halt, daily loss and drawdown checks since
        they reduce exposure. For an allowed BUY the adjusted quantity is the
        risk-adjusted size, further capped so the position, its sector and
        gross leverage stay within their limits.

        Args:
            signal: Signal being executed
            proposed_quantity: Quantity the caller intends to trade
            current_price: Reference price for the symbol

        Returns:
            RiskCheckResult with every violation found
        """
        if proposed_quantity <= 0:
            raise ValueError(f"proposed_quantity must be positive, got {proposed_quantity}")
        if current_price <= 0:
            raise ValueError(f"current_price must be positive, got {current_price}")

        with self.lock:
            result = RiskCheckResult()

            if self.trading_halted:
                violation = RiskViolation(
                    type=ViolationType.TRADING_HALTED,
                    current_value=0.0,
                    limit=0.0,
                    severity=Severity.CRITICAL,
                    action=RiskAction.HALT_TRADING
                )
                result.allowed = False
                result.violations.append(violation)
                self._record_alert(violation, signal.timestamp, signal.symbol, f"Trading halted: {self.halt_reason}")
                return result

            self._update_peak()

            checks = [
                self._check_daily_loss_limit(),
                self._check_max_drawdown()
            ]
            if signal.action == SignalAction.BUY:
                checks.extend([
                    self._check_position_size_limit(signal.symbol, proposed_quantity, current_price),
                    self._check_sector_exposure(signal.symbol, proposed_quantity, current_price),
                    self._check_correlation_limit(signal.symbol),
                    self._check_leverage_limit(proposed_quantity, current_price)
                ])

            for violation, warning in checks:
                if violation is not None:
                    result.violations.append(violation)
                    self._record_alert(violation, signal.timestamp, signal.symbol)
                    if violation.blocks_trade:
                        result.allowed = False
                if warning is not None:
                    result.warnings.append(warning)

            if not result.allowed:
                return result

            if signal.action != SignalAction.BUY:
                result.adjusted_quantity = proposed_quantity
                return result

            adjusted = self.calculate_risk_adjusted_size(signal, proposed_quantity, current_price)
            adjusted = min(adjusted, self._headroom_quantity(signal.symbol, current_price))
            if adjusted < 1:
                result.allowed = False
                result.warnings.append(
                    f"No headroom for {signal.symbol} within position, sector and leverage limits"
                )
                return result

            result.adjusted_quantity = adjusted
            return result

    def _check_daily_loss_limit(self) -> CheckOutcome:
        daily_loss = self._daily_loss()

        if daily_loss >= self.limits.max_daily_loss:
            self._halt("Daily loss limit exceeded")
            return RiskViolation(
                type=ViolationType.DAILY_LOSS_LIMIT,
                current_value=daily_loss * 100,
                limit=self.limits.max_daily_loss * 100,
                severity=Severity.CRITICAL,
                action=RiskAction.HALT_TRADING
            ), None

        if daily_loss >= self.limits.max_daily_loss * WARNING_THRESHOLD:
            return None, f"Approaching daily loss limit: {daily_loss * 100:.2f}% loss"

        return None, None

    def _check_max_drawdown(self) -> CheckOutcome:
        drawdown = self._current_drawdown()

        if drawdown >= self.limits.max_drawdown:
            self._halt("Maximum drawdown exceeded")
            return RiskViolation(
                type=ViolationType.MAX_DRAWDOWN,
                current_value=drawdown * 100,
                limit=self.limits.max_drawdown * 100,
                severity=Severity.CRITICAL,
                action=RiskAction.HALT_TRADING
            ), None

        if drawdown >= self.limits.max_drawdown * WARNING_THRESHOLD:
            return None, f"Approaching max drawdown: {drawdown * 100:.2f}%"

        return None, None

    def _check_position_size_limit(self, symbol: str, quantity: float, price: float) -> CheckOutcome:
        equity = self.portfolio.total_value
        position = self.portfolio.get_position(symbol)
        existing_value = position.market_value if position else 0.0
        position_percent = (existing_value + quantity * price) / equity if equity > 0 else math.inf

        if position_percent > self.limits.max_position_size:
            return RiskViolation(
                type=ViolationType.POSITION_SIZE_LIMIT,
                current_value=position_percent * 100,
                limit=self.limits.max_position_size * 100,
                severity=Severity.HIGH,
                action=RiskAction.REDUCE_POSITION
            ), None

        return None, None

    def _check_sector_exposure(self, symbol: str, quantity: float, price: float) -> CheckOutcome:
        sector = self.risk_model.sector(symbol)
        equity = self.portfolio.total_value
        sector_value = self._sector_value(sector) + quantity * price
        exposure = sector_value / equity if equity > 0 else math.inf

        if exposure > self.limits.max_sector_exposure:
            return RiskViolation(
                type=ViolationType.SECTOR_CONCENTRATION,
                current_value=exposure * 100,
                limit=self.limits.max_sector_exposure * 100,
                severity=Severity.MEDIUM,
                action=RiskAction.REDUCE_POSITION
            ), None

        if exposure > self.limits.max_sector_exposure * WARNING_THRESHOLD:
            return None, f"High sector concentration in {sector}: {exposure * 100:.2f}%"

        return None, None

    def _check_correlation_limit(self, symbol: str) -> CheckOutcome:
        correlations = self._portfolio_correlations(symbol)
        if not correlations:
            return None, None

        max_correlation = max(correlations.values())
        if max_correlation > self.limits.max_correlation:
            return RiskViolation(
                type=ViolationType.HIGH_CORRELATION,
                current_value=max_correlation,
                limit=self.limits.max_correlation,
                severity=Severity.MEDIUM,
                action=RiskAction.WARNING
            ), None

        return None, None

    def _check_leverage_limit(self, quantity: float, price: float) -> CheckOutcome:
        equity = self.portfolio.total_value
        exposure = self._gross_exposure() + quantity * price
        leverage = exposure / equity if equity > 0 else math.inf

        if leverage > self.limits.max_leverage:
            return RiskViolation(
                type=ViolationType.LEVERAGE_LIMIT,
                current_value=leverage,
                limit=self.limits.max_leverage,
                severity=Severity.HIGH,
                action=RiskAction.REDUCE_POSITION
            ), None

        return None, None

    # ------------------------------------------------------------------
    # Position sizing
    # ------------------------------------------------------------------

    def calculate_risk_adjusted_size(self, signal: Signal, proposed_quantity: float, current_price: float) -> float:
        """
        Shrink a proposed quantity with Kelly, volatility and correlation sizing.

        Each method is a ceiling. The result is raised to a $100 notional
        minimum, but never above the proposed quantity.

        Args:
            signal: Signal being sized
            proposed_quantity: Caller's quantity
            current_price: Reference price

        Returns:
            Whole-unit quantity
        """
        equity = self.portfolio.total_value

        adjusted = min(
            proposed_quantity,
            self._kelly_size(signal.strategy_id, current_price, equity),
            self._volatility_size(signal.symbol, current_price, equity)
        )
        adjusted = whole_units(adjusted * self._correlation_adjustment(signal.symbol))

        min_size = whole_units(MIN_POSITION_NOTIONAL / current_price)
        return max(adjusted, min(min_size, whole_units(proposed_quantity)))

    def _kelly_size(self, strategy_id: str, price: float, equity: float) -> float:
        stats = self.strategy_statistics(strategy_id)

        if stats is None or stats.trades < MIN_KELLY_TRADES:
            return whole_units(equity * FALLBACK_POSITION_FRACTION / price)

        return whole_units(equity * self.kelly_fraction(stats) / price)

    @staticmethod
    def kelly_fraction(stats: StrategyStatistics) -> float:
        """
        Quarter-Kelly fraction of equity, clamped to [0, 0.25].

        Args:
            stats: Strategy statistics

        Returns:
            Fraction of equity to allocate
        """
        win_rate = stats.win_rate
        avg_win = stats.avg_win_percent / 100
        avg_loss = abs(stats.avg_loss_percent) / 100

        if avg_win <= 0:
            return 0.0
        if avg_loss == 0:
            kelly = win_rate
        else:
            payoff = avg_win / avg_loss
            kelly = (win_rate * payoff - (1 - win_rate)) / payoff

        return max(0.0, min(MAX_KELLY_FRACTION, kelly * KELLY_MULTIPLIER))

    def _volatility_size(self, symbol: str, price: float, equity: float) -> float:
        atr = self.risk_model.atr(symbol)
        if atr is None or atr <= 0:
            atr = price * FALLBACK_ATR_FRACTION

        return whole_units(equity * RISK_PER_POSITION / (atr * ATR_STOP_MULTIPLIER))

    def _correlation_adjustment(self, symbol: str) -> float:
        correlations = self._portfolio_correlations(symbol)
        if not correlations:
            return 1.0

        avg_correlation = sum(correlations.values()) / len(correlations)
        return max(0.0, min(1.0, 1 - avg_correlation * CORRELATION_SHRINK))

    def _headroom_quantity(self, symbol: str, price: float) -> float:
        equity = self.portfolio.total_value
        if equity <= 0:
            return 0.0

        position = self.portfolio.get_position(symbol)
        existing_value = position.market_value if position else 0.0
        sector_value = self._sector_value(self.risk_model.sector(symbol))

        headroom = min(
            self.limits.max_position_size * equity - existing_value,
            self.limits.max_sector_exposure * equity - sector_value,
            self.limits.max_leverage * equity - self._gross_exposure()
        )
        return whole_units(headroom / price)

    def strategy_statistics(self, strategy_id: str) -> Optional[StrategyStatistics]:
        """
        Trade statistics for Kelly sizing.

        Taken from the risk model when it has them, otherwise derived from
        the closed trades of ``strategy_id`` in the portfolio.
        """
        stats = self.risk_model.strategy_statistics(strategy_id)
        if stats is not None:
            return stats

        closed = [t for t in self.portfolio.closed_trades if t.strategy_id == strategy_id]
        if not closed:
            return None

        wins = [t.realized_pnl_pct for t in closed if t.realized_pnl > 0]
        losses = [abs(t.realized_pnl_pct) for t in closed if t.realized_pnl <= 0]
        return StrategyStatistics(
            trades=len(closed),
            win_rate=len(wins) / len(closed),
            avg_win_percent=sum(wins) / len(wins) if wins else 0.0,
            avg_loss_percent=sum(losses) / len(losses) if losses else 0.0
        )

    # ------------------------------------------------------------------
    # Post-trade and session management
    # ------------------------------------------------------------------

    def on_trade_executed(self, trade: Trade) -> Trade:
        """
        Commit an executed trade and refresh risk metrics.

        Args:
            trade: Executed trade

        Returns:
            The trade as recorded by the portfolio
        """
        with self.lock:
            recorded = self.portfolio.apply_trade(trade)
            self._update_peak()
            self.update_risk_metrics()
            return recorded

    def mark_to_market(self, prices: Dict[str, float], timestamp: datetime) -> List[str]:
        """
        Revalue positions and move the risk model clock.

        Args:
            prices: Symbol to close mapping for the step
            timestamp: Step timestamp

        Returns:
            Held symbols without a price this step
        """
        with self.lock:
            missing = self.portfolio.mark_to_market(prices)
            self.risk_model.advance(timestamp)
            self._update_peak()
            return missing

    def reset_daily_limits(self, as_of: Optional[datetime] = None) -> None:
        """
        Start a new trading session.

        The only way out of HALTED. Session equity and peak restart at the
        current portfolio value and alerts older than one day are pruned.

        Args:
            as_of: Session start used for pruning, defaults to now
        """
        with self.lock:
            was_halted = self.trading_halted
            self.daily_start_equity = self.portfolio.total_value
            self.peak_equity = self.portfolio.total_value
            self.state = ControllerState.ACTIVE
            self.halt_reason = None
            self.prune_alerts(timedelta(days=1), as_of or datetime.now())

        if was_halted:
            logger.info(f"Trading resumed after reset, starting equity {self.daily_start_equity:,.2f}")
        else:
            logger.debug(f"Daily risk limits reset, starting equity {self.daily_start_equity:,.2f}")

    def prune_alerts(self, max_age: timedelta, as_of: datetime) -> int:
        """
        Drop alerts older than ``max_age`` relative to ``as_of``.

        Returns:
            Number of alerts removed
        """
        with self.lock:
            cutoff = as_of - max_age
            kept = [alert for alert in self.alerts if alert.timestamp > cutoff]
            removed = len(self.alerts) - len(kept)
            self.alerts = kept
            return removed

    def check_stop_losses(self, timestamp: datetime) -> List[Signal]:
        """
        Build SELL signals for positions whose loss reached the stop-loss limit.

        Args:
            timestamp: Step timestamp for the signals and alerts

        Returns:
            One full-size SELL signal per breaching position
        """
        signals = []
        with self.lock:
            for symbol, position in self.portfolio.positions.items():
                if position.average_price <= 0:
                    continue
                loss = (position.average_price - position.current_price) / position.average_price
                if loss < self.limits.stop_loss_percent:
                    continue

                violation = RiskViolation(
                    type=ViolationType.STOP_LOSS,
                    current_value=loss * 100,
                    limit=self.limits.stop_loss_percent * 100,
                    severity=Severity.HIGH,
                    action=RiskAction.REDUCE_POSITION
                )
                self._record_alert(
                    violation, timestamp, symbol,
                    f"Stop loss hit for {symbol}: {loss * 100:.2f}% below average cost"
                )
                signals.append(Signal(
                    timestamp=timestamp,
                    symbol=symbol,
                    action=SignalAction.SELL,
                    strength=-1.0,
                    confidence=1.0,
                    strategy_id=STOP_LOSS_STRATEGY_ID,
                    reasoning=f"Loss of {loss * 100:.2f}% reached stop loss",
                    quantity=position.quantity
                ))
        return signals

    def get_risk_status(self) -> RiskStatus:
        """Current risk status summary."""
        with self.lock:
            drawdown = self._current_drawdown()
            daily_loss = self._daily_loss()

            drawdown_score = drawdown / self.limits.max_drawdown * 40 if self.limits.max_drawdown > 0 else 0.0
            daily_loss_score = (
                max(0.0, daily_loss / self.limits.max_daily_loss) * 30 if self.limits.max_daily_loss > 0 else 0.0
            )
            concentration_score = self._concentration_risk() * 30

            return RiskStatus(
                trading_allowed=not self.trading_halted,
                state=self.state,
                current_drawdown_pct=drawdown * 100,
                daily_pnl_pct=-daily_loss * 100,
                risk_score=min(100.0, drawdown_score + daily_loss_score + concentration_score),
                alerts=list(self.alerts)
            )

    def update_risk_metrics(self) -> RiskMetrics:
        """Recompute VaR, beta, correlation, drawdown, sector exposure and concentration."""
        with self.lock:
            equity = self.portfolio.total_value
            weights = self._position_weights()

            self.risk_metrics = RiskMetrics(
                daily_var=equity * self.risk_model.portfolio_volatility(weights) * VAR_Z_95,
                beta=sum(weight * self.risk_model.beta(symbol) for symbol, weight in weights.items()),
                correlation=self._average_pairwise_correlation(),
                current_drawdown=self._current_drawdown(),
                sector_exposure=self._sector_exposures(),
                concentration_risk=self._concentration_risk()
            )
            return self.risk_metrics

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _halt(self, reason: str) -> None:
        if self.trading_halted:
            return
        self.state = ControllerState.HALTED
        self.halt_reason = reason
        logger.info(f"Trading halted: {reason} (equity {self.portfolio.total_value:,.2f})")

    def _record_alert(
        self,
        violation: RiskViolation,
        timestamp: datetime,
        symbol: Optional[str] = None,
        message: Optional[str] = None
    ) -> RiskAlert:
        self._alert_counter += 1
        alert = RiskAlert(
            id=f"A{self._alert_counter:06d}",
            timestamp=timestamp,
            type=violation.type,
            severity=violation.severity,
            message=message or (
                f"{violation.type.value}: {violation.current_value:.4f} against limit {violation.limit:.4f}"
            ),
            current_value=violation.current_value,
            limit=violation.limit,
            action=violation.action,
            symbol=symbol
        )
        self.alerts.append(alert)
        if self.event_queue is not None:
            self.event_queue.put(RiskAlertEvent(alert))
        return alert

    def _update_peak(self) -> None:
        equity = self.portfolio.total_value
        if equity > self.peak_equity:
            self.peak_equity = equity

    def _daily_loss(self) -> float:
        if self.daily_start_equity <= 0:
            return 0.0
        return (self.daily_start_equity - self.portfolio.total_value) / self.daily_start_equity

    def _current_drawdown(self) -> float:
        if self.peak_equity <= 0:
            return 0.0
        return max(0.0, (self.peak_equity - self.portfolio.total_value) / self.peak_equity)

    def _gross_exposure(self) -> float:
        return sum(abs(pos.market_value) for pos in self.portfolio.positions.values())

    def _sector_value(self, sector: str) -> float:
        return sum(
            pos.market_value for symbol, pos in self.portfolio.positions.items()
            if self.risk_model.sector(symbol) == sector
        )

    def _sector_exposures(self) -> Dict[str, float]:
        equity = self.portfolio.total_value
        if equity <= 0:
            return {}
        sectors = {self.risk_model.sector(symbol) for symbol in self.portfolio.positions}
        return {sector: self._sector_value(sector) / equity for sector in sorted(sectors)}

    def _position_weights(self) -> Dict[str, float]:
        equity = self.portfolio.total_value
        if equity <= 0:
            return {}
        return {symbol: pos.market_value / equity for symbol, pos in self.portfolio.positions.items()}

    def _portfolio_correlations(self, symbol: str) -> Dict[str, float]:
        return {
            held: self.risk_model.correlation(held, symbol)
            for held, pos in self.portfolio.positions.items()
            if held != symbol and pos.quantity > QUANTITY_EPSILON
        }

    def _average_pairwise_correlation(self) -> float:
        symbols = list(self.portfolio.positions)
        correlations = [
            self.risk_model.correlation(symbols[i], symbols[j])
            for i in range(len(symbols))
            for j in range(i + 1, len(symbols))
        ]
        return sum(correlations) / len(correlations) if correlations else 0.0

    def _concentration_risk(self) -> float:
        return sum(weight ** 2 for weight in self._position_weights().values())
