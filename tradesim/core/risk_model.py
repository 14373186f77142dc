# tradesim/core/risk_model.py
"""
Market risk estimates consumed by the risk manager.

The risk manager never hard-codes sectors, betas or correlations; it asks a
``RiskModel`` supplied by the caller. ``StaticRiskModel`` serves fixed
tables, ``HistoricalRiskModel`` estimates from the price series being
simulated, using only bars at or before the current simulation time.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging
import numpy as np
import pandas as pd
from ..models.market_data import MarketDataPoint
from ..models.risk import StrategyStatistics


logger = logging.getLogger(__name__)

DEFAULT_SECTOR = "Other"
DEFAULT_VOLATILITY = 0.02


class RiskModel(ABC):
    """Source of sector, beta, correlation and volatility estimates."""

    @abstractmethod
    def sector(self, symbol: str) -> str:
        """Sector the symbol belongs to."""
        pass

    @abstractmethod
    def beta(self, symbol: str) -> float:
        """Beta of the symbol against the market."""
        pass

    @abstractmethod
    def correlation(self, symbol_a: str, symbol_b: str) -> float:
        """Return correlation between two symbols."""
        pass

    @abstractmethod
    def atr(self, symbol: str) -> Optional[float]:
        """Average true range in price units, None when unknown."""
        pass

    @abstractmethod
    def portfolio_volatility(self, weights: Dict[str, float]) -> float:
        """Daily volatility of a portfolio with the given equity weights."""
        pass

    def strategy_statistics(self, strategy_id: str) -> Optional[StrategyStatistics]:
        """Historical trade statistics for a strategy, None to derive them from the ledger."""
        return None

    def advance(self, timestamp: datetime) -> None:
        """Move the estimation clock to ``timestamp``."""
        pass


class StaticRiskModel(RiskModel):
    """
    Risk model backed by fixed tables.

    Correlations are looked up by pair in either order. Pairs not listed
    fall back to ``same_sector_correlation`` or ``cross_sector_correlation``
    when those are given, and to 0 otherwise.
    """

    def __init__(
        self,
        sectors: Optional[Dict[str, str]] = None,
        betas: Optional[Dict[str, float]] = None,
        correlations: Optional[Dict[Tuple[str, str], float]] = None,
        same_sector_correlation: Optional[float] = None,
        cross_sector_correlation: Optional[float] = None,
        atr: Optional[Dict[str, float]] = None,
        volatility: float = DEFAULT_VOLATILITY,
        strategy_stats: Optional[Dict[str, StrategyStatistics]] = None,
        default_sector: str = DEFAULT_SECTOR
    ):
        self.sectors = dict(sectors or {})
        self.betas = dict(betas or {})
        self.correlations = dict(correlations or {})
        self.same_sector_correlation = same_sector_correlation
        self.cross_sector_correlation = cross_sector_correlation
        self.atr_values = dict(atr or {})
        self.volatility = volatility
        self.strategy_stats = dict(strategy_stats or {})
        self.default_sector = default_sector

    def sector(self, symbol: str) -> str:
        return self.sectors.get(symbol, self.default_sector)

    def beta(self, symbol: str) -> float:
        return self.betas.get(symbol, 1.0)

    def correlation(self, symbol_a: str, symbol_b: str) -> float:
        if symbol_a == symbol_b:
            return 1.0

        for pair in ((symbol_a, symbol_b), (symbol_b, symbol_a)):
            if pair in self.correlations:
                return self.correlations[pair]

        same_sector = self.sector(symbol_a) == self.sector(symbol_b)
        if same_sector and self.same_sector_correlation is not None:
            return self.same_sector_correlation
        if not same_sector and self.cross_sector_correlation is not None:
            return self.cross_sector_correlation
        return 0.0

    def atr(self, symbol: str) -> Optional[float]:
        return self.atr_values.get(symbol)

    def portfolio_volatility(self, weights: Dict[str, float]) -> float:
        return self.volatility

    def strategy_statistics(self, strategy_id: str) -> Optional[StrategyStatistics]:
        return self.strategy_stats.get(strategy_id)


class HistoricalRiskModel(RiskModel):
    """
    Risk model estimated from OHLC history.

    Features:
    - ATR as the mean true range over the last ``atr_period`` bars
    - Pearson correlation of close-to-close returns over ``lookback`` bars
    - Beta as cov(symbol, benchmark) / var(benchmark)
    - Portfolio volatility as the standard deviation of weighted returns

    Every estimate only sees bars up to the time passed to ``advance``.
    """

    def __init__(
        self,
        price_series: Dict[str, List[MarketDataPoint]],
        sectors: Optional[Dict[str, str]] = None,
        benchmark: Optional[str] = None,
        atr_period: int = 14,
        lookback: int = 60,
        default_volatility: float = DEFAULT_VOLATILITY,
        strategy_stats: Optional[Dict[str, StrategyStatistics]] = None,
        default_sector: str = DEFAULT_SECTOR
    ):
        """
        Initialize historical risk model.

        Args:
            price_series: Symbol to bars mapping, as passed to the engine
            sectors: Symbol to sector mapping
            benchmark: Symbol used as the market for beta
            atr_period: Bars averaged for ATR
            lookback: Bars of returns used for correlation, beta and volatility
            default_volatility: Used until enough history exists
            strategy_stats: Optional fixed strategy statistics
            default_sector: Sector for unmapped symbols
        """
        if atr_period < 1 or lookback < 2:
            raise ValueError("atr_period must be >= 1 and lookback >= 2")

        self.sectors = dict(sectors or {})
        self.benchmark = benchmark
        self.atr_period = atr_period
        self.lookback = lookback
        self.default_volatility = default_volatility
        self.strategy_stats = dict(strategy_stats or {})
        self.default_sector = default_sector
        self.as_of: Optional[datetime] = None

        self.frames: Dict[str, pd.DataFrame] = {}
        for symbol, bars in price_series.items():
            if not bars:
                continue
            frame = pd.DataFrame({
                'high': [bar.high for bar in bars],
                'low': [bar.low for bar in bars],
                'close': [bar.close for bar in bars]
            }, index=pd.DatetimeIndex([bar.timestamp for bar in bars]))
            self.frames[symbol] = frame.sort_index()

        self.closes = pd.DataFrame({symbol: frame['close'] for symbol, frame in self.frames.items()})

        logger.debug(f"Historical risk model built for {len(self.frames)} symbols")

    def advance(self, timestamp: datetime) -> None:
        self.as_of = timestamp

    def _history(self, frame: pd.DataFrame) -> pd.DataFrame:
        if self.as_of is None:
            return frame
        return frame.loc[:pd.Timestamp(self.as_of)]

    def _returns(self) -> pd.DataFrame:
        closes = self._history(self.closes)
        return closes.pct_change(fill_method=None).iloc[1:].tail(self.lookback)

    def sector(self, symbol: str) -> str:
        return self.sectors.get(symbol, self.default_sector)

    def atr(self, symbol: str) -> Optional[float]:
        frame = self.frames.get(symbol)
        if frame is None:
            return None

        history = self._history(frame)
        if len(history) < 2:
            return None

        previous_close = history['close'].shift(1)
        true_range = pd.concat([
            history['high'] - history['low'],
            (history['high'] - previous_close).abs(),
            (history['low'] - previous_close).abs()
        ], axis=1).max(axis=1).iloc[1:]

        value = float(true_range.tail(self.atr_period).mean())
        return value if value > 0 else None

    def correlation(self, symbol_a: str, symbol_b: str) -> float:
        if symbol_a == symbol_b:
            return 1.0
        if symbol_a not in self.closes or symbol_b not in self.closes:
            return 0.0

        pair = self._returns()[[symbol_a, symbol_b]].dropna()
        if len(pair) < 3:
            return 0.0

        value = pair[symbol_a].corr(pair[symbol_b])
        return 0.0 if pd.isna(value) else float(value)

    def beta(self, symbol: str) -> float:
        if self.benchmark is None or symbol == self.benchmark:
            return 1.0
        if symbol not in self.closes or self.benchmark not in self.closes:
            return 1.0

        pair = self._returns()[[symbol, self.benchmark]].dropna()
        if len(pair) < 3:
            return 1.0

        market_variance = float(np.var(pair[self.benchmark], ddof=1))
        if market_variance == 0:
            return 1.0
        covariance = float(np.cov(pair[symbol], pair[self.benchmark], ddof=1)[0, 1])
        return covariance / market_variance

    def portfolio_volatility(self, weights: Dict[str, float]) -> float:
        held = {symbol: weight for symbol, weight in weights.items() if symbol in self.closes}
        if not held:
            return 0.0 if not weights else self.default_volatility

        returns = self._returns()[list(held)].dropna()
        if len(returns) < 3:
            return self.default_volatility

        weighted = returns.mul(pd.Series(held)).sum(axis=1)
        return float(weighted.std(ddof=1))

    def strategy_statistics(self, strategy_id: str) -> Optional[StrategyStatistics]:
        return self.strategy_stats.get(strategy_id)
