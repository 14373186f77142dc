# tradesim/data/synthetic_data.py
"""
Synthetic data generator for testing and demos.
"""

import numpy as np
import pandas as pd
from datetime import datetime
from typing import Dict, List, Optional
from ..models.market_data import MarketDataPoint


class SyntheticDataProvider:
    """
    Generates synthetic daily OHLCV bars.

    Prices follow geometric Brownian motion on business days. A provider
    created with the same seed produces the same bars.
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize synthetic data provider.

        Args:
            seed: Random seed for reproducible data generation
        """
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def generate_daily_bars(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        initial_price: float = 100.0,
        volatility: float = 0.02,
        trend: float = 0.0003,
        volume_base: float = 100000
    ) -> List[MarketDataPoint]:
        """
        Generate synthetic daily bars.

        Args:
            symbol: Trading symbol
            start: First day
            end: Last day
            initial_price: Starting price
            volatility: Daily volatility of log returns
            trend: Daily drift of log returns
            volume_base: Base volume for generation

        Returns:
            List of MarketDataPoint objects, one per business day
        """
        time_index = pd.bdate_range(start, end)
        if len(time_index) == 0:
            return []

        returns = self.rng.normal(trend, volatility, len(time_index))
        prices = initial_price * np.exp(np.cumsum(returns))

        bars = []
        open_price = initial_price
        for timestamp, close_price, daily_return in zip(time_index, prices, returns):
            # Intrabar range proportional to volatility
            intrabar_range = abs(close_price - open_price) * 0.5 + open_price * volatility * self.rng.random()
            high_price = max(open_price, close_price) + intrabar_range * self.rng.random()
            low_price = max(0.01, min(open_price, close_price) - intrabar_range * self.rng.random())
            volume = volume_base * (0.5 + self.rng.random()) * (1 + abs(daily_return) * 10)

            bars.append(MarketDataPoint(
                symbol=symbol,
                timestamp=timestamp.to_pydatetime(),
                open=round(float(open_price), 2),
                high=round(float(high_price), 2),
                low=round(float(low_price), 2),
                close=round(float(close_price), 2),
                volume=float(round(volume))
            ))
            open_price = bars[-1].close

        return bars

    def generate_universe(
        self,
        symbols: Dict[str, dict],
        start: datetime,
        end: datetime
    ) -> Dict[str, List[MarketDataPoint]]:
        """
        Generate bars for several symbols.

        Args:
            symbols: Symbol to ``generate_daily_bars`` keyword arguments
            start: First day
            end: Last day

        Returns:
            Symbol to bars mapping
        """
        return {
            symbol: self.generate_daily_bars(symbol, start, end, **params)
            for symbol, params in symbols.items()
        }

    def get_sample_symbols(self) -> Dict[str, dict]:
        """
        Get sample symbol configurations.

        Returns:
            Symbol to generation parameters mapping
        """
        return {
            "AAPL": {"initial_price": 180.0, "volatility": 0.018, "trend": 0.0004},
            "MSFT": {"initial_price": 330.0, "volatility": 0.016, "trend": 0.0003},
            "XOM": {"initial_price": 105.0, "volatility": 0.02, "trend": 0.0001},
            "LMT": {"initial_price": 450.0, "volatility": 0.014, "trend": 0.0002},
        }
