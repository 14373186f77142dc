# tradesim/models/market_data.py
"""
Market data models.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator


class MarketDataPoint(BaseModel):
    """One OHLCV bar for a symbol at a timestamp."""
    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., min_length=1, description="Trading symbol")
    timestamp: datetime = Field(..., description="Bar timestamp")
    open: float = Field(..., ge=0, description="Opening price")
    high: float = Field(..., ge=0, description="High price")
    low: float = Field(..., ge=0, description="Low price")
    close: float = Field(..., gt=0, description="Closing price")
    volume: float = Field(default=0.0, ge=0, description="Traded volume")

    @model_validator(mode="after")
    def _check_range(self) -> "MarketDataPoint":
        if self.high < self.low:
            raise ValueError(f"high {self.high} is below low {self.low} for {self.symbol}")
        return self

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'symbol': self.symbol,
            'timestamp': self.timestamp.isoformat(),
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume
        }
