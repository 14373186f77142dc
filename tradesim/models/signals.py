# tradesim/models/signals.py
"""
Trading signal models.
"""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class SignalAction(str, Enum):
    """Signal action."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Signal(BaseModel):
    """Candidate trading signal issued by a strategy for one bar."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Bar timestamp the signal refers to")
    symbol: str = Field(..., min_length=1, description="Trading symbol")
    action: SignalAction = Field(..., description="BUY, SELL or HOLD")
    strength: float = Field(..., ge=-1.0, le=1.0, description="Signal strength (-1..1)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Signal confidence (0..1)")
    strategy_id: str = Field(..., min_length=1, description="Issuing strategy identifier")
    reasoning: str = Field(default="", description="Human readable rationale")

    # Explicit size overrides confidence-based sizing
    quantity: Optional[float] = Field(None, gt=0, description="Explicit order quantity")

    @property
    def is_actionable(self) -> bool:
        """True for BUY and SELL signals."""
        return self.action != SignalAction.HOLD
