# tradesim/models/risk.py
"""
Risk check results, alerts and risk metrics.
"""

from enum import Enum
from typing import List, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Violation severity."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskAction(str, Enum):
    """Action a violation calls for."""
    WARNING = "WARNING"
    REDUCE_POSITION = "REDUCE_POSITION"
    HALT_TRADING = "HALT_TRADING"


class ViolationType(str, Enum):
    """Risk check identifiers."""
    TRADING_HALTED = "TRADING_HALTED"
    DAILY_LOSS_LIMIT = "DAILY_LOSS_LIMIT"
    MAX_DRAWDOWN = "MAX_DRAWDOWN"
    POSITION_SIZE_LIMIT = "POSITION_SIZE_LIMIT"
    SECTOR_CONCENTRATION = "SECTOR_CONCENTRATION"
    HIGH_CORRELATION = "HIGH_CORRELATION"
    LEVERAGE_LIMIT = "LEVERAGE_LIMIT"
    STOP_LOSS = "STOP_LOSS"


class ControllerState(str, Enum):
    """Risk controller state."""
    ACTIVE = "ACTIVE"
    HALTED = "HALTED"


class RiskViolation(BaseModel):
    """A single failed risk check."""
    model_config = ConfigDict(frozen=True)

    type: ViolationType
    current_value: float
    limit: float
    severity: Severity
    action: RiskAction

    @property
    def blocks_trade(self) -> bool:
        """CRITICAL violations reject the trade."""
        return self.severity == Severity.CRITICAL


class RiskCheckResult(BaseModel):
    """Outcome of a pre-trade check."""
    allowed: bool = True
    violations: List[RiskViolation] = Field(default_factory=list)
    adjusted_quantity: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)


class RiskAlert(BaseModel):
    """Append-only audit record for a violation or a halt."""
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    type: ViolationType
    severity: Severity
    message: str
    current_value: float
    limit: float
    action: RiskAction
    symbol: Optional[str] = None


class RiskMetrics(BaseModel):
    """Portfolio risk metrics recomputed after every executed trade."""
    daily_var: float = 0.0
    beta: float = 0.0
    correlation: float = 0.0
    current_drawdown: float = 0.0
    sector_exposure: Dict[str, float] = Field(default_factory=dict)
    concentration_risk: float = 0.0


class RiskStatus(BaseModel):
    """Summary of the controller state."""
    trading_allowed: bool
    state: ControllerState
    current_drawdown_pct: float
    daily_pnl_pct: float
    risk_score: float
    alerts: List[RiskAlert] = Field(default_factory=list)


class StrategyStatistics(BaseModel):
    """Historical performance of a strategy used for Kelly sizing."""
    model_config = ConfigDict(frozen=True)

    trades: int = Field(..., ge=0, description="Completed trades")
    win_rate: float = Field(..., ge=0, le=1, description="Fraction of winning trades")
    avg_win_percent: float = Field(..., ge=0, description="Average win, percent of cost")
    avg_loss_percent: float = Field(..., description="Average loss, percent of cost (sign ignored)")
