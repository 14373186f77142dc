# tradesim/models/config.py
"""
Configuration models for the simulation engine and risk controller.
"""

from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SlippageModel(str, Enum):
    """Slippage model applied on top of the half-spread."""
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"
    MARKET_IMPACT = "MARKET_IMPACT"


class UnresolvedPositionPolicy(str, Enum):
    """How positions still open at the end of a run enter the return figures."""
    MARK_LAST_PRICE = "MARK_LAST_PRICE"
    EXCLUDE = "EXCLUDE"


class BacktestConfig(BaseModel):
    """Backtest execution configuration."""
    start_date: datetime = Field(..., description="First timestamp included in the simulation")
    end_date: datetime = Field(..., description="Last timestamp included in the simulation")
    initial_capital: float = Field(default=100000.0, gt=0, description="Starting cash")
    commission: float = Field(default=0.0, ge=0, description="Flat commission per trade")
    commission_bps: float = Field(default=0.0, ge=0, description="Proportional fee in basis points")
    slippage_model: SlippageModel = Field(default=SlippageModel.PERCENTAGE, description="Slippage model")
    slippage_value: float = Field(default=0.0, ge=0, description="Absolute amount (FIXED) or fraction of price")
    max_positions: Optional[int] = Field(None, gt=0, description="Maximum simultaneously open positions")
    unresolved_position_policy: UnresolvedPositionPolicy = Field(
        default=UnresolvedPositionPolicy.MARK_LAST_PRICE,
        description="Treatment of positions left open at the final timestamp"
    )
    risk_free_rate: float = Field(default=0.02, ge=0, description="Annual risk-free rate")
    reset_risk_limits_daily: bool = Field(default=True, description="Reset daily risk limits on each new calendar date")
    enforce_stop_loss: bool = Field(default=False, description="Close positions breaching the stop-loss limit")
    show_progress: bool = Field(default=False, description="Display a progress bar")

    @model_validator(mode="after")
    def _check_dates(self) -> "BacktestConfig":
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date.isoformat()} is after end_date {self.end_date.isoformat()}"
            )
        return self


class RiskLimits(BaseModel):
    """Portfolio risk limits, fractions of equity unless noted."""
    model_config = ConfigDict(frozen=True)

    max_daily_loss: float = Field(default=0.02, ge=0, le=1, description="Max loss since session start")
    max_drawdown: float = Field(default=0.10, ge=0, le=1, description="Max decline from session peak")
    max_position_size: float = Field(default=0.15, ge=0, le=1, description="Max single position weight")
    max_sector_exposure: float = Field(default=0.30, ge=0, le=1, description="Max sector weight")
    max_correlation: float = Field(default=0.70, ge=0, le=1, description="Max pairwise correlation")
    max_leverage: float = Field(default=2.0, gt=0, description="Max gross exposure / equity")
    stop_loss_percent: float = Field(default=0.12, ge=0, le=1, description="Stop loss as loss fraction")


def _normalize_level(level: str) -> str:
    valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if level.upper() not in valid_levels:
        raise ValueError(f"Logging level must be one of {valid_levels}")
    return level.upper()


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", description="Log format")
    file: Optional[str] = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10 * 1024 * 1024, gt=0, description="Log file size before rotation")
    backup_count: int = Field(default=5, ge=0, description="Rotated log files to keep")
    loggers: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-logger level overrides, e.g. {'tradesim.core.risk_manager': 'DEBUG'}"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        return _normalize_level(v)

    @field_validator('loggers')
    @classmethod
    def validate_logger_levels(cls, v):
        return {name: _normalize_level(level) for name, level in v.items()}


class StrategyConfig(BaseModel):
    """Parameters for the command line strategy."""
    type: str = Field(default="ma_cross", description="Strategy type")
    fast_window: int = Field(default=10, gt=0, description="Fast moving average window")
    slow_window: int = Field(default=30, gt=0, description="Slow moving average window")

    @field_validator('type')
    @classmethod
    def validate_strategy_type(cls, v):
        if v not in ['ma_cross']:
            raise ValueError("Strategy type must be 'ma_cross'")
        return v

    @model_validator(mode="after")
    def _check_windows(self) -> "StrategyConfig":
        if self.fast_window >= self.slow_window:
            raise ValueError("fast_window must be smaller than slow_window")
        return self


class AppConfig(BaseModel):
    """Main application configuration."""
    backtest: BacktestConfig
    risk: Optional[RiskLimits] = None
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def run_id(self) -> str:
        """Generate a run ID from the configured period."""
        start = self.backtest.start_date.strftime("%Y%m%d")
        end = self.backtest.end_date.strftime("%Y%m%d")
        return f"{self.strategy.type}_{start}_{end}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return self.model_dump(mode='json')

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'AppConfig':
        """Create from dictionary."""
        return cls(**config_dict)
