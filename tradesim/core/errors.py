from __future__ import annotations


class TradesimError(Exception):
    """Base exception for simulation failures."""


class ConfigurationError(TradesimError, ValueError):
    """Raised when a run is configured with structurally invalid settings."""


class DataValidationError(TradesimError, ValueError):
    """Raised when market data or signals are malformed at the boundary."""
