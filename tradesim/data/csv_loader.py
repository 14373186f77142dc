# tradesim/data/csv_loader.py
"""
CSV price loader.

Each file holds one symbol with the columns::

    timestamp,open,high,low,close,volume

``time`` or ``date`` are accepted instead of ``timestamp`` and ``volume`` is
optional. Additional columns are ignored. Timezone-aware timestamps are
converted to naive UTC.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional
import logging
import pandas as pd

from ..core.errors import DataValidationError
from ..models.market_data import MarketDataPoint


logger = logging.getLogger(__name__)

TIME_COLUMNS = ("timestamp", "time", "date", "datetime")
PRICE_COLUMNS = ("open", "high", "low", "close")


def read_price_frame(file_path: str) -> pd.DataFrame:
    """
    Read a price CSV into a frame indexed by timestamp.

    Args:
        file_path: CSV file path

    Returns:
        Frame with open, high, low, close and volume columns, sorted by time

    Raises:
        FileNotFoundError: If the file is missing
        DataValidationError: If required columns are missing or timestamps do not parse
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {file_path}")

    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]

    time_column = next((c for c in TIME_COLUMNS if c in df.columns), None)
    missing = [c for c in PRICE_COLUMNS if c not in df.columns]
    if time_column is None or missing:
        raise DataValidationError(
            f"Unrecognized CSV format in {file_path}. Missing columns: "
            f"{missing + ([] if time_column else ['timestamp'])}. Found columns: {list(df.columns)}"
        )

    try:
        timestamps = pd.to_datetime(df[time_column], errors="raise")
    except (ValueError, TypeError) as e:
        raise DataValidationError(f"Could not parse timestamps in {file_path}: {e}") from e

    index = pd.DatetimeIndex(timestamps)
    if index.tz is not None:
        index = index.tz_convert("UTC").tz_localize(None)

    out = pd.DataFrame(
        {
            "open": df["open"].astype(float).to_numpy(),
            "high": df["high"].astype(float).to_numpy(),
            "low": df["low"].astype(float).to_numpy(),
            "close": df["close"].astype(float).to_numpy(),
            "volume": df["volume"].astype(float).to_numpy() if "volume" in df.columns else 0.0,
        },
        index=index,
    ).sort_index(kind="mergesort")

    duplicated = out.index.duplicated(keep="last")
    if duplicated.any():
        logger.warning(f"{file_path}: dropping {int(duplicated.sum())} rows with duplicate timestamps")
        out = out[~duplicated]

    return out


def frame_to_bars(symbol: str, frame: pd.DataFrame) -> List[MarketDataPoint]:
    """Convert a price frame into validated bars."""
    return [
        MarketDataPoint(
            symbol=symbol,
            timestamp=timestamp.to_pydatetime(),
            open=row.open,
            high=row.high,
            low=row.low,
            close=row.close,
            volume=row.volume,
        )
        for timestamp, row in zip(frame.index, frame.itertuples(index=False))
    ]


def load_price_csv(file_path: str, symbol: Optional[str] = None) -> List[MarketDataPoint]:
    """
    Load one symbol's bars from a CSV file.

    Args:
        file_path: CSV file path
        symbol: Symbol name, defaults to the file stem

    Returns:
        Bars in ascending timestamp order
    """
    symbol = symbol or Path(file_path).stem
    bars = frame_to_bars(symbol, read_price_frame(file_path))
    logger.info(f"Loaded {len(bars)} bars for {symbol} from {file_path}")
    return bars


def load_price_directory(
    directory: str,
    symbols: Optional[Iterable[str]] = None
) -> Dict[str, List[MarketDataPoint]]:
    """
    Load every ``{SYMBOL}.csv`` in a directory.

    Args:
        directory: Directory holding the CSV files
        symbols: Restrict to these symbols; each must have a file

    Returns:
        Symbol to bars mapping
    """
    base = Path(directory)
    if not base.is_dir():
        raise FileNotFoundError(f"Data directory not found: {directory}")

    if symbols is None:
        files = {path.stem: path for path in sorted(base.glob("*.csv"))}
    else:
        files = {symbol: base / f"{symbol}.csv" for symbol in symbols}

    return {symbol: load_price_csv(str(path), symbol) for symbol, path in files.items()}
