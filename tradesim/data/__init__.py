# tradesim/data/__init__.py
"""
Price data loaders and generators.
"""

from .csv_loader import load_price_csv, load_price_directory, read_price_frame
from .synthetic_data import SyntheticDataProvider

__all__ = [
    "load_price_csv",
    "load_price_directory",
    "read_price_frame",
    "SyntheticDataProvider",
]
