"""Budget amount allocation and transaction split consistency engine."""

__version__ = "0.1.0"
