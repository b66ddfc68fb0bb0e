"""agromart: agricultural marketplace checkout and order management."""

__version__ = "0.1.0"
