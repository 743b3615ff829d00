"""JAMA: daily loan collection for microfinance operators."""

__version__ = "1.0.0"
