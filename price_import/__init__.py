"""Supplier price list import: parse, normalize, match, price and apply."""

__version__ = "0.1.0"
