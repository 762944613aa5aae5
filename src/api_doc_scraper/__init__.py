"""Acquire API documentation sites and extract structured API descriptions."""

__version__ = "0.1.0"
