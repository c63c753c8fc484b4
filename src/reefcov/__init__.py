"""Windowed environmental covariates for geo-located survey records."""

__version__ = "0.1.0"
