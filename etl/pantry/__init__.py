"""Nutrition catalog seed pipeline and multi-source food search."""

__version__ = "0.3.0"
