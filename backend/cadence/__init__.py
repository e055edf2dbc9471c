"""Cadence: recurring commitment scheduling and mentor slot allocation."""

__version__ = "0.1.0"
