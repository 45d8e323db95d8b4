"""Scheduled federal dataset sync pipeline."""

__version__ = "1.0.0"
