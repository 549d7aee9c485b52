"""Async service layer for a ride-hailing app."""

__version__ = "0.1.0"
