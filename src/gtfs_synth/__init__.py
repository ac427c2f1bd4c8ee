"""Synthetic GTFS route generation grounded in real street geometry."""

__version__ = "0.1.0"
