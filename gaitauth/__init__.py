"""Gait-based continuous authentication for wrist-worn devices."""

__version__ = "1.0.0"
