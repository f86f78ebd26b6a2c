"""Maui snorkel conditions: daily fusion of marine sources into one snapshot."""

__version__ = "0.1.0"
