"""Hybrid reasoning router: configuration, errors and CLI."""

__version__ = "0.3.0"
