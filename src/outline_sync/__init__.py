"""Outline import and reimport synchronisation for story planning files."""

__version__ = "0.4.0"
