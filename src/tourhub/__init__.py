"""Tourhub booking platform backend: direct messaging and realtime delivery."""

__version__ = "0.1.0"
