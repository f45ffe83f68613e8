"""Opt-in usage tracking pipeline for the codec CLI."""

__version__ = "0.3.0"
