"""Raindrop.io companion client: local cache and sync engine."""

__version__ = "0.3.0"
