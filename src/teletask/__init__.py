"""Asyncio client for the Teletask Central Unit TCP protocol."""

__version__ = "0.1.0"
