"""Retrieval and extraction engine for construction plan sheets."""

__version__ = "0.1.0"
