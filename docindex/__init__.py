"""Embedding-indexed document pipeline."""

__version__ = "0.1.0"
