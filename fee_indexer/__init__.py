"""Incremental FeesCollected event indexer backed by sqlite."""

__version__ = "0.1.0"
