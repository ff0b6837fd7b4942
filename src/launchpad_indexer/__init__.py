"""Incremental indexer for launchpad bonding-curve campaigns."""

__version__ = "0.1.0"
