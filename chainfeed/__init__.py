"""Deduplicated on-chain activity feeds for a single principal."""

__version__ = "0.1.0"
