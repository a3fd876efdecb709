"""Backup configuration, source-tree indexing and flat volume storage."""

__version__ = "0.1.0"