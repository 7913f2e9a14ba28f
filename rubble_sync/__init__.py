"""Offline-first synchronization engine for field hazard reports."""

__version__ = "1.0.0"
