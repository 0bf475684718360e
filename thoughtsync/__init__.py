"""Offline-first capture queue reconciled against one remote endpoint."""

__version__ = "0.1.0"
