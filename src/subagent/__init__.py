"""Supervisor for an external CLI agent session."""

__version__ = "0.1.0"
