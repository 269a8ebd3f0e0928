"""Cluster content deployment: command dispatch, update pipeline and history."""

__version__ = "0.1.0"
