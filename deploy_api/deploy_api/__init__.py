"""HTTP binding of a content-deploy node."""

__version__ = "0.1.0"
