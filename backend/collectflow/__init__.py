"""collectflow: collection-driven agent workflows."""

__version__ = "0.1.0"
