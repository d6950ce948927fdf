"""Anonymous wiki contribution service."""

__version__ = "0.1.0"
