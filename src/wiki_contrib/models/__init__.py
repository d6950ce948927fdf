# src/wiki_contrib/models/__init__.py
"""SQLAlchemy models for the wiki contribution service."""

from .store_entry import StoreEntry

__all__ = ["StoreEntry"]
