"""
Repository layer - Data access abstractions.

Resolves EAV entities and builds queries against the value store,
hiding the SQLAlchemy mapping from the callers.
"""

from .data_repository import DataRepository

__all__ = ["DataRepository"]
