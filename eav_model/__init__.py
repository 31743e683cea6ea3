"""
EAV model data-access layer.

Resolves dynamic attributes attached to generic entities (Data) grouped
into Families, and builds SQLAlchemy queries against the value store.
"""

__version__ = "0.1.0"
