"""
Query builders translating attribute conditions into value store queries.
"""

from .eav_query_builder import AttributeQueryBuilder, Condition, EAVQueryBuilder
from .family_query_builder import SingleFamilyQueryBuilder

__all__ = [
    "AttributeQueryBuilder",
    "Condition",
    "EAVQueryBuilder",
    "SingleFamilyQueryBuilder",
]
