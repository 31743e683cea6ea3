"""
Query builder scoped to a single family.
"""

from typing import Optional

from sqlalchemy.orm import Query
from sqlalchemy.sql.elements import ColumnElement

from ..domain.entities import Attribute, Family
from .eav_query_builder import AttributeQueryBuilder, Condition, EAVQueryBuilder


class SingleFamilyQueryBuilder(EAVQueryBuilder):
    """
    Builds queries on the entities of one family.

    The family filter is added once by ``apply`` instead of being repeated
    in every condition.
    """

    def __init__(self, family: Family, query: Query, alias: str = "e"):
        super().__init__(query, alias)
        self.family = family

    def attribute_by_code(self, attribute_code: str) -> AttributeQueryBuilder:
        """
        Start a condition on one of the family's attributes.

        Raises:
            MissingAttributeException: If the family does not declare the attribute
        """
        return self.attribute(self.family.get_attribute(attribute_code))

    def scope(self, attribute: Attribute, expression: ColumnElement) -> ColumnElement:
        return expression

    def apply(self, condition: Optional[Condition] = None) -> Query:
        self.query = self.query.filter(self.entity.family_code == self.family.code)
        return super().apply(condition)
