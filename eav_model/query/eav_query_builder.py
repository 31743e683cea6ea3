"""
EAV query builder.

Translates attribute-level conditions into conditions on the value store.
Every leaf condition is an EXISTS over the entity's values restricted to
one attribute code and compared on the column matching the attribute's
storage type. Values are always passed as bound parameters.
"""

from typing import Any, Iterable, Optional

from sqlalchemy import and_, false, not_, or_, true
from sqlalchemy.orm import Query, aliased
from sqlalchemy.sql.elements import ColumnElement

from ..domain.entities import Attribute, AttributeType
from ..domain.exceptions import UnsupportedAttributeTypeException
from ..models import Data, Value

ORDER_DIRECTIONS = ("asc", "desc")


def normalize_value(attribute_type: AttributeType, value: Any) -> Any:
    """Relation values can be given as entities, they are compared by id."""
    if (attribute_type.is_relation or attribute_type.is_embedded) and isinstance(
        value, Data
    ):
        return value.id
    return value


class Condition:
    """A composable condition produced by the EAV query builders."""

    def __init__(self, expression: ColumnElement):
        self.expression = expression

    def __repr__(self) -> str:
        return f"<Condition {self.expression}>"


class AttributeQueryBuilder:
    """Builds leaf conditions for a single attribute."""

    def __init__(self, eav_query_builder: "EAVQueryBuilder", attribute: Attribute):
        self.eav_query_builder = eav_query_builder
        self.attribute = attribute

    @property
    def column(self):
        """Value column storing this attribute."""
        return getattr(Value, self.attribute.type.database_type)

    def equals(self, value: Any) -> Condition:
        """Entities holding a value equal to ``value``, None equals nothing."""
        return self._exists(self._equal_to(value))

    def not_equals(self, value: Any) -> Condition:
        """Entities holding no value equal to ``value``."""
        return self._not_exists(self._equal_to(value))

    def in_(self, values: Iterable[Any]) -> Condition:
        return self._exists(self.column.in_([self._normalize(v) for v in values]))

    def not_in(self, values: Iterable[Any]) -> Condition:
        return self._not_exists(self.column.in_([self._normalize(v) for v in values]))

    def like(self, term: str, escape: Optional[str] = None) -> Condition:
        self._check_scalar("like")
        return self._exists(self.column.like(term, escape=escape))

    def not_like(self, term: str, escape: Optional[str] = None) -> Condition:
        self._check_scalar("not_like")
        return self._not_exists(self.column.like(term, escape=escape))

    def is_null(self) -> Condition:
        """Entities without any stored value for this attribute."""
        return self._not_exists(self.column.isnot(None))

    def is_not_null(self) -> Condition:
        return self._exists(self.column.isnot(None))

    def between(self, low: Any, high: Any) -> Condition:
        self._check_scalar("between")
        return self._exists(self.column.between(low, high))

    def gt(self, value: Any) -> Condition:
        self._check_scalar("gt")
        return self._exists(self.column > value)

    def gte(self, value: Any) -> Condition:
        self._check_scalar("gte")
        return self._exists(self.column >= value)

    def lt(self, value: Any) -> Condition:
        self._check_scalar("lt")
        return self._exists(self.column < value)

    def lte(self, value: Any) -> Condition:
        self._check_scalar("lte")
        return self._exists(self.column <= value)

    def _normalize(self, value: Any) -> Any:
        return normalize_value(self.attribute.type, value)

    def _equal_to(self, value: Any) -> ColumnElement:
        value = self._normalize(value)
        if value is None:
            return false()
        return self.column == value

    def _check_scalar(self, operation: str) -> None:
        attribute_type = self.attribute.type
        if attribute_type.is_relation or attribute_type.is_embedded:
            raise UnsupportedAttributeTypeException(
                self.attribute.code, operation, attribute_type.code
            )

    def _values_matching(self, expression: ColumnElement) -> ColumnElement:
        entity = self.eav_query_builder.entity
        return entity.values.any(
            and_(Value.attribute_code == self.attribute.code, expression)
        )

    def _exists(self, expression: ColumnElement) -> Condition:
        return Condition(
            self.eav_query_builder.scope(
                self.attribute, self._values_matching(expression)
            )
        )

    def _not_exists(self, expression: ColumnElement) -> Condition:
        return Condition(
            self.eav_query_builder.scope(
                self.attribute, not_(self._values_matching(expression))
            )
        )


class EAVQueryBuilder:
    """
    Builds queries on entities of any family.

    Each condition is scoped to the family of the attribute it was built
    from, so conditions on several families can be combined in one query.

    Example:
        eav_qb = repository.create_eav_query_builder()
        condition = eav_qb.get_or([
            eav_qb.attribute(product_name).like("%chair%"),
            eav_qb.attribute(author_name).like("%chair%"),
        ])
        results = eav_qb.apply(condition).all()
    """

    def __init__(self, query: Query, alias: str = "e"):
        self.query = query
        self.alias = alias
        self.entity = query.column_descriptions[0]["entity"]
        self._order_joins = 0

    def attribute(self, attribute: Attribute) -> AttributeQueryBuilder:
        return AttributeQueryBuilder(self, attribute)

    def scope(self, attribute: Attribute, expression: ColumnElement) -> ColumnElement:
        """Restrict a leaf expression to the attribute's family."""
        if attribute.family_code is None:
            return expression
        return and_(self.entity.family_code == attribute.family_code, expression)

    def get_and(self, conditions: Iterable[Condition]) -> Condition:
        """Conjunction of conditions, always true when empty."""
        expressions = [condition.expression for condition in conditions]
        if not expressions:
            return Condition(true())
        return Condition(and_(*expressions))

    def get_or(self, conditions: Iterable[Condition]) -> Condition:
        """Disjunction of conditions, always false when empty."""
        expressions = [condition.expression for condition in conditions]
        if not expressions:
            return Condition(false())
        return Condition(or_(*expressions))

    def apply(self, condition: Optional[Condition] = None) -> Query:
        """
        Attach a condition to the underlying query.

        Returns:
            The filtered SQLAlchemy query, also kept on the builder
        """
        if condition is not None:
            self.query = self.query.filter(condition.expression)
        return self.query

    def add_order_by(
        self, attribute: Attribute, direction: str = "asc"
    ) -> "EAVQueryBuilder":
        """
        Sort results on an attribute's stored value.

        Entities holding several values for the attribute appear once per value.
        """
        direction = direction.lower()
        if direction not in ORDER_DIRECTIONS:
            raise ValueError(f"Invalid order direction: {direction}")

        self._order_joins += 1
        value_alias = aliased(Value, name=f"{self.alias}_order_{self._order_joins}")
        column = getattr(value_alias, attribute.type.database_type)
        self.query = self.query.outerjoin(
            value_alias,
            and_(
                value_alias.data_id == self.entity.id,
                value_alias.attribute_code == attribute.code,
            ),
        ).order_by(column.asc() if direction == "asc" else column.desc())
        return self

