"""
Database models for the EAV value store.

This module defines the SQLAlchemy ORM models holding generic entities
(Data) and their dynamic attribute values (Value). Each Value row stores
one attribute value in the column matching the attribute's storage type.
"""

from typing import Any, List, Optional

from sqlalchemy import (Boolean, Column, Date, DateTime, ForeignKey, Index,
                        Integer, Numeric, String, Text)
from sqlalchemy.orm import declarative_base, reconstructor, relationship
from sqlalchemy.sql import func

from .domain.entities import STORAGE_COLUMNS, Attribute, StorageType

Base: Any = declarative_base()

RELATION_STORAGE_TYPES = (StorageType.DATA, StorageType.EMBEDDED)


class Data(Base):
    """
    Generic entity belonging to a family.

    Only the family code is stored as a fixed column, every other property
    lives in the ``values`` collection.

    Attributes:
        id: Primary key identifier
        family_code: Code of the family describing this entity
        values: Attribute values owned by this entity
        referer_values: Values of other entities pointing at this entity
        created_at: Timestamp of creation
        updated_at: Timestamp of last update
    """

    __tablename__ = "eav_data"

    id = Column(Integer, primary_key=True, index=True)
    family_code = Column(String(255), index=True, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    values = relationship(
        "Value",
        back_populates="data",
        foreign_keys="Value.data_id",
        cascade="all, delete-orphan",
        order_by=lambda: (Value.position, Value.id),
    )
    referer_values = relationship(
        "Value",
        back_populates="data_value",
        foreign_keys="Value.data_value_id",
    )

    def __init__(self, family=None, **kwargs):
        super().__init__(**kwargs)
        self._family = None
        if family is not None:
            self.family = family

    @reconstructor
    def _init_on_load(self):
        self._family = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.family_code}#{self.id}>"

    @property
    def family(self):
        """Family bound to this entity, if any was attached."""
        return self._family

    @family.setter
    def family(self, family) -> None:
        self._family = family
        self.family_code = family.code

    def attach_family(self, family) -> None:
        """Bind the family of a loaded entity without touching its columns."""
        if family.code != self.family_code:
            raise ValueError(
                f"Cannot attach family {family.code} to data of family {self.family_code}"
            )
        self._family = family

    def get_values(self, attribute_code: str) -> List["Value"]:
        return [value for value in self.values if value.attribute_code == attribute_code]

    def get_value(self, attribute_code: str) -> Optional["Value"]:
        values = self.get_values(attribute_code)
        return values[0] if values else None

    def get_value_data(self, attribute: Attribute) -> Any:
        """
        Get the stored value of a single-valued attribute.

        Returns:
            The stored value, or None if the entity holds no value
        """
        value = self.get_value(attribute.code)
        if value is None:
            return None
        return value.get_stored_value(attribute.type.storage_type)

    def get_values_data(self, attribute: Attribute) -> List[Any]:
        return [
            value.get_stored_value(attribute.type.storage_type)
            for value in self.get_values(attribute.code)
        ]

    def add_value(self, attribute: Attribute, stored_value: Any) -> "Value":
        """
        Append a value for an attribute.

        Args:
            attribute: Attribute receiving the value
            stored_value: Python value, or a Data instance for relations

        Returns:
            The new Value row, attached to this entity
        """
        value = Value(
            attribute_code=attribute.code,
            position=len(self.get_values(attribute.code)),
        )
        value.set_stored_value(attribute.type.storage_type, stored_value)
        self.values.append(value)
        return value

    def get_identifier(self) -> Any:
        """Business identifier when the family declares one, primary key otherwise."""
        if self.family is not None and self.family.attribute_as_identifier:
            return self.get_value_data(self.family.attribute_as_identifier)
        return self.id


class Value(Base):
    """
    One attribute value of an entity.

    Attributes:
        id: Primary key identifier
        data_id: Owning entity
        attribute_code: Code of the attribute this value belongs to
        position: Ordering of multi-valued attributes
        bool_value ... text_value: Typed storage columns, one used per row
        data_value_id: Entity referenced by relation and embedded attributes
    """

    __tablename__ = "eav_value"

    id = Column(Integer, primary_key=True, index=True)
    data_id = Column(
        Integer, ForeignKey("eav_data.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attribute_code = Column(String(255), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)

    # Typed storage columns
    bool_value = Column(Boolean, nullable=True)
    integer_value = Column(Integer, nullable=True)
    decimal_value = Column(Numeric(18, 6), nullable=True)
    date_value = Column(Date, nullable=True)
    datetime_value = Column(DateTime, nullable=True)
    string_value = Column(String(255), nullable=True)
    text_value = Column(Text, nullable=True)
    data_value_id = Column(
        Integer, ForeignKey("eav_data.id", ondelete="SET NULL"), nullable=True, index=True
    )

    data = relationship("Data", back_populates="values", foreign_keys=[data_id])
    data_value = relationship(
        "Data", back_populates="referer_values", foreign_keys=[data_value_id]
    )

    __table_args__ = (
        Index("idx_value_attribute_string", "attribute_code", "string_value"),
        Index("idx_value_attribute_integer", "attribute_code", "integer_value"),
        Index("idx_value_data_attribute", "data_id", "attribute_code"),
    )

    def __repr__(self) -> str:
        return f"<Value {self.attribute_code}#{self.id}>"

    def get_stored_value(self, storage_type: StorageType) -> Any:
        if storage_type in RELATION_STORAGE_TYPES:
            return self.data_value
        return getattr(self, STORAGE_COLUMNS[storage_type])

    def set_stored_value(self, storage_type: StorageType, stored_value: Any) -> None:
        if storage_type in RELATION_STORAGE_TYPES:
            if stored_value is None or isinstance(stored_value, Data):
                self.data_value = stored_value
            else:
                self.data_value_id = stored_value
            return
        setattr(self, STORAGE_COLUMNS[storage_type], stored_value)
