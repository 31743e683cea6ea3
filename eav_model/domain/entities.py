"""
Domain entities for dynamic schemas.

Families group attributes, attributes carry a type, and the type tells
which column of the value store holds their values.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Type

from .exceptions import MissingAttributeException, UnknownAttributeTypeException


class StorageType(str, Enum):
    """Kinds of storage columns available in the value store."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    STRING = "string"
    TEXT = "text"
    DATA = "data"
    EMBEDDED = "embedded"


# Value column holding each storage kind
STORAGE_COLUMNS = {
    StorageType.BOOLEAN: "bool_value",
    StorageType.INTEGER: "integer_value",
    StorageType.DECIMAL: "decimal_value",
    StorageType.DATE: "date_value",
    StorageType.DATETIME: "datetime_value",
    StorageType.STRING: "string_value",
    StorageType.TEXT: "text_value",
    StorageType.DATA: "data_value_id",
    StorageType.EMBEDDED: "data_value_id",
}


@dataclass(frozen=True)
class AttributeType:
    """
    Value object describing how an attribute is stored.

    Immutable so that types can be shared between attributes.
    """

    code: str
    storage_type: StorageType

    @property
    def database_type(self) -> str:
        """Name of the value column storing this type."""
        return STORAGE_COLUMNS[self.storage_type]

    @property
    def is_relation(self) -> bool:
        return self.storage_type is StorageType.DATA

    @property
    def is_embedded(self) -> bool:
        return self.storage_type is StorageType.EMBEDDED


ATTRIBUTE_TYPES: Dict[str, AttributeType] = {
    attribute_type.code: attribute_type
    for attribute_type in (
        AttributeType("string", StorageType.STRING),
        AttributeType("text", StorageType.TEXT),
        AttributeType("integer", StorageType.INTEGER),
        AttributeType("decimal", StorageType.DECIMAL),
        AttributeType("boolean", StorageType.BOOLEAN),
        AttributeType("date", StorageType.DATE),
        AttributeType("datetime", StorageType.DATETIME),
        AttributeType("data_selector", StorageType.DATA),
        AttributeType("embed", StorageType.EMBEDDED),
    )
}


def get_attribute_type(code: str) -> AttributeType:
    """
    Look up a built-in attribute type.

    Args:
        code: Attribute type code (e.g. 'string', 'data_selector')

    Returns:
        The registered attribute type

    Raises:
        UnknownAttributeTypeException: If no type is registered under this code
    """
    try:
        return ATTRIBUTE_TYPES[code]
    except KeyError:
        raise UnknownAttributeTypeException(code) from None


@dataclass
class Attribute:
    """
    A dynamic attribute declared by a family.

    Attributes:
        code: Code unique within the family
        type: Storage type of the attribute values
        unique: Whether a value can only be used by one entity of the family
        required: Whether entities must hold a value
        multiple: Whether entities can hold several values
        family_code: Code of the owning family, set when added to a family
    """

    code: str
    type: AttributeType
    unique: bool = False
    required: bool = False
    multiple: bool = False
    label: Optional[str] = None
    family_code: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = get_attribute_type(self.type)

    def __str__(self) -> str:
        return self.label or self.code


class Family:
    """
    A named dynamic schema.

    The identifier and label attributes are given by code and must be
    declared in ``attributes``. The identifier attribute is always unique.
    """

    def __init__(
        self,
        code: str,
        attributes: Iterable[Attribute] = (),
        attribute_as_identifier: Optional[str] = None,
        attribute_as_label: Optional[str] = None,
        singleton: bool = False,
        data_class: Optional[Type] = None,
        label: Optional[str] = None,
    ):
        self.code = code
        self.label = label
        self.singleton = singleton
        self._data_class = data_class
        self._attributes: Dict[str, Attribute] = {}
        for attribute in attributes:
            self.add_attribute(attribute)

        self._identifier_code = None
        self._label_code = None
        if attribute_as_identifier:
            identifier = self.get_attribute(attribute_as_identifier)
            if not identifier.unique:
                self._attributes[identifier.code] = replace(identifier, unique=True)
            self._identifier_code = identifier.code
        if attribute_as_label:
            self._label_code = self.get_attribute(attribute_as_label).code

    def __repr__(self) -> str:
        return f"Family({self.code!r})"

    def add_attribute(self, attribute: Attribute) -> Attribute:
        """
        Declare an attribute in this family.

        The attribute is copied, the given instance is left untouched.
        """
        attribute = replace(attribute, family_code=self.code)
        self._attributes[attribute.code] = attribute
        return attribute

    @property
    def attributes(self) -> List[Attribute]:
        return list(self._attributes.values())

    def has_attribute(self, code: str) -> bool:
        return code in self._attributes

    def get_attribute(self, code: str) -> Attribute:
        """
        Get an attribute by code.

        Raises:
            MissingAttributeException: If the family does not declare it
        """
        try:
            return self._attributes[code]
        except KeyError:
            raise MissingAttributeException(self.code, code) from None

    @property
    def attribute_as_identifier(self) -> Optional[Attribute]:
        if self._identifier_code is None:
            return None
        return self._attributes[self._identifier_code]

    @property
    def attribute_as_label(self) -> Optional[Attribute]:
        if self._label_code is None:
            return None
        return self._attributes[self._label_code]

    def is_singleton(self) -> bool:
        return self.singleton

    @property
    def data_class(self) -> Type:
        """Mapped class used to store entities of this family."""
        if self._data_class is None:
            from ..models import Data

            return Data
        return self._data_class


@dataclass
class FamilyDefinition:
    """Plain description of a family, as read from configuration files."""

    code: str
    attributes: Dict[str, dict] = field(default_factory=dict)
    attribute_as_identifier: Optional[str] = None
    attribute_as_label: Optional[str] = None
    singleton: bool = False

    def build(self) -> Family:
        attributes = []
        for code, options in self.attributes.items():
            options = dict(options)
            attribute_type = options.pop("type", "string")
            attributes.append(Attribute(code=code, type=attribute_type, **options))
        return Family(
            self.code,
            attributes,
            attribute_as_identifier=self.attribute_as_identifier,
            attribute_as_label=self.attribute_as_label,
            singleton=self.singleton,
        )
