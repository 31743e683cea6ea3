"""
Custom exceptions for the EAV model.

Configuration errors signal a caller mistake and are never retried.
Integrity errors signal inconsistent rows in the value store. A lookup
that finds nothing returns None instead of raising.
"""

from typing import Optional


class EAVModelException(Exception):
    """Base exception for all EAV model errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationException(EAVModelException):
    """Raised when a family or attribute does not support the requested operation."""


class MissingIdentifierAttributeException(ConfigurationException):
    """Raised when a family has no identifier attribute and no fallback is allowed."""

    def __init__(self, family_code: str):
        super().__init__(
            message=(
                "Cannot find data with no identifier attribute "
                f"for family: '{family_code}'"
            ),
            details={"family": family_code},
        )


class MissingLabelAttributeException(ConfigurationException):
    """Raised when a family has no label attribute."""

    def __init__(self, family_code: str):
        super().__init__(
            message=f"Family {family_code} does not have an attribute as label",
            details={"family": family_code},
        )


class NonUniqueAttributeException(ConfigurationException):
    """Raised when a unique lookup is requested on a non-unique attribute."""

    def __init__(self, attribute_code: str):
        super().__init__(
            message=f"Cannot find data based on a non-unique attribute '{attribute_code}'",
            details={"attribute": attribute_code},
        )


class NotSingletonException(ConfigurationException):
    """Raised when a singleton operation is requested on a regular family."""

    def __init__(self, family_code: str):
        super().__init__(
            message=f"Family {family_code} is not a singleton",
            details={"family": family_code},
        )


class MissingAttributeException(ConfigurationException):
    """Raised when an attribute code is not declared by a family."""

    def __init__(self, family_code: str, attribute_code: str):
        super().__init__(
            message=f"Unknown attribute '{attribute_code}' in family {family_code}",
            details={"family": family_code, "attribute": attribute_code},
        )


class MissingFamilyException(ConfigurationException):
    """Raised when a family code is not registered."""

    def __init__(self, family_code: str):
        super().__init__(
            message=f"No family with code: '{family_code}'",
            details={"family": family_code},
        )


class UnknownAttributeTypeException(ConfigurationException):
    """Raised when an attribute type code is not registered."""

    def __init__(self, type_code: str):
        super().__init__(
            message=f"Unknown attribute type: '{type_code}'",
            details={"type": type_code},
        )


class UnsupportedAttributeTypeException(ConfigurationException):
    """Raised when a comparison does not apply to an attribute's storage type."""

    def __init__(self, attribute_code: str, operation: str, type_code: str):
        super().__init__(
            message=(
                f"Cannot use '{operation}' on attribute '{attribute_code}' "
                f"of type {type_code}"
            ),
            details={
                "attribute": attribute_code,
                "operation": operation,
                "type": type_code,
            },
        )


class DataIntegrityException(EAVModelException):
    """Raised when data integrity constraints are violated."""

    def __init__(self, entity: str, reason: str):
        message = f"Data integrity error for {entity}: {reason}"
        super().__init__(message=message, details={"entity": entity, "reason": reason})


class NonUniqueResultException(DataIntegrityException):
    """Raised when a single-result query matches more than one entity."""

    def __init__(self, entity: str, criteria: Optional[dict] = None):
        super().__init__(entity, "query returned more than one result")
        self.details["criteria"] = criteria or {}
