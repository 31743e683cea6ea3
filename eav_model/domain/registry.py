"""
Family registry.

Keeps every family known to the application, indexed by code.
"""

from typing import Dict, Iterable, List, Mapping

import structlog

from .entities import Family, FamilyDefinition
from .exceptions import MissingFamilyException

logger = structlog.get_logger(__name__)


class FamilyRegistry:
    """In-memory index of families by code."""

    def __init__(self, families: Iterable[Family] = ()):
        self._families: Dict[str, Family] = {}
        for family in families:
            self.add_family(family)

    @classmethod
    def from_config(cls, config: Mapping[str, dict]) -> "FamilyRegistry":
        """
        Build a registry from a mapping of family code to family options.

        Example:
            FamilyRegistry.from_config({
                "Product": {
                    "attribute_as_identifier": "sku",
                    "attributes": {"sku": {"type": "string"}},
                },
            })
        """
        return cls(
            FamilyDefinition(code=code, **options).build()
            for code, options in config.items()
        )

    def add_family(self, family: Family) -> None:
        if family.code in self._families:
            logger.warning("Replacing registered family", family=family.code)
        self._families[family.code] = family

    def has_family(self, code: str) -> bool:
        return code in self._families

    def get_family(self, code: str) -> Family:
        """
        Get a family by code.

        Raises:
            MissingFamilyException: If no family is registered under this code
        """
        try:
            return self._families[code]
        except KeyError:
            raise MissingFamilyException(code) from None

    def get_families(self) -> List[Family]:
        return list(self._families.values())

    def get_family_codes(self) -> List[str]:
        return list(self._families)
