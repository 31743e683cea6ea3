"""
Repository for EAV entities.

Resolves entities by business identifier, unique attribute or primary key,
returns family singletons and exposes query builder factories.

Every single-result lookup accepts ``partial_load``: when set, only the
entity's own columns are loaded and its value collection is left unloaded.
"""

from typing import Any, Dict, Iterable, List, Optional, Type, Union

import structlog
from sqlalchemy import and_, inspect
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Query, Session, aliased, joinedload, lazyload
from sqlalchemy.orm.exc import MultipleResultsFound

from ..config import settings
from ..domain.entities import Attribute, Family
from ..domain.exceptions import (MissingIdentifierAttributeException,
                                 MissingLabelAttributeException,
                                 NonUniqueAttributeException,
                                 NonUniqueResultException,
                                 NotSingletonException)
from ..metrics import (eav_integrity_violations_total,
                       eav_lookup_duration_seconds, track_lookup,
                       track_lookup_error)
from ..models import Data, Value
from ..query.eav_query_builder import EAVQueryBuilder, normalize_value
from ..query.family_query_builder import SingleFamilyQueryBuilder

logger = structlog.get_logger(__name__)


class DataRepository:
    """Read-path repository for Data entities and their values."""

    def __init__(self, db: Session, model: Type[Data] = Data):
        """
        Initialize repository.

        Args:
            db: SQLAlchemy database session, its identity map is reused
                between lookups
            model: Mapped entity class queried by this repository
        """
        self.db = db
        self.model = model

    def find_by_identifier(
        self,
        family: Family,
        reference: Any,
        id_fallback: bool = False,
        partial_load: bool = False,
    ) -> Optional[Data]:
        """
        Find data based on its family identifier.

        Args:
            family: Family of the entity
            reference: Identifier value, or primary key when falling back
            id_fallback: Use the primary key if the family has no identifier attribute
            partial_load: Skip loading the value collection

        Returns:
            The entity, or None if nothing matches

        Raises:
            MissingIdentifierAttributeException: If the family has no identifier
                attribute and ``id_fallback`` is False
            NonUniqueResultException: If several entities share the identifier
        """
        identifier_attribute = family.attribute_as_identifier
        if identifier_attribute is None:
            if not id_fallback:
                raise MissingIdentifierAttributeException(family.code)

            return self.find_by_primary_key(family, reference, partial_load)

        return self.find_by_unique_attribute(
            family, identifier_attribute, reference, partial_load
        )

    def find_by_unique_attribute(
        self,
        family: Family,
        attribute: Attribute,
        reference: Any,
        partial_load: bool = False,
    ) -> Optional[Data]:
        """
        Find data based on a unique attribute.

        Raises:
            NonUniqueAttributeException: If the attribute is not unique
            NonUniqueResultException: If several entities hold the value
        """
        if not attribute.unique:
            raise NonUniqueAttributeException(attribute.code)

        reference = normalize_value(attribute.type, reference)
        if reference is None:
            track_lookup("unique_attribute", False)
            return None

        entity = aliased(self.model, name="e")
        identifier = aliased(Value, name="identifier")
        query = (
            self.db.query(entity)
            .join(
                identifier,
                and_(
                    identifier.data_id == entity.id,
                    identifier.attribute_code == attribute.code,
                    getattr(identifier, attribute.type.database_type) == reference,
                ),
            )
            .filter(entity.family_code == family.code)
        )
        criteria = {
            "family": family.code,
            "attribute": attribute.code,
            "reference": reference,
        }
        logger.debug(
            "Finding data by unique attribute", partial_load=partial_load, **criteria
        )

        if partial_load:
            return self._execute_with_partial_load(
                query, entity, "unique_attribute", criteria, family
            )

        query = query.options(joinedload(entity.values))
        return self._get_one_or_none(query, "unique_attribute", criteria, family)

    def find_by_primary_key(
        self, family: Family, reference: Any, partial_load: bool = False
    ) -> Optional[Data]:
        """
        Find data by its primary key, restricted to the given family.

        Mapping errors on the family's data class propagate unchanged.
        """
        identifier_column = self.get_pk_column(family)

        return self.find_by_identifier_column(
            family, identifier_column, reference, partial_load
        )

    def find_by_identifier_column(
        self,
        family: Family,
        identifier_column: str,
        reference: Any,
        partial_load: bool = False,
    ) -> Optional[Data]:
        """
        Find data based on an identifier column of the entity table.

        Full loads of the primary key go through the session identity map,
        so an entity already loaded in this session is returned without a query.
        """
        criteria = {
            "family": family.code,
            "column": identifier_column,
            "reference": reference,
        }
        logger.debug("Finding data by column", partial_load=partial_load, **criteria)

        if reference is None:
            track_lookup("identifier_column", False)
            return None

        if not partial_load:
            if identifier_column == self.get_pk_column(family):
                result = self.db.get(self.model, reference)
                if result is not None and result.family_code != family.code:
                    result = None
            else:
                result = (
                    self.db.query(self.model)
                    .filter_by(**{identifier_column: reference, "family_code": family.code})
                    .first()
                )
            track_lookup("identifier_column", result is not None)
            return self._attach(result, family)

        entity = aliased(self.model, name="e")
        query = self.db.query(entity).filter(
            getattr(entity, identifier_column) == reference,
            entity.family_code == family.code,
        )

        return self._execute_with_partial_load(
            query, entity, "identifier_column", criteria, family
        )

    def find_by_identifiers(
        self, family: Family, references: Iterable[Any], partial_load: bool = False
    ) -> List[Data]:
        """
        Find all entities of a family matching one of the references.

        Uses the identifier attribute when the family declares one, the
        primary key otherwise.
        """
        references = [r for r in references if r is not None]
        if not references:
            return []

        entity = aliased(self.model, name="e")
        query = self.db.query(entity).filter(entity.family_code == family.code)
        identifier_attribute = family.attribute_as_identifier
        if identifier_attribute is None:
            column = getattr(entity, self.get_pk_column(family))
            query = query.filter(column.in_(references))
        else:
            column = getattr(Value, identifier_attribute.type.database_type)
            references = [
                normalize_value(identifier_attribute.type, r) for r in references
            ]
            query = query.filter(
                entity.values.any(
                    and_(
                        Value.attribute_code == identifier_attribute.code,
                        column.in_(references),
                    )
                )
            )

        if partial_load:
            query = query.options(lazyload(entity.values))
        else:
            query = query.options(joinedload(entity.values))

        results = query.order_by(entity.id).all()
        for result in results:
            self._attach(result, family)
        return results

    def get_instance(self, family: Family) -> Data:
        """
        Return the singleton entity of a family.

        When no entity is stored yet, a new transient entity of the family's
        data class is returned. Persisting it is left to the caller.

        Raises:
            NotSingletonException: If the family is not a singleton
            NonUniqueResultException: If several entities exist for the family
        """
        if not family.is_singleton():
            raise NotSingletonException(family.code)

        entity = aliased(self.model, name="e")
        query = (
            self.db.query(entity)
            .filter(entity.family_code == family.code)
            .options(joinedload(entity.values))
        )

        instance = self._get_one_or_none(
            query, "singleton", {"family": family.code}, family
        )
        if instance is None:
            logger.debug("Creating transient singleton", family=family.code)
            instance = family.data_class(family)

        return instance

    def create_query_builder(
        self, alias: Optional[str] = None, index_by: Optional[str] = None
    ) -> Query:
        """
        Create a query on the repository's entity, aliased as ``alias``.

        ``index_by`` is carried by the query and used by ``fetch_all``.
        """
        entity = aliased(self.model, name=alias or settings.DEFAULT_ALIAS)
        query = self.db.query(entity)
        if index_by:
            query = query.execution_options(index_by=index_by)
        return query

    def create_optimized_query_builder(
        self,
        alias: Optional[str] = None,
        index_by: Optional[str] = None,
        query: Optional[Query] = None,
    ) -> Query:
        """
        Create a query that eagerly loads the value collection of each entity.

        Args:
            alias: Alias of the entity
            index_by: Entity attribute used as key by ``fetch_all``
            query: Existing query to augment instead of creating one

        Returns:
            Query with the values left-joined and selected
        """
        if query is None:
            query = self.create_query_builder(alias, index_by)
        elif index_by:
            query = query.execution_options(index_by=index_by)

        entity = query.column_descriptions[0]["entity"]
        return query.options(joinedload(entity.values))

    def create_family_query_builder(
        self, family: Family, alias: Optional[str] = None
    ) -> SingleFamilyQueryBuilder:
        """Returns a query builder restricted to one family."""
        alias = alias or settings.DEFAULT_ALIAS
        return SingleFamilyQueryBuilder(family, self.create_query_builder(alias), alias)

    def create_eav_query_builder(self, alias: Optional[str] = None) -> EAVQueryBuilder:
        """Returns a query builder for conditions spanning several families."""
        alias = alias or settings.DEFAULT_ALIAS
        return EAVQueryBuilder(self.create_query_builder(alias), alias)

    def get_qb_for_families_and_label(self, families: Iterable[Family], term: str) -> Query:
        """
        Query entities of the given families whose label contains ``term``.

        A term holding a ``%`` wildcard is used as the LIKE pattern as given.
        Families labelled by a relation or embedded attribute are left out
        of the search.

        Raises:
            MissingLabelAttributeException: If a family has no label attribute
        """
        eav_qb = self.create_eav_query_builder()
        or_conditions = []
        for family in families:
            attribute = family.attribute_as_label
            if attribute is None:
                raise MissingLabelAttributeException(family.code)
            if attribute.type.is_relation or attribute.type.is_embedded:
                logger.debug(
                    "Skipping relational label attribute",
                    family=family.code,
                    attribute=attribute.code,
                )
                continue
            or_conditions.append(
                eav_qb.attribute(attribute).like(self._like_term(term), escape="\\")
            )

        return eav_qb.apply(eav_qb.get_or(or_conditions))

    def get_qb_for_families_and_identifier(
        self, families: Iterable[Family], term: str
    ) -> Query:
        """
        Query entities of the given families whose identifier contains ``term``.

        Families identified by a relation or embedded attribute are left out
        of the search.

        Raises:
            MissingIdentifierAttributeException: If a family has no identifier attribute
        """
        eav_qb = self.create_eav_query_builder()
        or_conditions = []
        for family in families:
            identifier_attribute = family.attribute_as_identifier
            if identifier_attribute is None:
                raise MissingIdentifierAttributeException(family.code)
            attribute_type = identifier_attribute.type
            if attribute_type.is_relation or attribute_type.is_embedded:
                logger.debug(
                    "Skipping relational identifier attribute",
                    family=family.code,
                    attribute=identifier_attribute.code,
                )
                continue
            or_conditions.append(
                eav_qb.attribute(identifier_attribute).like(
                    self._like_term(term), escape="\\"
                )
            )

        return eav_qb.apply(eav_qb.get_or(or_conditions))

    def load_full_entity(self, data_id: Any) -> Optional[Data]:
        """
        Load an entity with its values, their associated entities and the
        values of those entities.
        """
        query = self.create_optimized_query_builder("e")
        entity = query.column_descriptions[0]["entity"]
        query = query.options(
            joinedload(entity.values)
            .joinedload(Value.data_value)
            .joinedload(Data.values)
        ).filter(entity.id == data_id)

        return self._get_one_or_none(query, "full_entity", {"id": data_id})

    def fetch_eav_associations(self, data: Data) -> List[Data]:
        """Entities holding a value that references ``data``, fully hydrated."""
        if data.id is None:
            return []
        query = self.create_optimized_query_builder("e")
        entity = query.column_descriptions[0]["entity"]
        query = query.filter(entity.values.any(Value.data_value_id == data.id))

        return query.order_by(entity.id).all()

    def fetch_referenced_data(self, data: Data) -> List[Data]:
        """Entities referenced by the values of ``data``, fully hydrated."""
        if data.id is None:
            return []
        query = self.create_optimized_query_builder("e")
        entity = query.column_descriptions[0]["entity"]
        query = query.filter(entity.referer_values.any(Value.data_id == data.id))

        return query.order_by(entity.id).all()

    def fetch_all(self, query: Query) -> Union[List[Data], Dict[Any, Data]]:
        """
        Execute a query built by this repository.

        Returns:
            A list of entities, or a dict keyed by the ``index_by`` attribute
            the query was created with
        """
        results = query.all()
        index_by = query.get_execution_options().get("index_by")
        if index_by:
            return {getattr(result, index_by): result for result in results}
        return results

    def get_pk_column(self, family: Family) -> str:
        """
        Name of the primary key attribute of the family's data class.

        Raises:
            sqlalchemy.exc.NoInspectionAvailable: If the class is not mapped
            sqlalchemy.exc.ArgumentError: If the primary key is composite
        """
        mapper = inspect(family.data_class)
        if len(mapper.primary_key) != 1:
            raise ArgumentError(
                f"Class {mapper.class_.__name__} has a composite primary key"
            )
        return mapper.get_property_by_column(mapper.primary_key[0]).key

    def _execute_with_partial_load(
        self,
        query: Query,
        entity,
        strategy: str,
        criteria: dict,
        family: Optional[Family] = None,
    ) -> Optional[Data]:
        query = query.options(lazyload(entity.values))
        return self._get_one_or_none(query, strategy, criteria, family)

    def _get_one_or_none(
        self,
        query: Query,
        strategy: str,
        criteria: dict,
        family: Optional[Family] = None,
    ) -> Optional[Data]:
        try:
            with eav_lookup_duration_seconds.labels(strategy=strategy).time():
                result = query.one_or_none()
        except MultipleResultsFound as e:
            eav_integrity_violations_total.inc()
            track_lookup_error(strategy)
            logger.warning(
                "Non-unique result for single-result query", strategy=strategy, **criteria
            )
            raise NonUniqueResultException(self.model.__name__, criteria) from e

        track_lookup(strategy, result is not None)
        return self._attach(result, family)

    @staticmethod
    def _attach(result: Optional[Data], family: Optional[Family]) -> Optional[Data]:
        if result is not None and family is not None and result.family is None:
            result.attach_family(family)
        return result

    @staticmethod
    def _like_term(term: str) -> str:
        """Terms without a wildcard match as a substring, literally."""
        if "%" in term:
            return term
        escaped = term.replace("\\", "\\\\").replace("_", "\\_")
        return f"%{escaped}%"
