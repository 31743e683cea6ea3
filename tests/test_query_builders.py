"""
Tests for the EAV query builders.

Covers:
- Leaf conditions on every comparison
- Conjunction and disjunction
- Family scoping of the generic and single-family builders
- Ordering on attribute values
"""

import pytest

from eav_model.domain.entities import Attribute
from eav_model.domain.exceptions import (MissingAttributeException,
                                         UnsupportedAttributeTypeException)
from eav_model.models import Value
from eav_model.query import Condition, SingleFamilyQueryBuilder


@pytest.fixture
def products(product_family, category_family, make_data):
    furniture = make_data(category_family, name="Furniture")
    return {
        "furniture": furniture,
        "chair": make_data(
            product_family,
            sku="A1",
            name="Chair",
            stock=4,
            tags=["wood", "indoor"],
            category=furniture,
        ),
        "table": make_data(product_family, sku="A2", name="Table", stock=12, tags="wood"),
        "lamp": make_data(product_family, sku="A3", name="Lamp"),
    }


def ids(query):
    return sorted(result.id for result in query.all())


def expected(products, *names):
    return sorted(products[name].id for name in names)


class TestAttributeConditions:
    """Test leaf conditions built through a family query builder."""

    @pytest.fixture
    def family_qb(self, repository, product_family, products):
        return repository.create_family_query_builder(product_family)

    def test_equals(self, family_qb, products):
        condition = family_qb.attribute_by_code("name").equals("Chair")

        assert ids(family_qb.apply(condition)) == expected(products, "chair")

    def test_not_equals(self, family_qb, products):
        condition = family_qb.attribute_by_code("name").not_equals("Chair")

        assert ids(family_qb.apply(condition)) == expected(products, "table", "lamp")

    def test_equals_none_matches_nothing(self, family_qb, db_session, products):
        products["lamp"].values.append(Value(attribute_code="stock"))
        db_session.commit()

        equals = family_qb.attribute_by_code("stock").equals(None)
        not_equals = family_qb.attribute_by_code("stock").not_equals(None)

        assert family_qb.apply(equals).all() == []
        assert ids(family_qb.apply(not_equals)) == expected(
            products, "chair", "table", "lamp"
        )

    def test_in(self, family_qb, products):
        condition = family_qb.attribute_by_code("sku").in_(["A1", "A3", "A9"])

        assert ids(family_qb.apply(condition)) == expected(products, "chair", "lamp")

    def test_not_in(self, family_qb, products):
        condition = family_qb.attribute_by_code("sku").not_in(["A1", "A3"])

        assert ids(family_qb.apply(condition)) == expected(products, "table")

    def test_like(self, family_qb, products):
        condition = family_qb.attribute_by_code("name").like("%a%")

        assert ids(family_qb.apply(condition)) == expected(
            products, "chair", "table", "lamp"
        )

    def test_like_with_escape(self, family_qb, products):
        condition = family_qb.attribute_by_code("name").like("%a\\_%", escape="\\")

        assert family_qb.apply(condition).all() == []

    def test_not_like(self, family_qb, products):
        condition = family_qb.attribute_by_code("name").not_like("%ai%")

        assert ids(family_qb.apply(condition)) == expected(products, "table", "lamp")

    def test_multi_valued_attribute(self, family_qb, products):
        condition = family_qb.attribute_by_code("tags").equals("indoor")

        assert ids(family_qb.apply(condition)) == expected(products, "chair")

    def test_is_null(self, family_qb, products):
        condition = family_qb.attribute_by_code("stock").is_null()

        assert ids(family_qb.apply(condition)) == expected(products, "lamp")

    def test_is_not_null(self, family_qb, products):
        condition = family_qb.attribute_by_code("stock").is_not_null()

        assert ids(family_qb.apply(condition)) == expected(products, "chair", "table")

    @pytest.mark.parametrize(
        "operation,args,names",
        [
            ("gt", (4,), ("table",)),
            ("gte", (4,), ("chair", "table")),
            ("lt", (12,), ("chair",)),
            ("lte", (12,), ("chair", "table")),
            ("between", (5, 20), ("table",)),
        ],
    )
    def test_range_conditions(self, family_qb, products, operation, args, names):
        condition = getattr(family_qb.attribute_by_code("stock"), operation)(*args)

        assert ids(family_qb.apply(condition)) == expected(products, *names)

    def test_relation_equals_entity(self, family_qb, products):
        condition = family_qb.attribute_by_code("category").equals(products["furniture"])

        assert ids(family_qb.apply(condition)) == expected(products, "chair")

    @pytest.mark.parametrize("operation", ["like", "not_like", "gt", "lte"])
    def test_relation_rejects_scalar_comparisons(self, family_qb, operation):
        with pytest.raises(UnsupportedAttributeTypeException) as exc_info:
            getattr(family_qb.attribute_by_code("category"), operation)("x")

        assert exc_info.value.details["operation"] == operation

    def test_unknown_attribute(self, family_qb):
        with pytest.raises(MissingAttributeException):
            family_qb.attribute_by_code("color")

    def test_values_are_bound_parameters(self, family_qb):
        condition = family_qb.attribute_by_code("name").equals("x' OR '1'='1")
        compiled = condition.expression.compile()

        assert "x' OR '1'='1" in compiled.params.values()
        assert "OR '1'='1" not in str(compiled)


class TestComposition:
    """Test conjunction and disjunction of conditions."""

    def test_get_and(self, repository, product_family, products):
        family_qb = repository.create_family_query_builder(product_family)
        condition = family_qb.get_and(
            [
                family_qb.attribute_by_code("tags").equals("wood"),
                family_qb.attribute_by_code("stock").gt(5),
            ]
        )

        assert ids(family_qb.apply(condition)) == expected(products, "table")

    def test_get_or(self, repository, product_family, products):
        family_qb = repository.create_family_query_builder(product_family)
        condition = family_qb.get_or(
            [
                family_qb.attribute_by_code("name").equals("Lamp"),
                family_qb.attribute_by_code("stock").lt(5),
            ]
        )

        assert ids(family_qb.apply(condition)) == expected(products, "chair", "lamp")

    def test_nested_composition(self, repository, product_family, products):
        family_qb = repository.create_family_query_builder(product_family)
        condition = family_qb.get_and(
            [
                family_qb.attribute_by_code("tags").is_not_null(),
                family_qb.get_or(
                    [
                        family_qb.attribute_by_code("sku").equals("A1"),
                        family_qb.attribute_by_code("sku").equals("A3"),
                    ]
                ),
            ]
        )

        assert ids(family_qb.apply(condition)) == expected(products, "chair")

    def test_empty_or_matches_nothing(self, repository, products):
        eav_qb = repository.create_eav_query_builder()

        assert eav_qb.apply(eav_qb.get_or([])).all() == []

    def test_empty_and_matches_everything(self, repository, products):
        eav_qb = repository.create_eav_query_builder()

        assert len(eav_qb.apply(eav_qb.get_and([])).all()) == 4

    def test_conditions_are_wrapped(self, repository, product_family):
        eav_qb = repository.create_eav_query_builder()
        condition = eav_qb.attribute(product_family.get_attribute("sku")).equals("A1")

        assert isinstance(condition, Condition)
        assert isinstance(eav_qb.get_or([condition]), Condition)


class TestFamilyScoping:
    """Test family scoping of both builders."""

    def test_generic_builder_scopes_each_condition(
        self, repository, product_family, author_family, products, make_data
    ):
        author = make_data(author_family, slug="chair-maker", name="Chair")
        eav_qb = repository.create_eav_query_builder()
        condition = eav_qb.get_or(
            [
                eav_qb.attribute(product_family.get_attribute("sku")).equals("A2"),
                eav_qb.attribute(author_family.get_attribute("name")).equals("Chair"),
            ]
        )

        assert ids(eav_qb.apply(condition)) == sorted(
            [products["table"].id, author.id]
        )

    def test_generic_builder_without_family(self, repository, products, make_data):
        eav_qb = repository.create_eav_query_builder()
        name = Attribute("name", "string")

        assert ids(eav_qb.apply(eav_qb.attribute(name).like("%r%"))) == expected(
            products, "furniture", "chair"
        )

    def test_family_builder_filters_family(
        self, repository, category_family, products
    ):
        family_qb = repository.create_family_query_builder(category_family, "c")

        assert isinstance(family_qb, SingleFamilyQueryBuilder)
        assert family_qb.alias == "c"
        assert ids(family_qb.apply()) == expected(products, "furniture")

    def test_family_builder_with_foreign_attribute(
        self, repository, category_family, product_family, products
    ):
        family_qb = repository.create_family_query_builder(category_family)
        condition = family_qb.attribute(product_family.get_attribute("name")).equals(
            "Chair"
        )

        assert family_qb.apply(condition).all() == []


class TestOrdering:
    """Test ordering on attribute values."""

    def test_order_by_attribute(self, repository, product_family, products):
        family_qb = repository.create_family_query_builder(product_family)
        family_qb.add_order_by(product_family.get_attribute("name"), "desc")

        results = family_qb.apply().all()

        assert [r.id for r in results] == [
            products["table"].id,
            products["lamp"].id,
            products["chair"].id,
        ]

    def test_order_by_with_condition(self, repository, product_family, products):
        family_qb = repository.create_family_query_builder(product_family)
        condition = family_qb.attribute_by_code("stock").is_not_null()
        family_qb.add_order_by(product_family.get_attribute("stock"))

        results = family_qb.apply(condition).all()

        assert [r.id for r in results] == [products["chair"].id, products["table"].id]

    def test_invalid_direction(self, repository, product_family):
        family_qb = repository.create_family_query_builder(product_family)

        with pytest.raises(ValueError):
            family_qb.add_order_by(product_family.get_attribute("name"), "sideways")
