"""
Test configuration and fixtures
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from eav_model.domain.entities import Attribute, Family
from eav_model.models import Base, Data
from eav_model.repositories.data_repository import DataRepository

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repository(db_session):
    return DataRepository(db_session)


@pytest.fixture
def category_family():
    return Family("Category", [Attribute("name", "string")], attribute_as_label="name")


@pytest.fixture
def product_family():
    return Family(
        "Product",
        [
            Attribute("sku", "string", unique=True),
            Attribute("name", "string"),
            Attribute("stock", "integer"),
            Attribute("tags", "string", multiple=True),
            Attribute("category", "data_selector"),
        ],
        attribute_as_identifier="sku",
        attribute_as_label="name",
    )


@pytest.fixture
def author_family():
    return Family(
        "Author",
        [Attribute("slug", "string", unique=True), Attribute("name", "string")],
        attribute_as_identifier="slug",
        attribute_as_label="name",
    )


@pytest.fixture
def settings_family():
    return Family("Settings", [Attribute("title", "string")], singleton=True)


@pytest.fixture
def page_family():
    return Family("Page", [Attribute("title", "string")], attribute_as_label="title")


@pytest.fixture
def gallery_family():
    return Family(
        "Gallery", [Attribute("cover", "data_selector")], attribute_as_label="cover"
    )


@pytest.fixture
def make_data(db_session):
    """Persist an entity of a family with the given attribute values"""

    def _make(family, **values):
        data = Data(family)
        for code, value in values.items():
            attribute = family.get_attribute(code)
            for item in value if isinstance(value, list) else [value]:
                data.add_value(attribute, item)
        db_session.add(data)
        db_session.commit()
        return data

    return _make
