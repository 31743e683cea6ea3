"""
Tests for database configuration and initialization
"""

from unittest.mock import MagicMock, patch

from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

from eav_model import database
from eav_model.database import build_engine, get_connect_args, get_db, init_db


class TestDatabaseConfiguration:
    """Test database configuration"""

    def test_sqlite_connect_args(self):
        assert get_connect_args("sqlite:///:memory:") == {"check_same_thread": False}
        assert get_connect_args("postgresql://localhost/eav") == {}

    def test_build_engine(self):
        engine = build_engine("sqlite:///:memory:")

        assert engine.dialect.name == "sqlite"

    def test_init_db_creates_tables(self):
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        init_db(engine)

        table_names = inspect(engine).get_table_names()
        assert "eav_data" in table_names
        assert "eav_value" in table_names

    def test_init_db_is_idempotent(self):
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        init_db(engine)
        init_db(engine)

        assert len(inspect(engine).get_table_names()) == 2

    def test_get_db_closes_session(self):
        session = MagicMock()

        with patch.object(database, "SessionLocal", return_value=session):
            db_gen = get_db()
            assert next(db_gen) is session
            session.close.assert_not_called()

            for _ in db_gen:
                pass

        session.close.assert_called_once()

    def test_slow_query_is_logged(self):
        engine = build_engine("sqlite:///:memory:")

        with patch.object(database.settings, "QUERY_LOG_THRESHOLD_MS", -1), patch.object(
            database, "logger"
        ) as logger:
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")

        logger.warning.assert_called()
        assert logger.warning.call_args.kwargs["statement"] == "SELECT 1"
