"""
Tests for the supporting infrastructure: configuration, logging, error
handling, repositories and the unit of work.
"""

import os
import tempfile
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from companion.application.api import create_profile
from companion.domain.schemas import ProfileCreationInput, validate_input
from companion.infrastructure.config import (
    AssessmentConfig,
    DatabaseConfig,
    get_settings,
    override_settings,
    reset_settings,
)
from companion.infrastructure.db import create_database_engine, is_database_configured
from companion.infrastructure.exceptions import (
    CompanionError,
    ConfigurationError,
    DatabaseError,
    ExportError,
    ProfileNotFoundError,
    ValidationError,
    create_user_friendly_error_message,
    handle_database_error,
    log_error_details,
)
from companion.infrastructure.logging import (
    LogContext,
    clear_context,
    context_filter,
    get_logger,
    set_context,
    setup_logging,
)
from companion.infrastructure.models import Base
from companion.infrastructure.repositories import ProfileRepo
from companion.infrastructure.uow import UnitOfWork


@pytest.fixture
def test_session():
    """Create an in-memory SQLite session for testing."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    yield session
    session.close()


class TestErrorHandling:
    """Test error types and user-friendly messages."""

    def test_validation_error_creation(self):
        error = ValidationError("test_field", "Test error message", "invalid_value")

        assert error.field == "test_field"
        assert "Test error message" in str(error)
        assert error.user_message is not None
        assert "field" in error.details

    def test_database_error_handling(self):
        from sqlalchemy.exc import IntegrityError as SQLIntegrityError

        original_error = SQLIntegrityError("statement", {}, Exception("UNIQUE constraint failed"))
        db_error = handle_database_error(original_error, "test_operation")

        assert "IntegrityError" in type(db_error).__name__
        assert "constraint" in db_error.user_message.lower()

    def test_generic_database_error(self):
        db_error = handle_database_error(Exception("disk I/O error"), "save")
        assert isinstance(db_error, DatabaseError)
        assert db_error.operation == "save"
        assert db_error.user_message == "A database error occurred. Please try again in a moment."

    def test_database_error_subclasses_keep_their_own_messages(self):
        conn_error = handle_database_error(Exception("connection refused"), "load")
        assert isinstance(conn_error, DatabaseError)
        assert "connect" in conn_error.user_message.lower()

        fk_error = handle_database_error(Exception("FOREIGN KEY constraint failed"), "save")
        assert "referenced record" in fk_error.user_message.lower()

        explicit = DatabaseError("boom", "save", user_message="Saving is paused.")
        assert explicit.user_message == "Saving is paused."

    def test_profile_not_found_message(self):
        error = ProfileNotFoundError(42)
        assert error.profile_id == 42
        assert "profile" in error.user_message.lower()
        assert isinstance(error, CompanionError)

    def test_export_and_configuration_errors(self):
        export_error = ExportError("bad format", export_format="csv")
        assert export_error.export_format == "csv"
        assert "export" in export_error.user_message.lower()

        config_error = ConfigurationError("bad model", config_key="scoring_model_version")
        assert config_error.config_key == "scoring_model_version"

    def test_user_friendly_error_messages(self):
        validation_error = ValidationError("name", "cannot be empty")
        friendly_msg = create_user_friendly_error_message(validation_error)

        assert "name" in friendly_msg.lower()

        generic_error = ValueError("Some technical error")
        friendly_msg = create_user_friendly_error_message(generic_error)

        assert "try again" in friendly_msg.lower()

    def test_log_error_details(self):
        details = log_error_details(ProfileNotFoundError(7), {"operation": "load"})
        assert details["error_type"] == "ProfileNotFoundError"
        assert details["context"] == {"operation": "load"}
        assert "user_message" in details


class TestLogging:
    """Test logging setup and helpers."""

    def test_logger_is_namespaced(self):
        logger = get_logger("test_module")

        assert logger.name == "companion.test_module"
        assert get_logger("companion.domain.services").name == "companion.domain.services"

    def test_logging_configuration(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, "test.log")
            setup_logging(level="DEBUG", log_file=log_file, structured=True)

            logger = get_logger("test")
            logger.info("Test message")

            assert os.path.exists(log_file)
            # reconfiguring closes the file handler before the directory goes away
            setup_logging(level="WARNING", enable_console=False)

    def test_context_logging(self):
        set_context(profile_id=123, request_id="abc")
        assert context_filter.context == {"profile_id": 123, "request_id": "abc"}

        clear_context()
        assert context_filter.context == {}

    def test_log_context_manager_restores(self):
        set_context(profile_id=1)
        with LogContext(profile_id=2, operation="save"):
            assert context_filter.context["profile_id"] == 2
        assert context_filter.context == {"profile_id": 1}
        clear_context()


class TestConfiguration:
    """Test centralized configuration management."""

    @pytest.fixture(autouse=True)
    def fresh_settings(self):
        reset_settings()
        yield
        reset_settings()

    def test_database_config_sqlite(self):
        config = DatabaseConfig(backend="sqlite", sqlite_path="./test.db")

        url = config.get_connection_url()
        assert url.startswith("sqlite:///")
        assert "test.db" in url

    def test_database_config_memory(self):
        config = DatabaseConfig(backend="sqlite", sqlite_path=":memory:")
        engine = create_database_engine(config)
        with engine.connect() as conn:
            assert conn.exec_driver_sql("select 1").scalar() == 1

    def test_database_config_mysql(self):
        config = DatabaseConfig(
            backend="mysql",
            mysql_host="localhost",
            mysql_user="test",
            mysql_password="pass",
            mysql_database="testdb",
        )

        url = config.get_connection_url()
        assert url.startswith("mysql+pymysql://")
        assert "test:pass@localhost" in url
        assert "testdb" in url

    def test_database_configuration_validation(self):
        with pytest.raises(ValueError):
            DatabaseConfig(backend="invalid")

        with pytest.raises(ValueError):
            DatabaseConfig(backend="mysql", mysql_host="localhost", mysql_user="", mysql_database="")

    def test_assessment_defaults(self):
        config = AssessmentConfig()
        assert config.auto_persist is True
        assert config.scoring_model_version == "da-2024.1"

    def test_settings_override(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "development")
        test_settings = override_settings(app_environment="testing")

        assert test_settings.app.environment == "testing"
        assert test_settings.is_testing()

    def test_settings_read_environment(self, monkeypatch):
        monkeypatch.setenv("ASSESSMENT_AUTO_PERSIST", "false")
        reset_settings()

        assert get_settings().assessment.auto_persist is False

    def test_debug_rejected_in_production(self):
        from companion.infrastructure.config import ApplicationConfig

        with pytest.raises(ValueError):
            ApplicationConfig(environment="production", debug=True)

    def test_environment_info(self):
        info = get_settings().get_environment_info()
        assert "environment" in info
        assert "version" in info
        assert info["features"]["data_export"] is True
        assert info["scoring_model_version"] == "da-2024.1"
        assert is_database_configured() is True


class TestRepositoryPatterns:
    """Test repository patterns and consistency."""

    def test_profile_repository_create(self, test_session):
        repo = ProfileRepo(test_session)

        profile = repo.create(name="  Primary  ", notes="notes", scoring_model_version="da-2024.1")

        assert profile.id is not None
        assert profile.name == "Primary"
        assert profile.created_at is not None

    def test_profile_repository_validation(self, test_session):
        repo = ProfileRepo(test_session)

        with pytest.raises(ValidationError):
            repo.create(name="", scoring_model_version="da-2024.1")

    def test_profile_repository_not_found(self, test_session):
        repo = ProfileRepo(test_session)

        with pytest.raises(ProfileNotFoundError):
            repo.get_by_id_required(999)

    def test_profile_list_newest_first(self, test_session):
        repo = ProfileRepo(test_session)
        first = repo.create(name="First", scoring_model_version="da-2024.1")
        second = repo.create(name="Second", scoring_model_version="da-2024.1")

        ids = [p.id for p in repo.list_all()]
        assert ids.index(second.id) < ids.index(first.id)
        assert repo.count() == 2

    def test_repository_error_handling(self, test_session):
        repo = ProfileRepo(test_session)

        with (
            patch.object(test_session, "add", side_effect=Exception("DB Error")),
            pytest.raises(DatabaseError),
        ):
            repo.create(name="Primary", scoring_model_version="da-2024.1")


class TestUnitOfWork:
    @pytest.fixture
    def session_factory(self):
        engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(engine)
        return sessionmaker(bind=engine, expire_on_commit=False)

    def test_commits_on_success(self, session_factory):
        with UnitOfWork(session_factory).begin() as s:
            create_profile(s, "Committed")

        with session_factory() as s:
            assert [p.name for p in ProfileRepo(s).list_all()] == ["Committed"]

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with UnitOfWork(session_factory).begin() as s:
                create_profile(s, "Discarded")
                raise RuntimeError("boom")

        with session_factory() as s:
            assert ProfileRepo(s).list_all() == []

    def test_sqlalchemy_errors_become_database_errors(self, session_factory):
        with pytest.raises(DatabaseError):
            with UnitOfWork(session_factory, "broken query").begin() as s:
                raise OperationalError("select", {}, Exception("no such table"))


class TestApplicationAPI:
    def test_create_profile_records_model_version(self, test_session):
        profile = create_profile(test_session, name="Primary")

        assert profile.name == "Primary"
        assert profile.scoring_model_version == "da-2024.1"

    def test_create_profile_invalid(self, test_session):
        with pytest.raises(ValidationError):
            create_profile(test_session, name="   ")


class TestIntegration:
    def test_end_to_end_validation(self):
        settings = get_settings()
        assert settings.app.environment in ["development", "testing", "production"]

        logger = get_logger("integration_test")
        logger.info("Integration test running")

        result = validate_input(ProfileCreationInput, {"name": "Integration Test"})
        assert result.success is True
