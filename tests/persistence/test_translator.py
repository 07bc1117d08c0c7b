"""Tests for native driver error translation."""

from __future__ import annotations

import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError

from layerstore.core.errors import BackingStoreError, TranslatedConstraintError
from layerstore.persistence.schema import AttributeSchema, ErrorRule
from layerstore.persistence.translator import (
    COMMUNICATION_ERROR_MESSAGE,
    ErrorTranslator,
    native_error_code,
    native_error_message,
    unwrap_driver_error,
)
from tests._support.models import USERS, insert_user


class FakeMySQLError(Exception):
    """Shaped like PyMySQL errors: ``args == (code, message)``."""


class FakePgError(Exception):
    """Shaped like psycopg errors: SQLSTATE on ``pgcode``."""

    def __init__(self, message: str, pgcode: str) -> None:
        super().__init__(message)
        self.pgcode = pgcode


@pytest.fixture
def accounts() -> AttributeSchema:
    return AttributeSchema(
        table="accounts",
        attributes={"id": "id", "email": "email", "handle": "handle"},
        error_codes={
            1062: [
                ErrorRule("Email taken.", match="accounts.email", code="email_taken", fields={"email": "Taken."}),
                ErrorRule("Handle taken.", match="accounts.handle", code="handle_taken"),
            ],
            "23505": ErrorRule("Duplicate.", match="never-matches", code="duplicate"),
        },
    )


def unique_violation(db: sqlite3.Connection) -> sqlite3.IntegrityError:
    insert_user(db, "a@example.com")
    with pytest.raises(sqlite3.IntegrityError) as exc_info:
        insert_user(db, "a@example.com")
    return exc_info.value


class TestNativeIntrospection:
    def test_mysql_shape(self) -> None:
        exc = FakeMySQLError(1062, "Duplicate entry 'a' for key 'accounts.email'")
        assert native_error_code(exc) == 1062
        assert native_error_message(exc) == "Duplicate entry 'a' for key 'accounts.email'"

    def test_pgcode(self) -> None:
        assert native_error_code(FakePgError("dup", "23505")) == "23505"

    def test_no_code(self) -> None:
        assert native_error_code(RuntimeError("connection reset")) is None
        assert native_error_code(FakeMySQLError(True, "flag")) is None

    def test_unwrap_sqlalchemy(self) -> None:
        orig = FakeMySQLError(1062, "dup")
        wrapped = IntegrityError("INSERT ...", {}, orig)
        assert unwrap_driver_error(wrapped) is orig
        assert unwrap_driver_error(orig) is orig


class TestTranslate:
    def test_message_match_picks_rule(self, accounts: AttributeSchema) -> None:
        exc = FakeMySQLError(1062, "Duplicate entry 'x' for key 'accounts.handle'")
        error = ErrorTranslator(accounts).translate(exc, operation="store")
        assert isinstance(error, TranslatedConstraintError)
        assert error.code == "handle_taken"
        assert error.native_code == 1062
        assert error.context.table == "accounts"
        assert error.context.operation == "store"
        assert error.cause is exc

    def test_fields_and_status(self, accounts: AttributeSchema) -> None:
        exc = FakeMySQLError(1062, "Duplicate entry 'a' for key 'accounts.email'")
        error = ErrorTranslator(accounts).translate(exc)
        assert isinstance(error, TranslatedConstraintError)
        assert error.fields == {"email": "Taken."}
        assert error.status == 400

    def test_single_rule_ignores_match(self, accounts: AttributeSchema) -> None:
        error = ErrorTranslator(accounts).translate(FakePgError("duplicate key value", "23505"))
        assert isinstance(error, TranslatedConstraintError)
        assert error.code == "duplicate"

    def test_no_rule_matches(self, accounts: AttributeSchema) -> None:
        exc = FakeMySQLError(1062, "Duplicate entry for key 'accounts.other'")
        error = ErrorTranslator(accounts).translate(exc)
        assert type(error) is BackingStoreError
        assert error.native_code == 1062
        assert error.native_message == "Duplicate entry for key 'accounts.other'"

    def test_unregistered_code(self, accounts: AttributeSchema) -> None:
        error = ErrorTranslator(accounts).translate(FakeMySQLError(1213, "Deadlock found"))
        assert type(error) is BackingStoreError
        assert error.message == "Deadlock found"

    def test_common_table(self, accounts: AttributeSchema) -> None:
        error = ErrorTranslator(accounts).translate(FakeMySQLError(1049, "Unknown database 'shop'"))
        assert isinstance(error, TranslatedConstraintError)
        assert error.code == "unknown_database"

    def test_no_code_is_communication_error(self, accounts: AttributeSchema) -> None:
        error = ErrorTranslator(accounts).translate(RuntimeError("server has gone away"))
        assert type(error) is BackingStoreError
        assert error.message == COMMUNICATION_ERROR_MESSAGE
        assert error.native_message == "server has gone away"

    def test_sqlite_extended_code_falls_back_to_primary(self, db: sqlite3.Connection) -> None:
        exc = unique_violation(db)
        error = ErrorTranslator(USERS).translate(exc, operation="store")
        assert isinstance(error, TranslatedConstraintError)
        assert error.code == "email_taken"
        assert error.status == 409

    def test_sqlalchemy_wrapped_sqlite(self, db: sqlite3.Connection) -> None:
        exc = unique_violation(db)
        error = ErrorTranslator(USERS).translate(IntegrityError("INSERT ...", {}, exc))
        assert isinstance(error, TranslatedConstraintError)


class TestHandles:
    def test_default_driver_errors(self) -> None:
        translator = ErrorTranslator(USERS)
        assert translator.handles(sqlite3.OperationalError("x")) is True
        assert translator.handles(IntegrityError("x", {}, Exception("y"))) is True
        assert translator.handles(ValueError("x")) is False

    def test_custom_driver_errors(self) -> None:
        translator = ErrorTranslator(USERS, driver_errors=(FakeMySQLError,))
        assert translator.handles(FakeMySQLError(1, "x")) is True
