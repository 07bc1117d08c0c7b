"""Tests for the layerstore error taxonomy."""

from __future__ import annotations

import pytest

from layerstore.core.errors import (
    BackingStoreError,
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    InvalidConditionShapeError,
    LayerStoreError,
    MissingPrimaryKeyError,
    PersistenceValidationError,
    TranslatedConstraintError,
    UnknownAttributeError,
    UnsupportedOperationError,
    categorize_error,
)


class TestErrorContext:
    def test_to_dict_skips_none(self) -> None:
        ctx = ErrorContext(table="users", operation="store")
        assert ctx.to_dict() == {"table": "users", "operation": "store"}

    def test_metadata_merged(self) -> None:
        ctx = ErrorContext(attribute="email", metadata={"url": "x://"})
        assert ctx.to_dict() == {"attribute": "email", "url": "x://"}


class TestLayerStoreError:
    def test_default_category(self) -> None:
        assert LayerStoreError("boom").category == ErrorCategory.INTERNAL

    def test_with_context_is_fluent(self) -> None:
        err = BackingStoreError("failed").with_context(table="users", request_id="r1")
        assert isinstance(err, BackingStoreError)
        assert err.context.table == "users"
        assert err.context.metadata == {"request_id": "r1"}

    def test_cause_is_chained(self) -> None:
        cause = RuntimeError("driver")
        err = LayerStoreError("wrapped", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "driver"

    def test_repr(self) -> None:
        assert repr(ConfigError("bad url")) == "ConfigError('bad url', category=CONFIG)"


class TestValidationErrors:
    def test_categories(self) -> None:
        for err in (
            PersistenceValidationError("x"),
            MissingPrimaryKeyError("x"),
            InvalidConditionShapeError("x"),
            UnsupportedOperationError("x"),
        ):
            assert err.category == ErrorCategory.VALIDATION

    def test_unknown_attribute_is_attribute_error(self) -> None:
        err = UnknownAttributeError("nickname", owner="User")
        assert isinstance(err, AttributeError)
        assert err.message == "Unknown attribute 'nickname' on User"
        assert err.context.attribute == "nickname"

    def test_missing_primary_key_lists_missing(self) -> None:
        err = MissingPrimaryKeyError("no key", missing=["id"])
        assert err.to_dict()["missing"] == ["id"]

    def test_invalid_condition_keeps_condition(self) -> None:
        err = InvalidConditionShapeError("bad", condition=["a"])
        assert err.condition == ["a"]


class TestDatabaseErrors:
    def test_backing_store_defaults_native_message(self) -> None:
        err = BackingStoreError("disk I/O error", native_code=10)
        assert err.category == ErrorCategory.DATABASE
        assert err.native_message == "disk I/O error"
        assert err.to_dict()["native_code"] == 10

    def test_translated_constraint(self) -> None:
        err = TranslatedConstraintError(
            "Email taken.", code="email_taken", fields={"email": "Taken."}, status=409, native_code=19
        )
        assert isinstance(err, DatabaseError)
        data = err.to_dict()
        assert data["code"] == "email_taken"
        assert data["fields"] == {"email": "Taken."}
        assert data["status"] == 409


class TestCategorize:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (ConfigError("x"), ErrorCategory.CONFIG),
            (ValueError("x"), ErrorCategory.VALIDATION),
            (KeyError("x"), ErrorCategory.UNKNOWN),
        ],
    )
    def test_categorize(self, error: Exception, expected: ErrorCategory) -> None:
        assert categorize_error(error) == expected
