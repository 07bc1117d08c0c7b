"""Tests for attribute/column mapping and JSON column handling."""

from __future__ import annotations

import json

import pytest

from layerstore.core.errors import InvalidConditionShapeError, UnknownAttributeError
from layerstore.persistence.conditions import Condition
from layerstore.persistence.entity import Entity
from layerstore.persistence.mapper import Mapper
from layerstore.persistence.schema import AttributeSchema
from tests._support.models import MEMBERSHIPS, USERS, Membership, User


class Address(Entity):
    attributes = ("street", "city")


@pytest.fixture
def mapper() -> Mapper:
    return Mapper(USERS)


class TestAttributesToColumns:
    def test_renames_and_skips_unknown(self, mapper: Mapper) -> None:
        assert mapper.attributes_to_columns({"fullName": "Ann", "nickname": "A"}) == {"full_name": "Ann"}

    def test_none_key_dropped(self, mapper: Mapper) -> None:
        assert mapper.attributes_to_columns({"id": None, "email": "a@example.com"}) == {"email": "a@example.com"}

    def test_nested_entity_uses_to_dict(self) -> None:
        schema = AttributeSchema(table="people", attributes={"id": "id", "address": "address"})
        columns = Mapper(schema).attributes_to_columns({"address": Address({"city": "Oslo"})})
        assert columns == {"address": {"street": None, "city": "Oslo"}}

    def test_nested_entity_uses_demapper(self) -> None:
        schema = AttributeSchema(
            table="people",
            attributes={"id": "id", "address": "address"},
            entity_demapper=lambda attr, entity: entity.get("city"),
        )
        assert Mapper(schema).attributes_to_columns({"address": Address({"city": "Oslo"})}) == {"address": "Oslo"}


class TestToColumns:
    def test_only_dirty_plus_key(self, mapper: Mapper) -> None:
        user = User({"id": 7, "email": "a@example.com", "fullName": "Ann"})
        user.fullName = "Ann Lee"
        assert mapper.to_columns(user) == {"full_name": "Ann Lee", "id": 7}

    def test_new_entity_has_no_key(self, mapper: Mapper) -> None:
        user = User()
        user.email = "a@example.com"
        assert mapper.to_columns(user) == {"email": "a@example.com"}

    def test_selected(self, mapper: Mapper) -> None:
        user = User({"id": 7})
        user.email = "b@example.com"
        user.fullName = "Bob"
        assert mapper.to_columns(user, ["email"]) == {"email": "b@example.com", "id": 7}

    def test_composite_key_always_present(self) -> None:
        member = Membership({"orgId": 1, "userId": 2})
        member.role = "admin"
        assert Mapper(MEMBERSHIPS).to_columns(member) == {"role": "admin", "org_id": 1, "user_id": 2}

    def test_custom_mapping_hook(self) -> None:
        def lower_email(columns: dict, entity: Entity) -> dict:
            return {**columns, "email": str(entity.get("email")).lower()}

        schema = AttributeSchema(
            table="users",
            attributes={"id": "id", "email": "email"},
            custom_mapping=lower_email,
        )
        user = User()
        user.email = "A@Example.com"
        assert Mapper(schema).to_columns(user) == {"email": "a@example.com"}

    def test_json_columns_encoded(self, mapper: Mapper) -> None:
        user = User()
        user.tags = ["a", "b"]
        user.settings = {"theme": "dark"}
        columns = mapper.to_columns(user)
        assert json.loads(columns["tags"]) == ["a", "b"]
        assert json.loads(columns["settings"]) == {"theme": "dark"}


class TestJsonColumns:
    def test_force_object_converts_top_level_list(self, mapper: Mapper) -> None:
        assert json.loads(mapper.encode_json_columns({"settings": ["en", "de"]})["settings"]) == {
            "0": "en",
            "1": "de",
        }
        assert mapper.encode_json_columns({"settings": []})["settings"] == "{}"

    def test_force_object_map_round_trips_with_nested_lists(self, mapper: Mapper) -> None:
        settings = {"tags": ["a", "b"], "extra": [], "nested": {"ids": [1, 2]}}
        decoded = mapper.decode_json_columns(mapper.encode_json_columns({"settings": settings}))
        assert decoded["settings"] == settings

    @pytest.mark.parametrize("value", [[], {"tags": []}, [1, [], {"a": []}], {}])
    def test_plain_column_keeps_shape(self, mapper: Mapper, value: object) -> None:
        decoded = mapper.decode_json_columns(mapper.encode_json_columns({"tags": value}))
        assert decoded["tags"] == value

    def test_strings_and_none_untouched(self, mapper: Mapper) -> None:
        encoded = mapper.encode_json_columns({"tags": '["x"]', "settings": None, "email": ["not json col"]})
        assert encoded == {"tags": '["x"]', "settings": None, "email": ["not json col"]}

    def test_specific_columns_only(self, mapper: Mapper) -> None:
        encoded = mapper.encode_json_columns({"tags": ["a"], "settings": {"a": 1}}, specific=["tags"])
        assert encoded["tags"] == '["a"]'
        assert encoded["settings"] == {"a": 1}

    def test_round_trip_force_object(self, mapper: Mapper) -> None:
        encoded = mapper.encode_json_columns({"settings": ["x", "y"]})
        decoded = mapper.decode_json_columns(encoded)
        assert decoded["settings"] == {"0": "x", "1": "y"}

    def test_non_json_text_left_raw(self, mapper: Mapper) -> None:
        row = {"tags": "legacy,comma,list", "settings": "{not json"}
        assert mapper.decode_json_columns(row) == row

    def test_scalar_json_text_left_raw(self, mapper: Mapper) -> None:
        assert mapper.decode_json_columns({"tags": "42"}) == {"tags": "42"}


class TestDemap:
    def test_demap_one(self, mapper: Mapper) -> None:
        row = {"id": 1, "full_name": "Ann", "tags": '["a"]', "created_at": "2024-01-01 00:00:00"}
        assert mapper.demap_one(row) == {"id": 1, "fullName": "Ann", "tags": ["a"]}

    def test_demap_one_none(self, mapper: Mapper) -> None:
        assert mapper.demap_one(None) is None

    def test_alias_overrides(self, mapper: Mapper) -> None:
        attrs = mapper.demap_one({"id": 1, "author_name": "Ann"}, {"author_name": "fullName"})
        assert attrs == {"id": 1, "fullName": "Ann"}

    def test_custom_demapping_sees_raw_row(self) -> None:
        schema = AttributeSchema(
            table="users",
            attributes={"id": "id", "email": "email"},
            custom_demapping=lambda attrs, row: {**attrs, "email": row["email"].upper()},
        )
        assert Mapper(schema).demap_one({"id": 1, "email": "a@x"}) == {"id": 1, "email": "A@X"}

    def test_demap_keyed(self, mapper: Mapper) -> None:
        rows = [{"id": 1, "email": "a@x"}, {"id": 2, "email": "b@x"}]
        keyed = mapper.demap(rows, "email")
        assert list(keyed) == ["a@x", "b@x"]
        assert keyed["b@x"]["id"] == 2

    def test_demap_list(self, mapper: Mapper) -> None:
        assert mapper.demap([{"id": 1}]) == [{"id": 1}]


class TestQueries:
    def test_flat_and_list_forms_map_identically(self, mapper: Mapper) -> None:
        assert mapper.map_conditions(["fullName", "like%", "A"]) == mapper.map_conditions(
            [["fullName", "like%", "A"]]
        )
        assert mapper.map_conditions(["fullName", "like%", "A"]) == [Condition("full_name", "like%", "A")]

    def test_unknown_attribute_in_condition(self, mapper: Mapper) -> None:
        with pytest.raises(UnknownAttributeError):
            mapper.map_conditions(["nickname", "x"])

    def test_malformed_condition(self, mapper: Mapper) -> None:
        with pytest.raises(InvalidConditionShapeError):
            mapper.map_conditions("email = 'x'")

    def test_order_by(self, mapper: Mapper) -> None:
        assert mapper.map_order_by(("fullName", "asc")) == {"column": "full_name", "direction": "asc"}
        assert mapper.map_order_by(None) == {}
