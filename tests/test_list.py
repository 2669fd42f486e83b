"""Tests for FieldList: stable keys, add/remove/move, item fields."""

import logging
from unittest.mock import Mock

import pytest

from formstore import FieldList, ListField, ValidateError, create_form


def _users(initial=("a", "b")):
    form = create_form(initial_values={"users": list(initial)})
    users = FieldList(form, "users").mount()
    items = [users.field(item.name).mount() for item in users.fields()]
    return form, users, items


class TestFields:
    def test_keys_follow_items(self):
        _, users, _ = _users()
        assert users.fields() == [ListField(name=0, key=0), ListField(name=1, key=1)]

    def test_item_fields_read_values(self):
        _, _, items = _users()
        assert [item.value for item in items] == ["a", "b"]
        assert items[1].get_name_path() == ["users", 1]

    def test_non_list_value_is_empty(self, caplog):
        form = create_form(initial_values={"users": "oops"})
        users = FieldList(form, "users").mount()
        with caplog.at_level(logging.WARNING, logger="formstore.field_list"):
            assert users.fields() == []
        assert "not an array type" in caplog.text

    def test_field_initial_value(self):
        form = create_form()
        users = FieldList(form, "users", initial_value=["x"]).mount()
        assert users.value == ["x"]


class TestOperations:
    def test_remove_keeps_remaining_key(self):
        form, users, _ = _users()
        before = users.fields()[1].key
        users.remove(0)
        assert form.get_fields_value() == {"users": ["b"]}
        assert users.fields() == [ListField(name=0, key=before)]

    def test_remove_many(self):
        form, users, _ = _users(("a", "b", "c"))
        users.remove([0, 2])
        assert form.get_field_value("users") == ["b"]
        assert [item.key for item in users.fields()] == [1]

    def test_add_appends_with_fresh_key(self):
        form, users, _ = _users()
        users.add("c")
        assert form.get_field_value("users") == ["a", "b", "c"]
        assert [item.key for item in users.fields()] == [0, 1, 2]

    def test_add_at_index(self):
        form, users, _ = _users()
        users.add("z", 0)
        assert form.get_field_value("users") == ["z", "a", "b"]
        assert [item.key for item in users.fields()] == [2, 0, 1]

    def test_add_bad_index_appends(self, caplog):
        form, users, _ = _users()
        with caplog.at_level(logging.WARNING, logger="formstore.field_list"):
            users.add("c", 9)
        assert form.get_field_value("users") == ["a", "b", "c"]
        assert "valid positive number" in caplog.text

    def test_move(self):
        form, users, _ = _users(("a", "b", "c"))
        users.move(0, 2)
        assert form.get_field_value("users") == ["b", "c", "a"]
        assert [item.key for item in users.fields()] == [1, 2, 0]

    def test_move_out_of_range_is_ignored(self):
        form, users, _ = _users()
        users.move(0, 5)
        assert form.get_field_value("users") == ["a", "b"]

    def test_operations_touch_the_list(self):
        _, users, _ = _users()
        users.add()
        assert users.meta.touched is True

    def test_renders_after_operation(self):
        form = create_form(initial_values={"users": []})
        render = Mock()
        users = FieldList(form, "users", on_render=render).mount()
        users.add("a")
        render.assert_called_with(users)

    def test_external_update_renders(self):
        form = create_form(initial_values={"users": []})
        render = Mock()
        FieldList(form, "users", on_render=render).mount()
        form.set_fields_value({"other": 1})
        render.assert_called()


class TestItems:
    def test_item_sub_field(self):
        form = create_form(initial_values={"users": [{"name": "a"}]})
        users = FieldList(form, "users").mount()
        name = users.field(0, "name").mount()
        name.on_change("b")
        assert form.get_fields_value() == {"users": [{"name": "b"}]}

    def test_get_key(self):
        _, users, _ = _users()
        users.fields()
        assert users.get_key(["users", 1, "name"]) == (1, ["name"])

    def test_item_unmount_keeps_list_value(self):
        form, users, items = _users()
        users.remove(1)
        items[1].unmount()
        assert form.get_field_value("users") == ["a"]

    def test_nested_list(self):
        form = create_form(initial_values={"groups": [{"tags": ["x"]}]})
        groups = FieldList(form, "groups").mount()
        tags = groups.sub_list(0, "tags").mount()
        tags.add("y")
        assert form.get_field_value(["groups", 0, "tags"]) == ["x", "y"]
        assert tags.field_entity.is_list_field() is True


class TestListRules:
    @pytest.mark.asyncio
    async def test_list_validator(self):
        async def at_least_one(rule, value):
            if not value:
                raise ValueError("At least one is required")

        form = create_form(initial_values={"users": []})
        FieldList(form, "users", rules=[{"validator": at_least_one}]).mount()
        with pytest.raises(ValidateError) as exc_info:
            await form.validate_fields()
        assert exc_info.value.error_fields[0].errors == ["At least one is required"]
