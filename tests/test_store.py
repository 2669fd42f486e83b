"""Tests for FormStore: registry, reads, writes, notifications, validation."""

import asyncio
import logging
from unittest.mock import Mock

import pytest

from formstore import Field, FormStore, ValidateError, create_form
from formstore.context import HOOK_MARK
from formstore.rules import Rule


def _store_form(**kwargs):
    store = FormStore(**kwargs)
    return store, store.get_form()


class TestInternalHooks:
    def test_wrong_key_returns_none(self, caplog):
        _, form = _store_form()
        with caplog.at_level(logging.WARNING, logger="formstore.store"):
            assert form.get_internal_hooks("guess") is None
        assert "internal usage" in caplog.text

    def test_mark_unlocks_hooks(self):
        store, form = _store_form()
        hooks = form.get_internal_hooks(HOOK_MARK)
        assert hooks.get_form_store() is store


class TestRegistration:
    def test_field_initial_value_seeds_store(self):
        _, form = _store_form()
        Field(form, "a", initial_value="x").mount()
        assert form.get_field_value("a") == "x"

    def test_existing_value_is_kept(self):
        _, form = _store_form()
        form.set_fields_value({"a": "current"})
        Field(form, "a", initial_value="x").mount()
        assert form.get_field_value("a") == "current"

    def test_form_initial_value_wins(self, caplog):
        form = create_form(initial_values={"a": "form"})
        with caplog.at_level(logging.WARNING, logger="formstore.store"):
            Field(form, "a", initial_value="field").mount()
        assert form.get_field_value("a") == "form"
        assert "Field can not overwrite it" in caplog.text

    def test_multiple_initial_values_warn(self, caplog):
        _, form = _store_form()
        Field(form, "a", initial_value="one").mount()
        with caplog.at_level(logging.WARNING, logger="formstore.store"):
            Field(form, "a", initial_value="two").mount()
        assert form.get_field_value("a") == "one"
        assert "Multiple Field" in caplog.text


class TestUnregister:
    def test_default_preserves_value(self):
        _, form = _store_form()
        field = Field(form, "x").mount()
        form.set_field_value("x", "v")
        field.unmount()
        assert form.get_field_value("x") == "v"

    def test_no_preserve_resets_to_undefined(self):
        _, form = _store_form()
        field = Field(form, "x", preserve=False).mount()
        form.set_field_value("x", "v")
        field.unmount()
        assert form.get_field_value("x") is None
        assert "x" not in form.get_fields_value(True)

    def test_no_preserve_resets_to_initial(self):
        form = create_form(initial_values={"x": "init"})
        field = Field(form, "x", preserve=False).mount()
        form.set_field_value("x", "v")
        field.unmount()
        assert form.get_field_value("x") == "init"

    def test_form_level_preserve(self):
        form = create_form(preserve=False)
        field = Field(form, "x").mount()
        form.set_field_value("x", "v")
        field.unmount()
        assert form.get_field_value("x") is None

    def test_sibling_keeps_value(self):
        _, form = _store_form()
        first = Field(form, "x", preserve=False).mount()
        Field(form, "x", preserve=False).mount()
        form.set_field_value("x", "v")
        first.unmount()
        assert form.get_field_value("x") == "v"


class TestReads:
    def test_get_fields_value_only_registered(self):
        _, form = _store_form()
        Field(form, "a").mount()
        form.set_fields_value({"a": 1, "extra": 2})
        assert form.get_fields_value() == {"a": 1}
        assert form.get_fields_value(True) == {"a": 1, "extra": 2}

    def test_get_fields_value_by_paths(self):
        _, form = _store_form()
        form.set_fields_value({"a": {"b": 1, "c": 2}})
        assert form.get_fields_value([["a", "b"]]) == {"a": {"b": 1}}

    def test_filter_by_meta(self):
        _, form = _store_form()
        touched = Field(form, "a").mount()
        Field(form, "b").mount()
        touched.on_change(1)
        assert form.get_fields_value(None, lambda meta: meta.touched) == {"a": 1}

    def test_get_fields_error_unknown_path(self):
        _, form = _store_form()
        [error] = form.get_fields_error(["missing"])
        assert error.name == ["missing"]
        assert error.errors == []

    def test_is_fields_touched(self):
        _, form = _store_form()
        a = Field(form, "a").mount()
        Field(form, "b").mount()
        assert form.is_fields_touched() is False
        a.on_change(1)
        assert form.is_fields_touched() is True
        assert form.is_fields_touched(True) is False
        assert form.is_fields_touched(["a"]) is True
        assert form.is_fields_touched(["b"]) is False
        assert form.is_fields_touched(["a"], True) is True
        assert form.is_field_touched("a") is True


class TestWrites:
    def test_set_fields_patches_meta(self):
        _, form = _store_form()
        Field(form, "age").mount()
        form.set_fields([{"name": "age", "value": "2", "touched": False, "errors": ["bad"]}])
        assert form.get_field_value("age") == "2"
        assert form.get_field_error("age") == ["bad"]
        assert form.is_field_touched("age") is False

    def test_set_fields_validating(self):
        _, form = _store_form()
        Field(form, "age").mount()
        form.set_fields([{"name": "age", "validating": True}])
        assert form.is_field_validating("age") is True
        assert form.is_fields_validating() is True

    def test_set_field_value_clears_errors(self):
        _, form = _store_form()
        Field(form, "age").mount()
        form.set_fields([{"name": "age", "errors": ["bad"], "warnings": ["meh"]}])
        form.set_field_value("age", 3)
        assert form.get_field_error("age") == []
        assert form.get_field_warning("age") == []

    def test_set_fields_value_marks_touched(self):
        _, form = _store_form()
        Field(form, "a").mount()
        form.set_fields_value({"a": 1})
        assert form.is_field_touched("a") is True

    def test_set_fields_value_replaces_arrays(self):
        _, form = _store_form()
        form.set_fields_value({"list": [1, 2, 3]})
        form.set_fields_value({"list": [9]})
        assert form.get_field_value("list") == [9]

    def test_reset_fields(self):
        form = create_form(initial_values={"a": "init"})
        field = Field(form, "a").mount()
        field.on_change("changed")
        form.reset_fields()
        assert form.get_field_value("a") == "init"
        assert field.is_field_touched() is False

    def test_reset_named_fields(self):
        form = create_form(initial_values={"a": 1, "b": 2})
        Field(form, "a").mount()
        Field(form, "b").mount()
        form.set_fields_value({"a": 10, "b": 20})
        form.reset_fields(["a"])
        assert form.get_fields_value() == {"a": 1, "b": 20}

    def test_reset_restores_field_initial_value(self):
        _, form = _store_form()
        Field(form, "a", initial_value="seed").mount()
        form.set_field_value("a", "other")
        form.reset_fields()
        assert form.get_field_value("a") == "seed"


class TestCallbacks:
    def test_on_values_change(self):
        on_values_change = Mock()
        form = create_form(on_values_change=on_values_change)
        Field(form, "a").mount()
        Field(form, "b").mount()
        form.set_fields_value({"b": 2})
        Field(form, "a").mount().on_change(1)
        on_values_change.assert_called_once_with({"a": 1}, {"a": 1, "b": 2})

    def test_on_fields_change(self):
        on_fields_change = Mock()
        form = create_form(on_fields_change=on_fields_change)
        Field(form, "a").mount().on_change(1)
        changed, all_fields = on_fields_change.call_args.args
        assert [f["name"] for f in changed] == [["a"]]
        assert changed[0]["value"] == 1
        assert changed[0]["touched"] is True

    def test_force_root_update_when_not_subscribable(self):
        force = Mock()
        store, form = _store_form(force_root_update=force)
        render = Mock()
        Field(form, "a", on_render=render).mount()
        store.use_subscribe(False)
        form.set_field_value("a", 1)
        force.assert_called_once()
        render.assert_not_called()


class TestValidateFields:
    @pytest.mark.asyncio
    async def test_resolves_with_values(self):
        _, form = _store_form()
        Field(form, "a", rules=[{"required": True}]).mount()
        form.set_fields_value({"a": "ok"})
        assert await form.validate_fields() == {"a": "ok"}

    @pytest.mark.asyncio
    async def test_raises_with_error_fields(self):
        _, form = _store_form()
        Field(form, "a", rules=[{"required": True}]).mount()
        Field(form, "b").mount()
        with pytest.raises(ValidateError) as exc_info:
            await form.validate_fields()
        error = exc_info.value
        assert [f.name for f in error.error_fields] == [["a"]]
        assert error.error_fields[0].errors == ["'a' is required"]
        assert error.values == {"a": None, "b": None}
        assert error.out_of_date is False
        assert form.get_field_error("a") == ["'a' is required"]

    @pytest.mark.asyncio
    async def test_failing_rule_check_becomes_error(self):
        def boom(value):
            raise ValueError("transform boom")

        _, form = _store_form()
        Field(form, "a", rules=[Rule(transform=boom)]).mount()
        form.set_fields_value({"a": "x"})
        with pytest.raises(ValidateError) as exc_info:
            await form.validate_fields()
        assert exc_info.value.error_fields[0].errors == ["Validation error on field 'a'"]

    @pytest.mark.asyncio
    async def test_validating_is_visible_immediately(self):
        _, form = _store_form()
        field = Field(form, "a", rules=[{"required": True}]).mount()
        future = form.validate_fields(["a"])
        assert field.is_field_validating() is True
        with pytest.raises(ValidateError):
            await future
        assert field.is_field_validating() is False
        assert field.get_meta().validated is True

    @pytest.mark.asyncio
    async def test_warnings_do_not_block(self):
        _, form = _store_form()
        Field(form, "a", rules=[{"min": 3, "warning_only": True}]).mount()
        form.set_fields_value({"a": "x"})
        assert await form.validate_fields() == {"a": "x"}
        assert form.get_field_warning("a") == ["'a' must be at least 3 characters"]
        assert form.get_field_error("a") == []

    @pytest.mark.asyncio
    async def test_out_of_date(self):
        async def slow(rule, value):
            await asyncio.sleep(0.01)

        _, form = _store_form()
        Field(form, "a", rules=[{"validator": slow}]).mount()
        first = form.validate_fields()
        second = form.validate_fields()
        with pytest.raises(ValidateError) as exc_info:
            await first
        assert exc_info.value.out_of_date is True
        assert exc_info.value.error_fields == []
        assert await second == {"a": None}

    @pytest.mark.asyncio
    async def test_recursive(self):
        _, form = _store_form()
        Field(form, ["user", "name"], rules=[{"required": True}]).mount()
        Field(form, ["other"], rules=[{"required": True}]).mount()
        with pytest.raises(ValidateError) as exc_info:
            await form.validate_fields([["user"]], recursive=True)
        assert [f.name for f in exc_info.value.error_fields] == [["user", "name"]]

    @pytest.mark.asyncio
    async def test_dirty_only(self):
        _, form = _store_form()
        Field(form, "clean", rules=[{"required": True}]).mount()
        dirty = Field(form, "dirty", rules=[{"required": True}]).mount()
        dirty.on_change("")
        with pytest.raises(ValidateError) as exc_info:
            await form.validate_fields(dirty=True)
        assert [f.name for f in exc_info.value.error_fields] == [["dirty"]]

    @pytest.mark.asyncio
    async def test_validate_only_keeps_meta(self):
        _, form = _store_form()
        field = Field(form, "a", rules=[{"required": True}]).mount()
        with pytest.raises(ValidateError):
            await form.validate_fields(validate_only=True)
        assert field.get_errors() == []

    @pytest.mark.asyncio
    async def test_form_messages(self):
        form = create_form(validate_messages={"required": "${name} is missing"})
        Field(form, "a", rules=[{"required": True}]).mount()
        with pytest.raises(ValidateError):
            await form.validate_fields()
        assert form.get_field_error("a") == ["a is missing"]

    @pytest.mark.asyncio
    async def test_validate_finish_rerenders(self):
        _, form = _store_form()
        render = Mock()
        Field(form, "a", rules=[{"required": True}], on_render=render).mount()
        with pytest.raises(ValidateError):
            await form.validate_fields()
        # start of validation + write-back of errors
        assert render.call_count >= 2


class TestSubmit:
    @pytest.mark.asyncio
    async def test_on_finish(self):
        on_finish = Mock()
        form = create_form(initial_values={"a": "ok"}, on_finish=on_finish)
        Field(form, "a", rules=[{"required": True}]).mount()
        await form.submit()
        on_finish.assert_called_once_with({"a": "ok"})

    @pytest.mark.asyncio
    async def test_on_finish_failed(self):
        on_finish = Mock()
        on_finish_failed = Mock()
        form = create_form(on_finish=on_finish, on_finish_failed=on_finish_failed)
        Field(form, "a", rules=[{"required": True}]).mount()
        await form.submit()
        on_finish.assert_not_called()
        [error] = on_finish_failed.call_args.args
        assert isinstance(error, ValidateError)

    @pytest.mark.asyncio
    async def test_on_finish_exception_is_logged(self, caplog):
        def on_finish(values):
            raise RuntimeError("boom")

        form = create_form(on_finish=on_finish)
        Field(form, "a").mount()
        with caplog.at_level(logging.ERROR, logger="formstore.store"):
            await form.submit()
        assert "on_finish callback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_invalid_pattern_calls_on_finish_failed(self):
        on_finish = Mock()
        on_finish_failed = Mock()
        form = create_form(initial_values={"a": "x"}, on_finish=on_finish, on_finish_failed=on_finish_failed)
        Field(form, "a", rules=[{"pattern": "[", "message": "bad pattern"}]).mount()
        await form.submit()
        on_finish.assert_not_called()
        [error] = on_finish_failed.call_args.args
        assert error.error_fields[0].errors == ["bad pattern"]
