"""Shared types for the form engine.

The engine talks to two outside parties. Fields register into it through
the FieldEntity protocol; the rendering layer drives it through a
FormInstance. Everything here is plain data or a protocol: behavior lives
in store.py and field.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, Protocol, TypedDict

from formstore._namepath import NamePath

if TYPE_CHECKING:
    from formstore.rules import Rule

NotifyType = Literal[
    "value_update",
    "reset",
    "set_field",
    "dependencies_update",
    "remove",
    "validate_finish",
]


class FieldData(TypedDict, total=False):
    """Shape accepted by set_fields. Key presence is significant."""

    name: Any
    value: Any
    touched: bool
    validating: bool
    errors: list[str]
    warnings: list[str]


@dataclass(frozen=True)
class NotifyInfo:
    """Why fields are being notified.

    `store` is the post-mutation snapshot; the dispatcher fills it in.
    """

    type: NotifyType
    source: Literal["internal", "external"] | None = None
    data: FieldData | None = None
    related_fields: list[NamePath] | None = None
    store: Any = None


@dataclass
class Meta:
    touched: bool = False
    validating: bool = False
    validated: bool = False
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    name: NamePath = field(default_factory=list)


@dataclass
class FieldError:
    name: NamePath
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class RuleError:
    errors: list[str]
    rule: Rule


@dataclass
class ValidateOptions:
    trigger_name: str | None = None
    validate_messages: dict | None = None
    # Also validate every field whose path starts with a requested path.
    recursive: bool = False
    # Only validate fields that have been changed or carry an initial value.
    dirty: bool = False
    # Run the rules without touching field meta.
    validate_only: bool = False


class ValidateError(Exception):
    """Raised by validate_fields when any field has blocking errors.

    `out_of_date` means a newer validation started before this one
    finished; the result must not be treated as authoritative.
    """

    def __init__(self, values: Any, error_fields: list[FieldError], out_of_date: bool = False) -> None:
        self.values = values
        self.error_fields = error_fields
        self.out_of_date = out_of_date
        names = ", ".join(".".join(str(s) for s in f.name) for f in error_fields)
        super().__init__(f"validation failed: {names}" if names else "validation out of date")


@dataclass
class Callbacks:
    on_values_change: Callable[[Any, Any], None] | None = None
    on_fields_change: Callable[[list[dict], list[dict]], None] | None = None
    on_finish: Callable[[Any], None] | None = None
    on_finish_failed: Callable[[ValidateError], None] | None = None


class FieldEntity(Protocol):
    """What the registry needs from a registered field."""

    def get_name_path(self) -> NamePath: ...

    def on_store_change(self, prev_store: Any, name_path_list: list[NamePath] | None, info: NotifyInfo) -> None: ...

    def get_meta(self) -> Meta: ...

    def validate_rules(self, options: ValidateOptions | None = None) -> Any: ...

    def is_field_touched(self) -> bool: ...

    def is_field_dirty(self) -> bool: ...

    def is_field_validating(self) -> bool: ...

    def is_list_field(self) -> bool: ...

    def is_list(self) -> bool: ...

    def is_preserve(self) -> bool | None: ...

    def get_errors(self) -> list[str]: ...

    def get_warnings(self) -> list[str]: ...

    @property
    def rules(self) -> list: ...

    @property
    def dependencies(self) -> list[NamePath]: ...

    @property
    def initial_value(self) -> Any: ...


def _unbound(*args: Any, **kwargs: Any) -> Any:
    raise NotImplementedError


@dataclass(frozen=True)
class InternalHooks:
    """Engine internals handed out only against HOOK_MARK."""

    dispatch: Callable = _unbound
    register_field: Callable = _unbound
    use_subscribe: Callable = _unbound
    set_initial_values: Callable = _unbound
    get_initial_value: Callable = _unbound
    set_callbacks: Callable = _unbound
    set_validate_messages: Callable = _unbound
    set_preserve: Callable = _unbound
    get_fields: Callable = _unbound
    register_watch: Callable = _unbound
    destroy_form: Callable = _unbound
    get_field_entities: Callable = _unbound
    get_form_store: Callable = _unbound


@dataclass(frozen=True)
class FormInstance:
    """Public surface of a form engine.

    Every attribute is a plain callable, so a view (scoped form, field
    context) is built with dataclasses.replace instead of subclassing.
    `prefix_name` and `validate_trigger` travel with the instance the way
    field context does.
    """

    get_field_value: Callable = _unbound
    get_fields_value: Callable = _unbound
    get_field_error: Callable = _unbound
    get_field_warning: Callable = _unbound
    get_fields_error: Callable = _unbound
    is_field_touched: Callable = _unbound
    is_fields_touched: Callable = _unbound
    is_field_validating: Callable = _unbound
    is_fields_validating: Callable = _unbound
    reset_fields: Callable = _unbound
    set_fields: Callable = _unbound
    set_field_value: Callable = _unbound
    set_fields_value: Callable = _unbound
    validate_fields: Callable = _unbound
    submit: Callable = _unbound
    get_internal_hooks: Callable = _unbound
    prefix_name: tuple = ()
    validate_trigger: str | list[str] | None = "change"
