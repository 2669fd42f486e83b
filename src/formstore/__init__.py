"""formstore: a reactive form state engine for Python."""

from importlib.metadata import version as _version

__version__ = _version("formstore")

from formstore.action import UpdateValue, ValidateField, transaction
from formstore.context import NULL_FORM, FormProvider
from formstore.field import Field
from formstore.field_list import FieldList, ListField
from formstore.form import Form, create_form
from formstore.interface import FieldError, FormInstance, Meta, ValidateError, ValidateOptions
from formstore.messages import DEFAULT_VALIDATE_MESSAGES
from formstore.rules import Rule
from formstore.scoped import ScopedFormStore, scoped_form
from formstore.store import FormStore
from formstore.watch import WatchHandle, flush_watchers, watch
# textual NOT auto-imported, opt-in only

__all__ = [
    "FormStore",
    "FormInstance",
    "Form",
    "create_form",
    "Field",
    "FieldList",
    "ListField",
    "Rule",
    "Meta",
    "FieldError",
    "ValidateError",
    "ValidateOptions",
    "DEFAULT_VALIDATE_MESSAGES",
    "FormProvider",
    "NULL_FORM",
    "UpdateValue",
    "ValidateField",
    "transaction",
    "ScopedFormStore",
    "scoped_form",
    "watch",
    "flush_watchers",
    "WatchHandle",
]
