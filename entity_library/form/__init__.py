"""
Entity form package: wizard engine, field kinds, and dependent selects.
"""

from .conditional import evaluate_condition
from .endpoints import RequestsOptionFetcher, parse_options, resolve_request
from .errors import merge_errors, normalize_errors
from .fields import FieldConfig, FieldKind, Option, OptionEndpoint, build_form_class
from .page import EntityFormPage, FormConfig
from .resolver import DependentFieldResolver, FieldOptionsState, get_dependent_field_settings
from .wizard import FormWizardEngine, WizardStep, get_form_settings

__all__ = [
    "DependentFieldResolver",
    "EntityFormPage",
    "FieldConfig",
    "FieldKind",
    "FieldOptionsState",
    "FormConfig",
    "FormWizardEngine",
    "Option",
    "OptionEndpoint",
    "RequestsOptionFetcher",
    "WizardStep",
    "build_form_class",
    "evaluate_condition",
    "get_dependent_field_settings",
    "get_form_settings",
    "merge_errors",
    "normalize_errors",
    "parse_options",
    "resolve_request",
]
