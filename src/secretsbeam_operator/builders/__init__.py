"""Builders turning CRD specs into models and providers."""

from .access import create_access_from_resource, parse_subjects, subjects_to_status
from .provider import create_provider_from_spec
from .secret import create_secret_from_resource, create_secret_reference, create_secret_spec_from_spec

__all__ = [
    "create_access_from_resource",
    "parse_subjects",
    "subjects_to_status",
    "create_provider_from_spec",
    "create_secret_reference",
    "create_secret_from_resource",
    "create_secret_spec_from_spec",
]
