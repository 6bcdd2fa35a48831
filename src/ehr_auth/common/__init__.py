"""Common configuration and constants for ehr_auth."""

from ehr_auth.common.config import AuthServerSettings
from ehr_auth.common.constants import (
    FHIR_RESOURCE_TYPES,
    SMART_SCOPES,
    SPECIAL_SCOPES,
    VALID_INTERACTIONS,
)

__all__ = [
    "AuthServerSettings",
    "FHIR_RESOURCE_TYPES",
    "SMART_SCOPES",
    "SPECIAL_SCOPES",
    "VALID_INTERACTIONS",
]
